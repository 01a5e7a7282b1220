"""
Per-job work.

Components:
- progress.py: cancellable periodic progress poll
- processor.py: runs one job (backend call + progress loop + final envelope)
"""
