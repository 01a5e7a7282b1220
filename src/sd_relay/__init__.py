"""
sd_relay: NSQ -> Stable Diffusion -> websocket callback relay.

Subpackages:
- core: models, crypto, ports
- backend: HTTP client for the Stable Diffusion API
- channel: the single persistent websocket to the main server
- tasks: progress loop + per-job processor
- connectors: NSQ consumer
- cli: composition root and entrypoint
"""

__version__ = "0.1.0"
