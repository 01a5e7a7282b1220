# src/sd_relay/tasks/progress.py

from __future__ import annotations

"""
Progress reporter.

While a backend call is outstanding, poll the backend's progress endpoint on a
fixed cadence and forward each reading as an envelope.

- Ticks are scheduled from the loop start (interval, 2*interval, ...), not from
  the end of the previous tick; a slow tick skips the ticks it overran.
- Between ticks the loop waits on the cancel token, so cancellation is seen
  immediately while idle. A tick already in flight is allowed to finish.
- A failed tick is logged and the loop continues. The loop never stops on
  its own.
"""

import asyncio
import logging
import math

from ..core.models import PROGRESS_API, ResultEnvelope
from ..core.ports import ComputeBackend, EnvelopeSender

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 1.0


async def _tick(backend: ComputeBackend, sender: EnvelopeSender, task_id: str) -> None:
    status, progress = await backend.progress()
    await sender.send(
        ResultEnvelope(api=PROGRESS_API, task_id=task_id, status=status, body=progress)
    )


async def run_progress_loop(
        cancel_token: asyncio.Event,
        *,
        backend: ComputeBackend,
        sender: EnvelopeSender,
        task_id: str,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
) -> None:
    loop = asyncio.get_running_loop()
    interval = max(0.001, float(interval_seconds))
    started = loop.time()
    n = 1

    while not cancel_token.is_set():
        delay = started + n * interval - loop.time()
        if delay > 0:
            try:
                await asyncio.wait_for(cancel_token.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
            if cancel_token.is_set():
                return

        try:
            await _tick(backend, sender, task_id)
        except Exception:
            logger.exception("Progress tick %d failed", n)

        # Skip ticks that were overrun by a slow request.
        elapsed = loop.time() - started
        n = max(n + 1, math.floor(elapsed / interval) + 1)


def start_progress_loop(
        cancel_token: asyncio.Event,
        *,
        backend: ComputeBackend,
        sender: EnvelopeSender,
        task_id: str,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
) -> asyncio.Task:
    """Launch the progress loop as a task bound to cancel_token."""
    return asyncio.create_task(
        run_progress_loop(
            cancel_token,
            backend=backend,
            sender=sender,
            task_id=task_id,
            interval_seconds=interval_seconds,
        ),
        name="sd-relay-progress",
    )
