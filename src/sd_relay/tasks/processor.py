# src/sd_relay/tasks/processor.py

from __future__ import annotations

import asyncio
import contextlib
import logging

from ..core.models import BACKEND_DOWN_BODY, BACKEND_DOWN_STATUS, ResultEnvelope
from ..core.ports import ComputeBackend, EnvelopeSender
from ..errors import BackendUnavailableError
from .progress import DEFAULT_INTERVAL_SECONDS, start_progress_loop

logger = logging.getLogger(__name__)


class TaskProcessor:
    """
    Runs one job end to end:

    1. start the progress loop (own cancel token)
    2. POST params to the backend api and wait (no timeout)
    3. cancel the progress loop and wait for it to finish
    4. send the final envelope

    HTTP error statuses are forwarded like any other response. Only a backend
    that cannot be reached at all is an error: a 509 envelope is sent and
    BackendUnavailableError is raised to the caller.
    """

    def __init__(
        self,
        backend: ComputeBackend,
        sender: EnvelopeSender,
        *,
        progress_interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        self._backend = backend
        self._sender = sender
        self._progress_interval = progress_interval_seconds

    async def process(self, *, api: str, params: str, task_id: str) -> ResultEnvelope:
        cancel_token = asyncio.Event()
        progress_task = start_progress_loop(
            cancel_token,
            backend=self._backend,
            sender=self._sender,
            task_id=task_id,
            interval_seconds=self._progress_interval,
        )

        try:
            resp = await self._backend.submit(api, params)
        except BackendUnavailableError:
            await self._stop_progress(cancel_token, progress_task)
            logger.warning("Backend unreachable for api=%s", api)
            await self._sender.send(
                ResultEnvelope(
                    api=api,
                    task_id=task_id,
                    status=BACKEND_DOWN_STATUS,
                    body=BACKEND_DOWN_BODY,
                )
            )
            raise
        except BaseException:
            await self._stop_progress(cancel_token, progress_task)
            raise

        await self._stop_progress(cancel_token, progress_task)

        envelope = ResultEnvelope(api=api, task_id=task_id, status=resp.status_code, body=resp.text)
        await self._sender.send(envelope)
        logger.info("Job done api=%s status=%d (%d bytes)", api, resp.status_code, len(envelope.body))
        return envelope

    @staticmethod
    async def _stop_progress(cancel_token: asyncio.Event, progress_task: asyncio.Task) -> None:
        # The loop exits at its next wait; a tick already in flight completes
        # first, so no progress envelope can follow the final one.
        cancel_token.set()
        with contextlib.suppress(Exception):
            await progress_task
