# src/sd_relay/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the task layer.

The progress loop and the processor depend on Protocols instead of concrete
implementations, so tests can swap in fakes for the websocket and the backend.
"""

from typing import Awaitable, Protocol

from .models import ResultEnvelope


class EnvelopeSender(Protocol):
    """
    Where envelopes go (the websocket channel in production).

    Returns True if the envelope was written, False if it was dropped because
    no connection could be established. Raises on a write failure.
    """

    def send(self, envelope: ResultEnvelope) -> Awaitable[bool]: ...


class BackendResponse(Protocol):
    status_code: int
    text: str


class ComputeBackend(Protocol):
    """Stable Diffusion API as seen by the processor."""

    def submit(self, api: str, params: str) -> Awaitable[BackendResponse]: ...

    def progress(self) -> Awaitable[tuple[int, str]]: ...


class JobProcessor(Protocol):
    def process(self, *, api: str, params: str, task_id: str) -> Awaitable[ResultEnvelope]: ...
