# src/sd_relay/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- builds the shared HTTP client and backend client,
- builds the single ChannelManager (one websocket per process),
- wires processor and queue consumer on top of them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from ..backend.client import StableDiffusionBackend
from ..channel.manager import ChannelManager
from ..config import Settings, get_settings
from ..connectors.nsq_consumer import QueueConsumer
from ..core import crypto
from ..errors import CryptoError
from ..tasks.processor import TaskProcessor

logger = logging.getLogger(__name__)


@dataclass
class RelayApp:
    settings: Settings
    http: httpx.AsyncClient
    backend: StableDiffusionBackend
    channel: ChannelManager
    processor: TaskProcessor
    consumer: QueueConsumer

    async def aclose(self) -> None:
        try:
            await self.channel.aclose()
        finally:
            await self.http.aclose()


def check_app_key(key: str) -> None:
    """Fail fast at startup instead of dropping every job later."""
    if not key:
        raise CryptoError("SDRELAY_APP_KEY is not set")
    crypto.encrypt("", key)


def create_app(*, settings: Settings | None = None, http: httpx.AsyncClient | None = None) -> RelayApp:
    """
    Create RelayApp from the provided settings.

    Must be called from inside the event loop that will run the jobs.
    """
    if settings is None:
        settings = get_settings()

    if http is None:
        http = httpx.AsyncClient()

    backend = StableDiffusionBackend(http, settings.api_url)
    channel = ChannelManager(
        settings.callback_url,
        read_timeout=settings.read_timeout_seconds,
        frame_as_json_string=settings.frame_as_json_string,
    )
    processor = TaskProcessor(
        backend,
        channel,
        progress_interval_seconds=settings.progress_interval_seconds,
    )
    consumer = QueueConsumer(processor, app_key=settings.app_key)

    logger.info("Backend: %s", settings.api_url(""))
    logger.info("Callback websocket: %s", settings.callback_url)

    return RelayApp(
        settings=settings,
        http=http,
        backend=backend,
        channel=channel,
        processor=processor,
        consumer=consumer,
    )
