# src/sd_relay/channel/listener.py

from __future__ import annotations

"""
Background read loop for the callback websocket.

The relay never expects application data from the main server. The loop only
exists so control frames get processed:
- PING  -> on_ping(data)
- CLOSE -> on_close(code, reason), loop ends
- read error / deadline expiry / transport closed -> on_lost(reason), loop ends
Data frames (TEXT/BINARY) and unsolicited PONGs are dropped.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

import aiohttp
from aiohttp import WSMsgType

logger = logging.getLogger(__name__)

PingHandler = Callable[[bytes], Awaitable[None]]
CloseHandler = Callable[[int | None, str], Awaitable[None]]
LostHandler = Callable[[str], Awaitable[None]]


class ReadDeadline:
    """Absolute read deadline, pushed forward by every ping from the peer."""

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.interval = float(interval)
        self._clock = clock
        self._expires_at = 0.0
        self.extend()

    def extend(self) -> None:
        self._expires_at = self._clock() + self.interval

    def remaining(self) -> float:
        return self._expires_at - self._clock()


async def run_control_listener(
    ws: Any,
    deadline: ReadDeadline,
    *,
    on_ping: PingHandler,
    on_close: CloseHandler,
    on_lost: LostHandler,
) -> None:
    while True:
        timeout = deadline.remaining()
        if timeout <= 0:
            await on_lost("read deadline exceeded")
            return

        try:
            msg = await ws.receive(timeout=timeout)
        except asyncio.TimeoutError:
            await on_lost("read deadline exceeded")
            return
        except (aiohttp.ClientError, OSError, RuntimeError) as e:
            await on_lost(f"read error: {e!r}")
            return

        if msg.type == WSMsgType.PING:
            await on_ping(bytes(msg.data or b""))
            continue

        if msg.type == WSMsgType.CLOSE:
            await on_close(msg.data, str(msg.extra or ""))
            return

        if msg.type in (WSMsgType.CLOSING, WSMsgType.CLOSED):
            await on_lost("connection closed")
            return

        if msg.type == WSMsgType.ERROR:
            await on_lost(f"read error: {msg.data!r}")
            return

        logger.debug("Ignoring inbound %s frame", msg.type.name)
