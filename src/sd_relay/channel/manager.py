# src/sd_relay/channel/manager.py

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Awaitable, Callable

import aiohttp
from aiohttp import WSCloseCode

from ..core.models import ResultEnvelope
from ..errors import ChannelConnectError, ChannelWriteError
from .listener import ReadDeadline, run_control_listener

logger = logging.getLogger(__name__)

DEFAULT_READ_TIMEOUT = 60.0

Connector = Callable[[str], Awaitable[Any]]

_IO_ERRORS = (aiohttp.ClientError, OSError, RuntimeError)


class ChannelState(StrEnum):
    ABSENT = "absent"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(slots=True, eq=False)
class _Connection:
    ws: Any
    deadline: ReadDeadline
    listener: asyncio.Task | None = None


class ChannelManager:
    """
    Owner of the single websocket to the main server.

    Lifecycle:
    - ABSENT until the first send(); send() connects lazily (CONNECTING -> CONNECTED).
    - A failed connect drops that one send and leaves the channel ABSENT.
    - PING from the peer: pong with the same payload, read deadline pushed forward.
    - CLOSE from the peer: echo a normal-closure close, tear down -> ABSENT.
    - Read error, read deadline expiry or write error: tear down -> ABSENT.
    The next send() after any teardown reconnects from scratch.

    One asyncio.Lock guards the connection handle and every frame written
    (envelopes, pongs, close echoes), so frames never interleave.
    """

    def __init__(
        self,
        url: str,
        *,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        frame_as_json_string: bool = True,
        connect_timeout: float = 10.0,
        connector: Connector | None = None,
    ) -> None:
        self._url = url
        self._read_timeout = float(read_timeout)
        self._frame_as_json_string = frame_as_json_string
        self._connect_timeout = float(connect_timeout)
        self._connector: Connector = connector or self._ws_connect

        self._lock = asyncio.Lock()
        self._conn: _Connection | None = None
        self._state = ChannelState.ABSENT
        self._session: aiohttp.ClientSession | None = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> ChannelState:
        return self._state

    # ---- Public API ----

    async def send(self, envelope: ResultEnvelope) -> bool:
        """
        Write one envelope as a single text frame.

        Returns False if no connection could be established (logged, dropped).
        Raises ChannelWriteError if the write fails; the connection is torn down
        and the envelope is not retried.
        """
        frame = envelope.to_frame(as_json_string=self._frame_as_json_string)

        failed: _Connection | None = None
        error: BaseException | None = None

        async with self._lock:
            conn = await self._connect_if_absent()
            if conn is None:
                return False

            try:
                await conn.ws.send_str(frame)
            except _IO_ERRORS as e:
                self._detach(conn)
                failed, error = conn, e

        if failed is not None:
            await self._close_connection(failed, reason="write failed")
            raise ChannelWriteError(f"websocket write failed: {error!r}") from error

        logger.debug("Sent envelope api=%s status=%s", envelope.api, envelope.status)
        return True

    async def aclose(self) -> None:
        async with self._lock:
            conn = self._conn
            if conn is not None:
                self._detach(conn)

        if conn is not None:
            await self._close_connection(conn, reason="shutdown")

        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # ---- Connect ----

    async def _connect_if_absent(self) -> _Connection | None:
        """Caller must hold self._lock."""
        if self._conn is not None:
            return self._conn

        self._state = ChannelState.CONNECTING
        try:
            ws = await self._connector(self._url)
        except ChannelConnectError as e:
            self._state = ChannelState.ABSENT
            logger.error("Websocket connect failed: %s", e)
            return None
        except BaseException:
            self._state = ChannelState.ABSENT
            raise

        conn = _Connection(ws=ws, deadline=ReadDeadline(self._read_timeout))
        conn.listener = asyncio.create_task(
            run_control_listener(
                ws,
                conn.deadline,
                on_ping=lambda data: self._on_ping(conn, data),
                on_close=lambda code, reason: self._on_close(conn, code, reason),
                on_lost=lambda reason: self._on_lost(conn, reason),
            ),
            name="sd-relay-ws-listener",
        )
        self._conn = conn
        self._state = ChannelState.CONNECTED
        logger.info("Websocket connected: %s", self._url)
        return conn

    async def _ws_connect(self, url: str) -> aiohttp.ClientWebSocketResponse:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(
                    total=None,
                    connect=self._connect_timeout,
                    sock_connect=self._connect_timeout,
                )
            )
        try:
            # Control frames are answered by the listener so pings extend the read deadline.
            return await self._session.ws_connect(url, autoping=False, autoclose=False)
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            raise ChannelConnectError(f"connect {url} failed: {e!r}") from e

    # ---- Listener callbacks ----

    async def _on_ping(self, conn: _Connection, data: bytes) -> None:
        failed = False
        async with self._lock:
            if self._conn is not conn:
                return
            conn.deadline.extend()
            try:
                await conn.ws.pong(data)
            except _IO_ERRORS as e:
                logger.warning("Failed to send pong: %r", e)
                self._detach(conn)
                failed = True

        if failed:
            await self._close_connection(conn, reason="pong failed")

    async def _on_close(self, conn: _Connection, code: int | None, reason: str) -> None:
        async with self._lock:
            if self._conn is not conn:
                return
            logger.info("Close frame from peer (code=%s reason=%r)", code, reason)
            try:
                await conn.ws.close(code=WSCloseCode.OK)
            except _IO_ERRORS as e:
                logger.warning("Failed to echo close frame: %r", e)
            self._detach(conn)
        logger.info("Websocket closed by peer: %s", self._url)

    async def _on_lost(self, conn: _Connection, reason: str) -> None:
        async with self._lock:
            if self._conn is not conn:
                return
            self._detach(conn)
        await self._close_connection(conn, reason=reason)

    # ---- Teardown ----

    def _detach(self, conn: _Connection) -> None:
        """Forget conn if it is the live connection. Caller must hold self._lock."""
        if self._conn is conn:
            self._conn = None
            self._state = ChannelState.ABSENT

    async def _close_connection(self, conn: _Connection, *, reason: str) -> None:
        listener = conn.listener
        if listener is not None and listener is not asyncio.current_task() and not listener.done():
            listener.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await listener

        try:
            await conn.ws.close(code=WSCloseCode.OK)
        except _IO_ERRORS as e:
            logger.debug("Websocket close raised: %r", e)

        logger.warning("Websocket torn down (%s): %s", reason, self._url)
