# =============================================================================
# Live Client -- Connection Manager
# =============================================================================
#
# WebSocket lifecycle management: connect, replay hook, receive loop,
# exponential-backoff reconnect.  Keepalive is delegated to the websockets
# library's ping/pong; an idle-dead link surfaces as an abnormal close.
# =============================================================================

from __future__ import annotations

import asyncio
import random
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol

import websockets.asyncio.client
from websockets.exceptions import ConnectionClosed

from ._logging import logger
from .constants import (
    AUTH_COOKIE_NAME,
    CONNECTION_TIMEOUT,
    INTENTIONAL_CLOSE_CODES,
    MAX_MESSAGE_SIZE,
    PING_INTERVAL,
    PING_TIMEOUT,
    WS_CLOSE_ABNORMAL,
    WS_CLOSE_NORMAL,
)
from .errors import LiveSessionError
from .types import ConnectionState, ReconnectConfig


class Transport(Protocol):
    """The subset of a websockets ``ClientConnection`` used here."""

    close_code: int | None

    async def send(self, message: str) -> None: ...

    async def close(self, code: int = WS_CLOSE_NORMAL, reason: str = "") -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


TransportFactory = Callable[[str, "dict[str, str]"], Awaitable[Transport]]


async def open_websocket(url: str, headers: dict[str, str]) -> Transport:
    """Default transport factory: a websockets asyncio client connection."""
    return await websockets.asyncio.client.connect(
        url,
        additional_headers=headers,
        max_size=MAX_MESSAGE_SIZE,
        open_timeout=None,  # asyncio.wait_for handles timeout
        ping_interval=PING_INTERVAL,
        ping_timeout=PING_TIMEOUT,
    )


class ConnectionManager:
    """Owns the single transport of a session and keeps it alive.

    Transient failures never raise: a refused connect or an abnormal close
    moves the state to DISCONNECTED and schedules a retry with
    ``min(base * factor ** attempt, max_delay)`` seconds of backoff.  Only
    :meth:`disconnect` (or a close with an intentional code) stops the loop.

    Args:
        url: Full WebSocket URL, path included.
        token: Session token, sent as the ``jwt`` cookie on the upgrade.
        reconnect: Backoff tuning.
        on_message: Called with every inbound frame, in arrival order.
        on_state_change: Called with the new state on every transition.
        on_open: Awaited after the state becomes CONNECTED and before the
            first frame of the new connection is dispatched.
        transport_factory: ``(url, headers) -> awaitable transport``.
    """

    def __init__(
        self,
        url: str,
        *,
        token: str | None = None,
        reconnect: ReconnectConfig | None = None,
        extra_headers: dict[str, str] | None = None,
        on_message: Callable[[str | bytes], Any] | None = None,
        on_state_change: Callable[[ConnectionState], Any] | None = None,
        on_open: Callable[[], Awaitable[Any]] | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self._url = url
        self._token = token
        self._reconnect_cfg = reconnect or ReconnectConfig()
        self._extra_headers = extra_headers or {}
        self._transport_factory = transport_factory or open_websocket

        # Callbacks
        self._on_message = on_message
        self._on_state_change = on_state_change
        self._on_open = on_open

        # State
        self._ws: Transport | None = None
        self._state = ConnectionState.DISCONNECTED
        self._is_connecting = False
        self._session_active = False
        self._reconnect_attempts = 0
        self._connected_at: float | None = None
        self._destroyed = False

        # Counters
        self.frames_received = 0
        self.commands_sent = 0
        self.reconnect_count = 0

        # Tasks
        self._recv_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None

    # -- Properties -----------------------------------------------------------

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return (
            self._ws is not None
            and self._state == ConnectionState.CONNECTED
            and not self._destroyed
        )

    @property
    def is_reconnect_scheduled(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def connected_since(self) -> float | None:
        return self._connected_at

    # -- Connect / Disconnect -------------------------------------------------

    async def connect(self) -> None:
        """Open the transport, or join the backoff loop if that fails."""
        if self._destroyed:
            raise LiveSessionError("ConnectionManager has been destroyed")
        if self.is_connected or self._is_connecting:
            return

        self._session_active = True
        self._cancel_reconnect()
        await self._drop_transport()

        self._is_connecting = True
        self._set_state(
            ConnectionState.RECONNECTING
            if self._reconnect_attempts > 0
            else ConnectionState.CONNECTING
        )

        try:
            ws = await asyncio.wait_for(
                self._transport_factory(self._url, self._build_headers()),
                timeout=CONNECTION_TIMEOUT,
            )
        except asyncio.CancelledError:
            self._is_connecting = False
            raise
        except Exception as exc:
            self._is_connecting = False
            logger.debug("Connect attempt failed: %s", exc)
            self._set_state(ConnectionState.DISCONNECTED)
            self._schedule_reconnect()
            return

        self._is_connecting = False
        if not self._session_active or self._destroyed:
            # disconnect() ran while the handshake was in flight
            await self._close_quietly(ws)
            return

        self._ws = ws
        self._reconnect_attempts = 0
        self._connected_at = time.monotonic()
        self._set_state(ConnectionState.CONNECTED)
        logger.info("Connected to %s", self._url)

        if self._on_open:
            try:
                await self._on_open()
            except Exception as exc:
                logger.error("on_open hook failed: %s", exc)

        if self._ws is ws:
            self._recv_task = asyncio.create_task(self._recv_loop(ws))

    async def disconnect(self) -> None:
        """Intentional close: stop reconnecting and close with code 1000."""
        self._session_active = False
        self._cancel_reconnect()
        self._reconnect_attempts = 0
        await self._drop_transport()
        self._set_state(ConnectionState.DISCONNECTED)

    async def destroy(self) -> None:
        """Disconnect and mark permanently destroyed."""
        self._destroyed = True
        await self.disconnect()

    # -- Send -----------------------------------------------------------------

    async def send(self, data: str) -> bool:
        """Send a text frame.  Returns True on success."""
        ws = self._ws
        if ws is None or not self.is_connected:
            return False
        try:
            await ws.send(data)
        except ConnectionClosed:
            logger.debug("Send failed: connection closed")
            return False
        except Exception as exc:
            logger.debug("Send failed: %s", exc)
            return False
        self.commands_sent += 1
        return True

    # -- Internal: receive loop -----------------------------------------------

    async def _recv_loop(self, ws: Transport) -> None:
        """Read frames until the transport closes, then react to the code."""
        code = WS_CLOSE_ABNORMAL
        try:
            async for message in ws:
                self.frames_received += 1
                self._handle_raw_message(message)
            code = ws.close_code if ws.close_code is not None else WS_CLOSE_ABNORMAL
        except ConnectionClosed as exc:
            code = exc.rcvd.code if exc.rcvd is not None else WS_CLOSE_ABNORMAL
        except asyncio.CancelledError:
            return
        except Exception as exc:
            logger.warning("Receive loop error: %s", exc)

        if ws is not self._ws:
            return
        self._recv_task = None
        self._handle_close_code(code)

    def _handle_raw_message(self, data: str | bytes) -> None:
        if not self._on_message:
            return
        try:
            self._on_message(data)
        except Exception as exc:
            logger.error("Error dispatching frame: %s", exc)

    # -- Internal: reconnection -----------------------------------------------

    def _handle_close_code(self, code: int) -> None:
        """React to a WebSocket close code."""
        logger.debug("WebSocket closed: code=%d", code)
        self._ws = None
        self._connected_at = None
        self._set_state(ConnectionState.DISCONNECTED)

        if code in INTENTIONAL_CLOSE_CODES or not self._session_active:
            self._reconnect_attempts = 0
            return

        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        """Schedule a reconnection attempt with backoff."""
        if self._destroyed or not self._session_active:
            return

        cfg = self._reconnect_cfg
        if cfg.max_attempts >= 0 and self._reconnect_attempts >= cfg.max_attempts:
            logger.error("Max reconnect attempts (%d) reached", cfg.max_attempts)
            return

        delay = self._calculate_delay()
        self._reconnect_attempts += 1
        self.reconnect_count += 1
        logger.info(
            "Reconnecting in %.1fs (attempt %d/%s)",
            delay,
            self._reconnect_attempts,
            cfg.max_attempts if cfg.max_attempts >= 0 else "inf",
        )

        self._reconnect_task = asyncio.ensure_future(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        """Wait, then try to reconnect."""
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            return

        self._reconnect_task = None
        await self.connect()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_task:
            self._reconnect_task.cancel()
            self._reconnect_task = None

    def _calculate_delay(self) -> float:
        """Exponential backoff for the current attempt, capped."""
        cfg = self._reconnect_cfg
        delay = min(cfg.base_delay * (cfg.factor**self._reconnect_attempts), cfg.max_delay)

        if cfg.jitter:
            jitter_amount = delay * 0.2 * (random.random() - 0.5)
            delay = max(0.0, delay + jitter_amount)

        return delay

    # -- Internal: transport handle -------------------------------------------

    async def _drop_transport(self) -> None:
        """Cancel the receive loop and close the current transport, if any."""
        ws = self._ws
        self._ws = None
        self._connected_at = None

        if self._recv_task:
            self._recv_task.cancel()
            await asyncio.gather(self._recv_task, return_exceptions=True)
            self._recv_task = None

        if ws is not None:
            await self._close_quietly(ws)

    async def _close_quietly(self, ws: Transport) -> None:
        try:
            await ws.close(WS_CLOSE_NORMAL, "Client disconnect")
        except Exception as exc:
            logger.debug("Close failed: %s", exc)

    # -- State management -----------------------------------------------------

    def _set_state(self, new_state: ConnectionState) -> None:
        if new_state == self._state:
            return
        old = self._state
        self._state = new_state
        logger.debug("State: %s -> %s", old.value, new_state.value)
        if self._on_state_change:
            self._on_state_change(new_state)

    def _build_headers(self) -> dict[str, str]:
        headers = dict(self._extra_headers)
        if self._token:
            headers["Cookie"] = f"{AUTH_COOKIE_NAME}={self._token}"
        return headers
