# =============================================================================
# Live Client -- Session Facade
# =============================================================================
#
# Primary public API.  One LiveClient per authenticated session: it owns the
# connection, the channel join-set, the three event registries, the unread
# accountant and the alert throttles, and hands them to the surfaces.
# =============================================================================

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping
from uuid import uuid4

from ._logging import logger
from .alerts import AlertThrottle, AudioSink
from .connection import ConnectionManager, TransportFactory
from .constants import (
    ALERT_DURATION,
    CMD_GROUP_CHAT,
    CMD_PRIVATE_CHAT,
    CONVERSATION_PAGE_SIZE,
    CUE_GROUP_MESSAGE,
    CUE_NOTIFICATION,
    CUE_PRIVATE_MESSAGE,
    LIVE_PATH,
)
from .errors import LiveConnectionError, LiveSessionError
from .listeners import Listener, ListenerRegistry, Observable
from .protocol import FrameClassifier, encode_command
from .subscriptions import SubscriptionMultiplexer
from .types import (
    ConnectionState,
    ConnectionStats,
    ConversationSummary,
    EventKind,
    GroupMessage,
    InboundEvent,
    Notification,
    PrivateMessage,
    ReconnectConfig,
    SendReceipt,
    Surface,
)
from .unread import UnreadAccountant

if TYPE_CHECKING:
    from .api import ChatApi

_CUES = {
    EventKind.PRIVATE_MESSAGE: CUE_PRIVATE_MESSAGE,
    EventKind.GROUP_MESSAGE: CUE_GROUP_MESSAGE,
    EventKind.NOTIFICATION: CUE_NOTIFICATION,
}


def build_live_url(base_url: str, path: str = LIVE_PATH) -> str:
    """Append the live endpoint path to *base_url* unless already present."""
    base = base_url.rstrip("/")
    if not path or base.endswith(path.rstrip("/")):
        return base
    return base + "/" + path.lstrip("/")


class LiveClient:
    """Real-time session: one connection shared by every surface.

    Args:
        url: WebSocket base URL, e.g. ``"ws://localhost:8080"``.  The live
            path is appended unless the URL already ends with it.
        local_user_id: Id of the signed-in user.
        token: Session token (``jwt`` cookie value).
        path: Live endpoint path.
        reconnect: Backoff tuning. Defaults to 1s doubling up to 30s,
            infinite retries.
        extra_headers: Additional HTTP headers for the handshake.
        audio_sink: Where alert cues are played. Defaults to a silent sink.
        alert_duration: Seconds the alerting flag stays up after an event.
        transport_factory: Overrides the websockets connection (tests).

    Example::

        async with LiveClient("ws://localhost:8080", local_user_id="7", token=jwt) as live:
            live.add_on_private_message(print)
            await live.subscribe_to_group("42", is_member=True)
            await live.send_private_message("9", "hello")
    """

    def __init__(
        self,
        url: str,
        *,
        local_user_id: str,
        token: str | None = None,
        path: str = LIVE_PATH,
        reconnect: ReconnectConfig | None = None,
        extra_headers: dict[str, str] | None = None,
        audio_sink: AudioSink | None = None,
        alert_duration: float = ALERT_DURATION,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self._local_user_id = str(local_user_id)
        self._focused: Surface | None = None
        self._torn_down = False
        self._events_dispatched = 0

        self.connection_state: Observable[ConnectionState] = Observable(
            "connection_state", ConnectionState.DISCONNECTED
        )

        self._registries: dict[EventKind, ListenerRegistry[Any]] = {
            kind: ListenerRegistry(kind.value) for kind in EventKind
        }
        self._classifier = FrameClassifier(self._registries)

        self._connection = ConnectionManager(
            build_live_url(url, path),
            token=token,
            reconnect=reconnect,
            extra_headers=extra_headers,
            on_message=self._on_raw_message,
            on_state_change=self._on_state_change,
            on_open=self._on_open,
            transport_factory=transport_factory,
        )
        self._mux = SubscriptionMultiplexer(self._connection)

        self.unread = UnreadAccountant(self._local_user_id, self.is_focused)
        self.alerts: dict[EventKind, AlertThrottle] = {
            kind: AlertThrottle(cue, audio_sink, alert_duration)
            for kind, cue in _CUES.items()
        }

        # Accounting runs before any consumer sees the event
        for registry in self._registries.values():
            registry.add(self.unread.record)
            registry.add(self._on_alert)

    # -- Context manager ------------------------------------------------------

    async def __aenter__(self) -> LiveClient:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.teardown()

    # -- Lifecycle ------------------------------------------------------------

    async def start(self) -> None:
        """Open the session's connection (retries in the background)."""
        if self._torn_down:
            raise LiveSessionError("LiveClient has been torn down")
        await self._connection.connect()

    async def connect(self) -> None:
        """Alias for start."""
        await self.start()

    async def disconnect(self, clear_subscriptions: bool = False) -> None:
        """Close the connection on purpose; no reconnect follows.

        Joined channels are kept for the next :meth:`start` unless
        *clear_subscriptions* is true.
        """
        await self._connection.disconnect()
        if clear_subscriptions:
            self._mux.clear()
        for throttle in self.alerts.values():
            throttle.cancel()

    async def teardown(self) -> None:
        """End the session (logout): disconnect and drop all derived state."""
        if self._torn_down:
            return
        await self.disconnect(clear_subscriptions=True)
        await self._connection.destroy()
        self._torn_down = True
        self._focused = None
        self.unread.reset()
        await self.drain()
        for registry in self._registries.values():
            registry.clear()
        logger.info("Live session torn down")

    # -- Properties -----------------------------------------------------------

    @property
    def local_user_id(self) -> str:
        return self._local_user_id

    @property
    def state(self) -> ConnectionState:
        return self._connection.state

    @property
    def is_connected(self) -> bool:
        return self._connection.is_connected

    @property
    def joined_channels(self) -> tuple[str, ...]:
        return self._mux.joined

    @property
    def focused(self) -> Surface | None:
        return self._focused

    @property
    def stats(self) -> ConnectionStats:
        return ConnectionStats(
            frames_received=self._connection.frames_received,
            frames_dropped=self._classifier.dropped,
            events_dispatched=self._events_dispatched,
            commands_sent=self._connection.commands_sent,
            reconnect_count=self._connection.reconnect_count,
            connected_since=self._connection.connected_since,
        )

    # -- Channels -------------------------------------------------------------

    async def subscribe_to_group(self, channel_id: str, is_member: bool = True) -> bool:
        """Join a group channel.  Non-members are not subscribed."""
        if not is_member:
            logger.debug("Not a member of %s, not subscribing", channel_id)
            return False
        return await self._mux.join(channel_id)

    async def unsubscribe_from_group(self, channel_id: str) -> bool:
        return await self._mux.leave(channel_id)

    # -- Sending --------------------------------------------------------------

    async def send_private_message(
        self,
        interlocutor_id: str,
        text: str,
        *,
        client_ref: str | None = None,
    ) -> SendReceipt:
        """Send a direct message.

        Raises:
            LiveConnectionError: If the transport is not open.
        """
        payload = {"interlocutor_id": str(interlocutor_id), "message_text": text}
        return await self._send_chat(CMD_PRIVATE_CHAT, payload, client_ref)

    async def send_group_message(
        self,
        channel_id: str,
        text: str,
        *,
        client_ref: str | None = None,
    ) -> SendReceipt:
        """Send a message to a group channel.

        Raises:
            LiveConnectionError: If the transport is not open.
        """
        payload = {"group_id": str(channel_id), "message_text": text}
        return await self._send_chat(CMD_GROUP_CHAT, payload, client_ref)

    async def _send_chat(
        self,
        keyword: str,
        payload: dict[str, str],
        client_ref: str | None,
    ) -> SendReceipt:
        if self._torn_down:
            raise LiveSessionError("LiveClient has been torn down")
        if not self._connection.is_connected:
            raise LiveConnectionError("Not connected")

        client_ref = client_ref or uuid4().hex
        command = encode_command(keyword, {**payload, "client_ref": client_ref})
        if not await self._connection.send(command):
            raise LiveConnectionError("Send failed: transport not open")
        return SendReceipt(client_ref=client_ref, command=command)

    # -- Listener registration ------------------------------------------------

    def add_listener(self, kind: EventKind, listener: Listener[Any]) -> Listener[Any]:
        return self._registries[EventKind(kind)].add(listener)

    def remove_listener(self, kind: EventKind, listener: Listener[Any]) -> None:
        self._registries[EventKind(kind)].remove(listener)

    def on(self, kind: EventKind) -> Callable[[Listener[Any]], Listener[Any]]:
        """Decorator to register a listener for one event kind.

        Example::

            @live.on(EventKind.NOTIFICATION)
            async def handle(notification: Notification):
                print(notification.body)
        """

        def decorator(fn: Listener[Any]) -> Listener[Any]:
            return self.add_listener(kind, fn)

        return decorator

    def add_on_private_message(
        self, listener: Listener[PrivateMessage]
    ) -> Listener[PrivateMessage]:
        return self.add_listener(EventKind.PRIVATE_MESSAGE, listener)

    def remove_on_private_message(self, listener: Listener[PrivateMessage]) -> None:
        self.remove_listener(EventKind.PRIVATE_MESSAGE, listener)

    def add_on_group_message(
        self, listener: Listener[GroupMessage]
    ) -> Listener[GroupMessage]:
        return self.add_listener(EventKind.GROUP_MESSAGE, listener)

    def remove_on_group_message(self, listener: Listener[GroupMessage]) -> None:
        self.remove_listener(EventKind.GROUP_MESSAGE, listener)

    def add_on_notification(
        self, listener: Listener[Notification]
    ) -> Listener[Notification]:
        return self.add_listener(EventKind.NOTIFICATION, listener)

    def remove_on_notification(self, listener: Listener[Notification]) -> None:
        self.remove_listener(EventKind.NOTIFICATION, listener)

    # -- Focus / unread -------------------------------------------------------

    def set_focus(self, surface: Surface | None) -> None:
        """Declare which surface is on screen (``None`` for none)."""
        self._focused = surface

    def is_focused(self, surface: Surface) -> bool:
        return self._focused is not None and self._focused == surface

    def mark_viewed(self, surface: Surface) -> int:
        return self.unread.mark_viewed(surface)

    async def load_initial_counts(
        self,
        api: ChatApi,
        previews: Iterable[ConversationSummary] | None = None,
        per_surface: Mapping[Surface, int] | None = None,
    ) -> None:
        """Seed the unread accountant from the REST gateway (once).

        Message counters are in messages.  Each preview's ``unread_count``
        seeds its conversation, entries in *per_surface* override or add
        surfaces, and each message total is the sum of its surfaces.  When
        *previews* is omitted, pages are fetched until every conversation
        the gateway reports as unread has been seen.
        """
        if previews is None:
            previews = await self._fetch_unread_previews(api)
        notifications = await api.get_notification_count()

        counts: dict[Surface, int] = {
            Surface.conversation(summary.conversation_id): summary.unread_count
            for summary in previews
            if summary.unread_count > 0
        }
        counts.update(per_surface or {})
        totals = {kind: 0 for kind in EventKind}
        for surface, value in counts.items():
            totals[surface.kind] += max(0, int(value))

        self.unread.seed(
            private_messages=totals[EventKind.PRIVATE_MESSAGE],
            group_messages=totals[EventKind.GROUP_MESSAGE],
            notifications=notifications,
            per_surface=counts,
        )

    async def _fetch_unread_previews(self, api: ChatApi) -> list[ConversationSummary]:
        expected = await api.get_unread_conversation_count()
        previews: list[ConversationSummary] = []
        before_date: str | None = None
        found = 0
        while found < expected:
            page = await api.get_conversations(
                limit=CONVERSATION_PAGE_SIZE, before_date=before_date
            )
            previews.extend(page)
            found += sum(1 for summary in page if summary.unread_count > 0)
            if len(page) < CONVERSATION_PAGE_SIZE or page[-1].updated_at is None:
                break
            before_date = page[-1].updated_at
        if found < expected:
            logger.warning(
                "Gateway reports %d unread conversations, previews show %d",
                expected,
                found,
            )
        return previews

    def on_user_gesture(self) -> None:
        """Unlock audio: play cues held back while playback was blocked."""
        for throttle in self.alerts.values():
            throttle.on_user_gesture()

    async def drain(self) -> None:
        """Wait for async listeners scheduled by frames already received."""
        await asyncio.gather(*(registry.drain() for registry in self._registries.values()))

    # -- Stats ----------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Return session statistics."""
        stats = self.stats
        return {
            "state": self._connection.state.value,
            "joined_channels": list(self._mux.joined),
            "frames_received": stats.frames_received,
            "frames_dropped": stats.frames_dropped,
            "events_dispatched": stats.events_dispatched,
            "commands_sent": stats.commands_sent,
            "reconnect_count": stats.reconnect_count,
            "unread": {kind.value: self.unread.total(kind) for kind in EventKind},
            "listeners": {
                kind.value: len(registry) for kind, registry in self._registries.items()
            },
        }

    # -- Internal -------------------------------------------------------------

    def _on_raw_message(self, data: str | bytes) -> None:
        events = self._classifier.feed(data)
        self._events_dispatched += len(events)

    async def _on_open(self) -> None:
        await self._mux.replay()

    def _on_state_change(self, state: ConnectionState) -> None:
        self.connection_state._set(state)

    def _on_alert(self, event: InboundEvent) -> None:
        self.alerts[event.kind].on_event(event, self._local_user_id, self._focused)
