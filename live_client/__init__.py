"""Real-time sync layer for the social network's live gateway.

One WebSocket per signed-in session, shared by every chat pane, the
conversation list, unread badges and alerts::

    from live_client import connect, EventKind

    async with connect("ws://localhost:8081", local_user_id="7", token="jwt") as live:
        @live.on(EventKind.PRIVATE_MESSAGE)
        def show(message):
            print(message.sender.username, message.body)

        await live.subscribe_to_group("42", is_member=True)
        await live.send_private_message("9", "hello")

Chat panes with optimistic sends::

    from live_client import ConversationPane

    with ConversationPane(live, interlocutor_id="9") as pane:
        await pane.send("hi")          # placeholder shown immediately
        print(pane.messages.entries)   # replaced in place by the server echo
"""

from ._version import __version__
from .alerts import AlertThrottle, AudioSink, NullAudioSink
from .api import ChatApi
from .client import LiveClient
from .config import LiveConfig
from .connection import ConnectionManager
from .errors import (
    LiveApiError,
    LiveConnectionError,
    LiveError,
    LiveProtocolError,
    LiveSessionError,
    PlaybackBlockedError,
)
from .listeners import ListenerRegistry, Observable
from .protocol import FrameClassifier, encode_command, normalize_event
from .reconciler import OptimisticSendReconciler, ReconcileResult
from .subscriptions import SubscriptionMultiplexer
from .surfaces import ConversationList, ConversationPane, GroupChatPane
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
    Sender,
    SendReceipt,
    Surface,
)
from .unread import UnreadAccountant


def connect(
    url: str,
    **kwargs,
) -> LiveClient:
    """Create a live session.

    Use as an async context manager. Keyword arguments are forwarded
    to :class:`LiveClient` -- common ones: ``local_user_id``, ``token``,
    ``reconnect``, ``audio_sink``.

    Args:
        url: WebSocket base URL, e.g. ``"ws://localhost:8081"``.
        **kwargs: Passed to :class:`LiveClient`.

    Returns:
        A :class:`LiveClient` instance.
    """
    return LiveClient(url, **kwargs)


__all__ = [
    "__version__",
    "connect",
    "LiveClient",
    "LiveConfig",
    "ChatApi",
    "ConnectionManager",
    "SubscriptionMultiplexer",
    "FrameClassifier",
    "normalize_event",
    "encode_command",
    "ListenerRegistry",
    "Observable",
    "OptimisticSendReconciler",
    "ReconcileResult",
    "UnreadAccountant",
    "AlertThrottle",
    "AudioSink",
    "NullAudioSink",
    "ConversationPane",
    "GroupChatPane",
    "ConversationList",
    "ConnectionState",
    "ConnectionStats",
    "ConversationSummary",
    "EventKind",
    "InboundEvent",
    "PrivateMessage",
    "GroupMessage",
    "Notification",
    "Sender",
    "SendReceipt",
    "Surface",
    "ReconnectConfig",
    "LiveError",
    "LiveConnectionError",
    "LiveProtocolError",
    "LiveSessionError",
    "LiveApiError",
    "PlaybackBlockedError",
]
