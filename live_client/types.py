# =============================================================================
# Live Client -- Type Definitions
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Union

from .constants import (
    RECONNECT_BASE_DELAY,
    RECONNECT_FACTOR,
    RECONNECT_MAX_ATTEMPTS,
    RECONNECT_MAX_DELAY,
)


class ConnectionState(str, Enum):
    """Live connection lifecycle state.

    Typical flow: DISCONNECTED -> CONNECTING -> CONNECTED. After an
    unexpected close: DISCONNECTED (backoff wait) -> RECONNECTING ->
    CONNECTED. Only an explicit disconnect leaves it DISCONNECTED for good.
    """

    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"


class EventKind(str, Enum):
    """Class of an inbound event; one listener registry exists per kind."""

    PRIVATE_MESSAGE = "private_message"
    GROUP_MESSAGE = "group_message"
    NOTIFICATION = "notification"


@dataclass(frozen=True, slots=True)
class Sender:
    """Author of an event as embedded in the wire payload."""

    id: str
    username: str | None = None
    avatar_url: str | None = None


@dataclass(frozen=True, slots=True)
class PrivateMessage:
    """A direct message inside a one-to-one conversation.

    Attributes:
        id: Server id, or a ``temp-`` id while ``pending``.
        conversation_id: Conversation the message belongs to.
        sender: Author (``None`` if the frame carried none).
        body: Message text.
        created_at: ISO-8601 creation timestamp.
        client_ref: Correlation token echoed back for the sender's own sends.
        pending: True for a local placeholder awaiting confirmation.
        raw: The wire dict this event was normalized from.
    """

    kind: ClassVar[EventKind] = EventKind.PRIVATE_MESSAGE

    id: str
    conversation_id: str
    sender: Sender | None
    body: str
    created_at: str | None = None
    client_ref: str | None = None
    pending: bool = False
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def channel_id(self) -> str:
        return self.conversation_id


@dataclass(frozen=True, slots=True)
class GroupMessage:
    """A message posted to a group channel."""

    kind: ClassVar[EventKind] = EventKind.GROUP_MESSAGE

    id: str
    group_id: str
    sender: Sender | None
    body: str
    created_at: str | None = None
    client_ref: str | None = None
    pending: bool = False
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def channel_id(self) -> str:
        return self.group_id


@dataclass(frozen=True, slots=True)
class Notification:
    """A notification event (new follower, group invite, post reply, ...).

    ``body`` is the human-readable message; ``payload`` holds the
    type-specific fields (ids and names of the entities involved).
    """

    kind: ClassVar[EventKind] = EventKind.NOTIFICATION

    id: str | None
    notification_type: str
    sender: Sender | None = None
    body: str = ""
    title: str | None = None
    created_at: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    needs_action: bool = False
    acted: bool = False
    count: int = 1
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


InboundEvent = Union[PrivateMessage, GroupMessage, Notification]
ChatMessage = Union[PrivateMessage, GroupMessage]


@dataclass(frozen=True, slots=True)
class Surface:
    """A UI surface that can be focused and marked viewed.

    ``id`` is the conversation id for direct chats, the group id for group
    chats and ``None`` for the notification list.
    """

    kind: EventKind
    id: str | None = None

    @classmethod
    def conversation(cls, conversation_id: str) -> Surface:
        return cls(EventKind.PRIVATE_MESSAGE, str(conversation_id))

    @classmethod
    def group(cls, group_id: str) -> Surface:
        return cls(EventKind.GROUP_MESSAGE, str(group_id))

    @classmethod
    def notifications(cls) -> Surface:
        return cls(EventKind.NOTIFICATION, None)

    @classmethod
    def of(cls, event: InboundEvent) -> Surface:
        """The surface an inbound event belongs to."""
        if isinstance(event, PrivateMessage):
            return cls.conversation(event.conversation_id)
        if isinstance(event, GroupMessage):
            return cls.group(event.group_id)
        return cls.notifications()


@dataclass(frozen=True, slots=True)
class SendReceipt:
    """Completion handle of a chat send.

    Resolves when the command has been handed to the transport, not when
    the server acknowledged it; the acknowledgment arrives later as a
    regular inbound event carrying the same ``client_ref``.
    """

    client_ref: str
    command: str
    sent: bool = True


@dataclass
class ConversationSummary:
    """Preview row of the conversation list."""

    conversation_id: str
    interlocutor: Sender | None = None
    last_message: PrivateMessage | None = None
    updated_at: str | None = None
    unread_count: int = 0


@dataclass
class ConnectionStats:
    """Counters for a single session."""

    frames_received: int = 0
    frames_dropped: int = 0
    events_dispatched: int = 0
    commands_sent: int = 0
    reconnect_count: int = 0
    connected_since: float | None = None


@dataclass
class ReconnectConfig:
    """Configuration for automatic reconnection.

    Attributes:
        base_delay: Delay in seconds before the first retry.
        max_delay: Ceiling for the backoff delay.
        factor: Multiplier per attempt (``base * factor ** attempt``).
        max_attempts: Max retries, ``-1`` for infinite.
        jitter: Randomize delays by +/-10% to avoid thundering herd.
    """

    base_delay: float = RECONNECT_BASE_DELAY
    max_delay: float = RECONNECT_MAX_DELAY
    factor: float = RECONNECT_FACTOR
    max_attempts: int = RECONNECT_MAX_ATTEMPTS
    jitter: bool = False
