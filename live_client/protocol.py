# =============================================================================
# Live Client -- Wire Protocol
# =============================================================================
#
# Incoming (server -> client):
#   A JSON object (direct reply to one of our sends) or a JSON array of
#   objects (events batched by the gateway).  Field names arrive either in
#   snake_case or PascalCase depending on the backend path that emitted them.
#
# Outgoing (client -> server):
#   Text commands "<keyword>:<payload>", e.g. "sub:42" or
#   'private_chat:{"interlocutor_id":"7","message_text":"hi"}'.
# =============================================================================

from __future__ import annotations

from typing import Any, Mapping

import orjson

from ._logging import logger
from .constants import (
    CMD_GROUP_CHAT,
    CMD_PRIVATE_CHAT,
    CMD_SUBSCRIBE,
    CMD_UNSUBSCRIBE,
    COMMAND_SEPARATOR,
    MAX_MESSAGE_SIZE,
)
from .errors import LiveProtocolError
from .listeners import ListenerRegistry
from .types import (
    ConversationSummary,
    EventKind,
    GroupMessage,
    InboundEvent,
    Notification,
    PrivateMessage,
    Sender,
)

_COMMANDS = frozenset({CMD_SUBSCRIBE, CMD_UNSUBSCRIBE, CMD_PRIVATE_CHAT, CMD_GROUP_CHAT})

# Canonical field -> accepted wire spellings, in lookup order
_ID = ("id", "Id")
_GROUP_ID = ("group_id", "GroupId")
_CONVERSATION_ID = ("conversation_id", "ConversationId")
_SENDER = ("sender", "Sender")
_BODY = ("message_text", "MessageText")
_CREATED_AT = ("created_at", "CreatedAt")
_CLIENT_REF = ("client_ref", "ClientRef")
_NOTIFICATION_TYPE = ("notification_type", "type")
_SENDER_ID = ("id", "Id", "UserId", "user_id")
_SENDER_NAME = ("username", "Username")
_SENDER_AVATAR = ("avatar_url", "AvatarURL", "AvatarUrl")


def _pick(raw: Mapping[str, Any], names: tuple[str, ...]) -> Any:
    """First present, non-empty value among *names*."""
    for name in names:
        value = raw.get(name)
        if value is not None and value != "":
            return value
    return None


def _as_id(value: Any) -> str | None:
    return None if value is None else str(value)


def _sender(raw: Mapping[str, Any]) -> Sender | None:
    value = _pick(raw, _SENDER)
    if not isinstance(value, Mapping):
        return None
    sender_id = _pick(value, _SENDER_ID)
    if sender_id is None:
        return None
    return Sender(
        id=str(sender_id),
        username=_pick(value, _SENDER_NAME),
        avatar_url=_pick(value, _SENDER_AVATAR),
    )


def classify(raw: Mapping[str, Any]) -> EventKind | None:
    """Classify a wire dict.

    Precedence: group id, then conversation id, then a notification type
    discriminator.  Returns ``None`` for anything else.
    """
    if _pick(raw, _GROUP_ID) is not None:
        return EventKind.GROUP_MESSAGE
    if _pick(raw, _CONVERSATION_ID) is not None:
        return EventKind.PRIVATE_MESSAGE
    if _pick(raw, _NOTIFICATION_TYPE) is not None:
        return EventKind.NOTIFICATION
    return None


def normalize_event(raw: Mapping[str, Any]) -> InboundEvent | None:
    """Map a wire dict in either naming convention to a canonical event.

    This is the only place that knows about both spellings; everything
    downstream works with :data:`~live_client.types.InboundEvent`.
    """
    kind = classify(raw)
    if kind is None:
        return None

    data = dict(raw)
    event_id = _as_id(_pick(raw, _ID))
    sender = _sender(raw)
    created_at = _pick(raw, _CREATED_AT)

    if kind is EventKind.GROUP_MESSAGE:
        return GroupMessage(
            id=event_id or "",
            group_id=str(_pick(raw, _GROUP_ID)),
            sender=sender,
            body=str(_pick(raw, _BODY) or ""),
            created_at=created_at,
            client_ref=_as_id(_pick(raw, _CLIENT_REF)),
            raw=data,
        )

    if kind is EventKind.PRIVATE_MESSAGE:
        return PrivateMessage(
            id=event_id or "",
            conversation_id=str(_pick(raw, _CONVERSATION_ID)),
            sender=sender,
            body=str(_pick(raw, _BODY) or ""),
            created_at=created_at,
            client_ref=_as_id(_pick(raw, _CLIENT_REF)),
            raw=data,
        )

    payload = _pick(raw, ("payload", "Payload"))
    count = _pick(raw, ("count", "Count"))
    return Notification(
        id=event_id,
        notification_type=str(_pick(raw, _NOTIFICATION_TYPE)),
        sender=sender,
        body=str(_pick(raw, ("message", "Message")) or ""),
        title=_pick(raw, ("title", "Title")),
        created_at=created_at,
        payload=dict(payload) if isinstance(payload, Mapping) else {},
        needs_action=bool(_pick(raw, ("needs_action", "NeedsAction"))),
        acted=bool(_pick(raw, ("acted", "Acted"))),
        count=int(count) if isinstance(count, int) else 1,
        raw=data,
    )


def normalize_conversation(raw: Mapping[str, Any]) -> ConversationSummary:
    """Map a REST conversation preview to a :class:`ConversationSummary`."""
    conversation_id = str(_pick(raw, ("ConversationId", "conversation_id")) or "")

    interlocutor = None
    value = _pick(raw, ("Interlocutor", "interlocutor"))
    if isinstance(value, Mapping):
        interlocutor = _sender({"sender": value})

    last_message = None
    value = _pick(raw, ("LastMessage", "last_message"))
    if isinstance(value, Mapping) and _pick(value, _ID) is not None:
        message = normalize_event({"conversation_id": conversation_id, **value})
        if isinstance(message, PrivateMessage):
            last_message = message

    unread = _pick(raw, ("UnreadCount", "unread_count"))
    return ConversationSummary(
        conversation_id=conversation_id,
        interlocutor=interlocutor,
        last_message=last_message,
        updated_at=_pick(raw, ("UpdatedAt", "updated_at")),
        unread_count=int(unread) if isinstance(unread, int) else 0,
    )


class FrameClassifier:
    """Decode inbound frames, classify each item and fan it out.

    Args:
        routes: One :class:`ListenerRegistry` per :class:`EventKind`.
            Kinds without a route are decoded and dropped.
    """

    def __init__(
        self,
        routes: Mapping[EventKind, ListenerRegistry[Any]] | None = None,
    ) -> None:
        self._routes = dict(routes or {})
        self.dropped = 0

    def decode(self, frame: str | bytes) -> list[InboundEvent]:
        """Decode one frame into events, in wire order.

        Empty frames, invalid JSON and unclassifiable items are logged and
        skipped; this never raises for bad input.
        """
        data = frame if isinstance(frame, bytes) else frame.encode("utf-8")
        if len(data) > MAX_MESSAGE_SIZE:
            logger.warning("Frame exceeds max size (%d bytes), dropping", len(data))
            self.dropped += 1
            return []

        if isinstance(frame, bytes):
            try:
                frame = frame.decode("utf-8")
            except UnicodeDecodeError:
                logger.warning("Dropping non UTF-8 binary frame (%d bytes)", len(data))
                self.dropped += 1
                return []

        if not frame.strip():
            return []

        try:
            parsed = orjson.loads(frame)
        except orjson.JSONDecodeError as exc:
            logger.warning("Failed to parse frame: %s", exc)
            self.dropped += 1
            return []

        if isinstance(parsed, dict):
            items: list[Any] = [parsed]
        elif isinstance(parsed, list):
            items = parsed
        else:
            # The gateway writes rejected sends back as a bare JSON string
            logger.warning("Server error frame: %s", parsed)
            self.dropped += 1
            return []

        events: list[InboundEvent] = []
        for item in items:
            event = normalize_event(item) if isinstance(item, dict) else None
            if event is None:
                logger.debug("Unknown message type, dropping: %s", item)
                self.dropped += 1
                continue
            events.append(event)
        return events

    def feed(self, frame: str | bytes) -> list[InboundEvent]:
        """Decode *frame* and broadcast each event to its registry in order."""
        events = self.decode(frame)
        for event in events:
            registry = self._routes.get(event.kind)
            if registry is None:
                logger.debug("No registry for %s, dropping", event.kind.value)
                continue
            logger.debug("%s received: %s", event.kind.value, event.id)
            registry.broadcast(event)
        return events


def encode_command(keyword: str, payload: str | Mapping[str, Any]) -> str:
    """Build an outbound text command.

    Mapping payloads are serialized as compact JSON; string payloads are
    sent as-is (channel ids for ``sub``/``unsub``).
    """
    if keyword not in _COMMANDS:
        raise LiveProtocolError(f"Unknown command: {keyword!r}")
    if isinstance(payload, Mapping):
        body = orjson.dumps(dict(payload)).decode()
    else:
        body = str(payload)
    if not body:
        raise LiveProtocolError(f"Empty payload for {keyword!r}")
    return f"{keyword}{COMMAND_SEPARATOR}{body}"
