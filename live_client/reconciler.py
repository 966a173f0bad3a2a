# =============================================================================
# Live Client -- Optimistic Send Reconciler
# =============================================================================
#
# A send shows up in the local list immediately as a pending placeholder.
# The server's echo later replaces it in place.  Echoes are matched by the
# client_ref token we attach to every chat command; echoes without a token
# fall back to matching the first pending placeholder with the same body.
# =============================================================================

from __future__ import annotations

from enum import Enum
from typing import Awaitable, Callable, Generic, Iterable, TypeVar
from uuid import uuid4

from ._logging import logger
from .constants import TEMP_ID_PREFIX
from .errors import LiveProtocolError
from .types import ChatMessage, SendReceipt

M = TypeVar("M", bound=ChatMessage)

PlaceholderFactory = Callable[[str, str, str], M]
"""``(body, temp_id, client_ref) -> placeholder`` with ``pending=True``."""

SendFn = Callable[[str, str], Awaitable[SendReceipt]]
"""``(body, client_ref) -> receipt``; raises LiveConnectionError when offline."""


class ReconcileResult(str, Enum):
    REPLACED = "replaced"
    APPENDED = "appended"
    DUPLICATE = "duplicate"


class OptimisticSendReconciler(Generic[M]):
    """Ordered message list of one surface plus its pending sends.

    Args:
        local_user_id: Id of the signed-in user; only their echoes can
            replace a placeholder.
        make_placeholder: Builds the pending entry for a send.
        send: Issues the chat command.
        entries: Initial history, oldest first.
    """

    def __init__(
        self,
        *,
        local_user_id: str,
        make_placeholder: PlaceholderFactory[M],
        send: SendFn,
        entries: Iterable[M] = (),
    ) -> None:
        self._local_user_id = str(local_user_id)
        self._make_placeholder = make_placeholder
        self._send = send
        self._entries: list[M] = list(entries)
        # client_ref -> temp id, in send order
        self._pending: dict[str, str] = {}
        self.draft = ""

    @property
    def entries(self) -> tuple[M, ...]:
        return tuple(self._entries)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, event_id: object) -> bool:
        return self._index_of(str(event_id)) is not None

    # -- Sending --------------------------------------------------------------

    async def send(self, body: str | None = None) -> SendReceipt:
        """Append a placeholder for *body* (default: the draft) and send it.

        If the send fails for any reason, cancellation included, the
        placeholder is removed, the draft is restored to *body* and the
        error is re-raised.
        """
        text = self.draft if body is None else body
        if not text.strip():
            raise LiveProtocolError("Cannot send an empty message")

        temp_id = f"{TEMP_ID_PREFIX}{uuid4().hex}"
        client_ref = uuid4().hex
        self._entries.append(self._make_placeholder(text, temp_id, client_ref))
        self._pending[client_ref] = temp_id
        self.draft = ""

        try:
            return await self._send(text, client_ref)
        except BaseException as exc:
            self._pending.pop(client_ref, None)
            self._remove(temp_id)
            self.draft = text
            logger.warning("Send failed, draft restored: %r", exc)
            raise

    # -- Inbound --------------------------------------------------------------

    def matches_pending(self, event: M) -> bool:
        """Whether *event* would replace one of our placeholders."""
        return self._find_pending(event) is not None

    def reconcile(self, event: M) -> ReconcileResult:
        """Merge a confirmed event into the list.

        Idempotent by id.  An own echo replaces its placeholder in place;
        anything else is appended.
        """
        if self._index_of(event.id) is not None:
            return ReconcileResult.DUPLICATE

        client_ref = self._find_pending(event)
        if client_ref is not None:
            temp_id = self._pending.pop(client_ref)
            index = self._index_of(temp_id)
            if index is not None:
                self._entries[index] = event
                return ReconcileResult.REPLACED

        self._entries.append(event)
        return ReconcileResult.APPENDED

    def prepend_history(self, events: Iterable[M]) -> int:
        """Put an older page in front of the list, skipping known ids."""
        known = {entry.id for entry in self._entries}
        older = []
        for event in events:
            if event.id in known:
                continue
            known.add(event.id)
            older.append(event)
        self._entries[:0] = older
        return len(older)

    def clear(self) -> None:
        self._entries.clear()
        self._pending.clear()

    # -- Internal -------------------------------------------------------------

    def _find_pending(self, event: M) -> str | None:
        if not self._pending:
            return None
        if event.sender is None or event.sender.id != self._local_user_id:
            return None

        if event.client_ref is not None:
            return event.client_ref if event.client_ref in self._pending else None

        for client_ref, temp_id in self._pending.items():
            index = self._index_of(temp_id)
            if index is not None and self._entries[index].body == event.body:
                return client_ref
        return None

    def _index_of(self, event_id: str) -> int | None:
        for index, entry in enumerate(self._entries):
            if entry.id == event_id:
                return index
        return None

    def _remove(self, event_id: str) -> None:
        index = self._index_of(event_id)
        if index is not None:
            del self._entries[index]
