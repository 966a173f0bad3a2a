# =============================================================================
# Live Client -- Surfaces
# =============================================================================
#
# Consumers of the session that keep local state: the two chat panes and the
# conversation list.  Each one attaches its own listener to the shared
# LiveClient and detaches it when it goes away; detaching never touches the
# connection or channel membership.
# =============================================================================

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable

from ._logging import logger
from .errors import LiveApiError
from .reconciler import OptimisticSendReconciler
from .types import (
    ConversationSummary,
    EventKind,
    GroupMessage,
    PrivateMessage,
    SendReceipt,
    Sender,
    Surface,
)

if TYPE_CHECKING:
    from .api import ChatApi
    from .client import LiveClient

FetchConversation = Callable[[str, str], Awaitable[ConversationSummary]]


def _now() -> str:
    return datetime.now(UTC).isoformat()


class _ChatPane:
    """Shared attach/focus plumbing of the chat panes."""

    kind: EventKind

    def __init__(self, client: LiveClient) -> None:
        self._client = client
        self._attached = False
        self._viewing = False

    @property
    def surface(self) -> Surface | None:
        raise NotImplementedError

    @property
    def attached(self) -> bool:
        return self._attached

    def attach(self) -> None:
        if not self._attached:
            self._client.add_listener(self.kind, self._on_message)
            self._attached = True

    def detach(self) -> None:
        if not self._attached:
            return
        self._client.remove_listener(self.kind, self._on_message)
        self._attached = False
        self.blur()

    def blur(self) -> None:
        """The pane left the screen."""
        self._viewing = False
        if self.surface is not None and self._client.is_focused(self.surface):
            self._client.set_focus(None)

    def __enter__(self) -> Any:
        self.attach()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.detach()

    def _focus(self) -> int:
        self._viewing = True
        surface = self.surface
        if surface is None:
            return 0
        self._client.set_focus(surface)
        return self._client.mark_viewed(surface)

    def _on_message(self, event: Any) -> None:
        raise NotImplementedError


class ConversationPane(_ChatPane):
    """Direct chat with one interlocutor.

    A brand-new conversation has no id until the first message of it comes
    back from the server; the pane learns it from that message.
    """

    kind = EventKind.PRIVATE_MESSAGE

    def __init__(
        self,
        client: LiveClient,
        interlocutor_id: str,
        conversation_id: str | None = None,
        *,
        history: Iterable[PrivateMessage] = (),
        api: ChatApi | None = None,
    ) -> None:
        super().__init__(client)
        self.interlocutor_id = str(interlocutor_id)
        self.conversation_id = str(conversation_id) if conversation_id else None
        self._api = api
        self.messages: OptimisticSendReconciler[PrivateMessage] = OptimisticSendReconciler(
            local_user_id=client.local_user_id,
            make_placeholder=self._placeholder,
            send=self._send,
            entries=history,
        )

    @property
    def surface(self) -> Surface | None:
        if self.conversation_id is None:
            return None
        return Surface.conversation(self.conversation_id)

    async def send(self, text: str | None = None) -> SendReceipt:
        """Send *text* (default: the draft) with an optimistic placeholder."""
        return await self.messages.send(text)

    async def view(self) -> int:
        """Bring the pane on screen: focus it, zero its unread count and
        report the last confirmed message as read.

        Returns the unread count cleared.
        """
        cleared = self._focus()
        if self._api is not None and self.conversation_id is not None:
            last = next(
                (m for m in reversed(self.messages.entries) if not m.pending),
                None,
            )
            if last is not None:
                try:
                    await self._api.mark_read(self.conversation_id, last.id)
                except LiveApiError as exc:
                    logger.warning("Mark read failed for %s: %s", self.conversation_id, exc)
        return cleared

    def _accepts(self, event: PrivateMessage) -> bool:
        if self.conversation_id is not None:
            return event.conversation_id == self.conversation_id
        sender_id = event.sender.id if event.sender else None
        if sender_id == self.interlocutor_id:
            return True
        return sender_id == self._client.local_user_id and self.messages.matches_pending(event)

    def _on_message(self, event: PrivateMessage) -> None:
        if not self._accepts(event):
            return
        if self.conversation_id is None:
            self.conversation_id = event.conversation_id
            logger.debug("Conversation with %s is %s", self.interlocutor_id, self.conversation_id)
            if self._viewing:
                self._focus()
        self.messages.reconcile(event)

    def _placeholder(self, body: str, temp_id: str, client_ref: str) -> PrivateMessage:
        return PrivateMessage(
            id=temp_id,
            conversation_id=self.conversation_id or "",
            sender=Sender(self._client.local_user_id),
            body=body,
            created_at=_now(),
            client_ref=client_ref,
            pending=True,
        )

    async def _send(self, body: str, client_ref: str) -> SendReceipt:
        return await self._client.send_private_message(
            self.interlocutor_id, body, client_ref=client_ref
        )


class GroupChatPane(_ChatPane):
    """Chat of one group channel."""

    kind = EventKind.GROUP_MESSAGE

    def __init__(
        self,
        client: LiveClient,
        group_id: str,
        *,
        history: Iterable[GroupMessage] = (),
    ) -> None:
        super().__init__(client)
        self.group_id = str(group_id)
        self.messages: OptimisticSendReconciler[GroupMessage] = OptimisticSendReconciler(
            local_user_id=client.local_user_id,
            make_placeholder=self._placeholder,
            send=self._send,
            entries=history,
        )

    @property
    def surface(self) -> Surface:
        return Surface.group(self.group_id)

    async def join(self, is_member: bool = True) -> bool:
        """Attach and subscribe to the channel (members only)."""
        self.attach()
        return await self._client.subscribe_to_group(self.group_id, is_member)

    async def leave(self) -> bool:
        """Unsubscribe from the channel and detach."""
        left = await self._client.unsubscribe_from_group(self.group_id)
        self.detach()
        return left

    async def send(self, text: str | None = None) -> SendReceipt:
        return await self.messages.send(text)

    def view(self) -> int:
        """Focus the pane and zero its unread count; returns the count cleared."""
        return self._focus()

    def _on_message(self, event: GroupMessage) -> None:
        if event.group_id == self.group_id:
            self.messages.reconcile(event)

    def _placeholder(self, body: str, temp_id: str, client_ref: str) -> GroupMessage:
        return GroupMessage(
            id=temp_id,
            group_id=self.group_id,
            sender=Sender(self._client.local_user_id),
            body=body,
            created_at=_now(),
            client_ref=client_ref,
            pending=True,
        )

    async def _send(self, body: str, client_ref: str) -> SendReceipt:
        return await self._client.send_group_message(
            self.group_id, body, client_ref=client_ref
        )


class ConversationList:
    """Conversation previews, most recently updated first.

    Unread numbers are not stored here; :meth:`unread` reads them from the
    session's accountant.

    Args:
        client: The session.
        initial: Previews loaded from the gateway.
        fetch_conversation: ``(conversation_id, interlocutor_id) -> preview``
            for conversations first seen over the socket, e.g.
            :meth:`ChatApi.get_conversation`.
    """

    def __init__(
        self,
        client: LiveClient,
        initial: Iterable[ConversationSummary] = (),
        fetch_conversation: FetchConversation | None = None,
    ) -> None:
        self._client = client
        self._fetch_conversation = fetch_conversation
        self._by_id: dict[str, ConversationSummary] = {
            summary.conversation_id: summary for summary in initial
        }
        # conversation id -> newest message seen while its preview is loading
        self._fetching: dict[str, PrivateMessage] = {}
        self._attached = False

    @property
    def conversations(self) -> list[ConversationSummary]:
        return sorted(
            self._by_id.values(),
            key=lambda summary: summary.updated_at or "",
            reverse=True,
        )

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, conversation_id: object) -> bool:
        return str(conversation_id) in self._by_id

    def get(self, conversation_id: str) -> ConversationSummary | None:
        return self._by_id.get(str(conversation_id))

    def unread(self, conversation_id: str) -> int:
        return self._client.unread.count(Surface.conversation(conversation_id))

    def mark_viewed(self, conversation_id: str) -> int:
        return self._client.mark_viewed(Surface.conversation(conversation_id))

    def upsert(self, summary: ConversationSummary) -> None:
        self._by_id[summary.conversation_id] = summary

    def attach(self) -> None:
        if not self._attached:
            self._client.add_on_private_message(self._on_message)
            self._attached = True

    def detach(self) -> None:
        if self._attached:
            self._client.remove_on_private_message(self._on_message)
            self._attached = False

    def _on_message(self, event: PrivateMessage) -> Awaitable[None] | None:
        summary = self._by_id.get(event.conversation_id)
        if summary is not None:
            _apply(summary, event, self._client.local_user_id)
            return None

        if event.conversation_id in self._fetching:
            self._fetching[event.conversation_id] = event
            return None

        is_own = event.sender is not None and event.sender.id == self._client.local_user_id
        if is_own or event.sender is None or self._fetch_conversation is None:
            return None

        self._fetching[event.conversation_id] = event
        return self._fetch(self._fetch_conversation, event.conversation_id, event.sender.id)

    async def _fetch(
        self,
        fetch_conversation: FetchConversation,
        conversation_id: str,
        interlocutor_id: str,
    ) -> None:
        try:
            summary = await fetch_conversation(conversation_id, interlocutor_id)
        except LiveApiError as exc:
            logger.warning("Could not load conversation %s: %s", conversation_id, exc)
            return
        finally:
            latest = self._fetching.pop(conversation_id, None)

        if conversation_id in self._by_id:
            summary = self._by_id[conversation_id]
        if latest is not None:
            _apply(summary, latest, self._client.local_user_id)
        self._by_id[conversation_id] = summary


def _apply(summary: ConversationSummary, event: PrivateMessage, local_user_id: str) -> None:
    summary.last_message = event
    if event.created_at:
        summary.updated_at = event.created_at
    if (
        summary.interlocutor is None
        and event.sender is not None
        and event.sender.id != local_user_id
    ):
        summary.interlocutor = event.sender
