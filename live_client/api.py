# =============================================================================
# Live Client -- REST Gateway Collaborator
# =============================================================================
#
# The few HTTP calls the live layer needs: initial unread counts, a single
# conversation preview for a conversation first seen over the socket, and
# read receipts.  Authenticated with the same jwt cookie as the socket.
# =============================================================================

from __future__ import annotations

from typing import Any

import httpx

from ._logging import logger
from .constants import (
    API_CONVERSATION_PREVIEW,
    API_CONVERSATION_PREVIEWS,
    API_MARK_READ,
    API_NOTIFICATION_COUNT,
    API_TIMEOUT,
    API_UNREAD_CONVERSATIONS,
    AUTH_COOKIE_NAME,
)
from .errors import LiveApiError
from .protocol import normalize_conversation
from .types import ConversationSummary


class ChatApi:
    """Async client for the REST gateway.

    Args:
        base_url: Gateway URL, e.g. ``"http://localhost:8081"``.
        token: Session token, sent as the ``jwt`` cookie.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = API_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        cookies = {AUTH_COOKIE_NAME: token} if token else None
        self._client = httpx.AsyncClient(
            base_url=base_url,
            cookies=cookies,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> ChatApi:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # -- Endpoints ------------------------------------------------------------

    async def get_unread_conversation_count(self) -> int:
        """Number of conversations with unread messages."""
        data = await self._request("GET", API_UNREAD_CONVERSATIONS)
        return _as_count(data, "count")

    async def get_notification_count(self) -> int:
        """Number of unread notifications."""
        data = await self._request("GET", API_NOTIFICATION_COUNT)
        return _as_count(data, "value")

    async def get_conversation(
        self,
        conversation_id: str,
        interlocutor_id: str,
    ) -> ConversationSummary:
        """Preview of one conversation."""
        data = await self._request(
            "GET",
            API_CONVERSATION_PREVIEW.format(conversation_id=conversation_id),
            params={"interlocutor_id": str(interlocutor_id)},
        )
        if not isinstance(data, dict):
            raise LiveApiError("Malformed conversation preview")
        return normalize_conversation(data)

    async def get_conversations(
        self,
        limit: int = 20,
        before_date: str | None = None,
    ) -> list[ConversationSummary]:
        """One page of conversation previews, newest first."""
        params: dict[str, Any] = {"limit": limit}
        if before_date:
            params["before_date"] = before_date
        data = await self._request("GET", API_CONVERSATION_PREVIEWS, params=params)
        if not isinstance(data, list):
            raise LiveApiError("Malformed conversation previews")
        return [normalize_conversation(item) for item in data if isinstance(item, dict)]

    async def mark_read(self, conversation_id: str, last_read_message_id: str) -> None:
        """Record the last message the local user has read."""
        await self._request(
            "POST",
            API_MARK_READ,
            json={
                "conversation_id": str(conversation_id),
                "last_read_message_id": str(last_read_message_id),
            },
        )

    # -- Internal -------------------------------------------------------------

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise LiveApiError(f"{method} {url} failed: {exc}") from exc

        if resp.status_code >= 400:
            logger.warning("%s %s -> %d", method, url, resp.status_code)
            raise LiveApiError(f"{method} {url} rejected", status=resp.status_code)

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise LiveApiError(f"{method} {url} returned invalid JSON") from exc


def _as_count(data: Any, key: str) -> int:
    if isinstance(data, dict):
        value = data.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return max(0, value)
    raise LiveApiError(f"Missing '{key}' in count response")
