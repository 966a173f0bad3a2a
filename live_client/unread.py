# =============================================================================
# Live Client -- Unread Accountant
# =============================================================================
#
# Derives unread counters from the live event stream.  Seeded once from the
# REST gateway, then only ever adjusted by deltas.
# =============================================================================

from __future__ import annotations

from typing import Callable, Mapping

from ._logging import logger
from .dedup import SeenIds
from .errors import LiveSessionError
from .listeners import Observable
from .types import EventKind, InboundEvent, Notification, Surface


class UnreadAccountant:
    """Per-surface and per-kind unread counters.

    An event is counted when its sender is not the local user and its
    surface is not the focused one.  Counters never go below zero.

    Args:
        local_user_id: Id of the signed-in user.
        is_focused: Returns True if a surface is currently on screen.
    """

    def __init__(
        self,
        local_user_id: str,
        is_focused: Callable[[Surface], bool] | None = None,
    ) -> None:
        self._local_user_id = str(local_user_id)
        self._is_focused = is_focused or (lambda surface: False)
        self._counts: dict[Surface, int] = {}
        # ids of notifications counted and not yet read
        self._unread_notifications: set[str] = set()
        self._seen = SeenIds()
        self._seeded = False
        self.totals: dict[EventKind, Observable[int]] = {
            kind: Observable(f"unread_{kind.value}", 0) for kind in EventKind
        }

    @property
    def seeded(self) -> bool:
        return self._seeded

    def count(self, surface: Surface) -> int:
        return self._counts.get(surface, 0)

    def total(self, kind: EventKind) -> int:
        return self.totals[kind].value

    # -- Seeding --------------------------------------------------------------

    def seed(
        self,
        *,
        private_messages: int = 0,
        group_messages: int = 0,
        notifications: int = 0,
        per_surface: Mapping[Surface, int] | None = None,
    ) -> None:
        """Load authoritative counts once per session."""
        if self._seeded:
            raise LiveSessionError("Unread counts already seeded for this session")
        self._seeded = True

        for surface, value in (per_surface or {}).items():
            self._counts[surface] = max(0, int(value))
        self._add(EventKind.PRIVATE_MESSAGE, private_messages)
        self._add(EventKind.GROUP_MESSAGE, group_messages)
        self._add(EventKind.NOTIFICATION, notifications)
        logger.debug(
            "Unread seeded: private=%d group=%d notifications=%d",
            private_messages,
            group_messages,
            notifications,
        )

    # -- Live deltas ----------------------------------------------------------

    def record(self, event: InboundEvent) -> bool:
        """Count *event* if it qualifies.  Returns True if it was counted."""
        if event.sender is not None and event.sender.id == self._local_user_id:
            return False

        surface = Surface.of(event)
        if self._is_focused(surface):
            return False

        if event.id and self._seen.is_duplicate(f"{event.kind.value}:{event.id}"):
            logger.debug("Duplicate %s %s not counted", event.kind.value, event.id)
            return False

        if event.kind is EventKind.NOTIFICATION:
            if event.id:
                self._unread_notifications.add(str(event.id))
        else:
            self._counts[surface] = self._counts.get(surface, 0) + 1
        self._add(event.kind, 1)
        return True

    def mark_viewed(self, surface: Surface) -> int:
        """Zero the counter of *surface*.  Returns its prior value."""
        if surface.kind is EventKind.NOTIFICATION:
            prior = self.total(EventKind.NOTIFICATION)
            self.mark_all_notifications_read()
            return prior

        prior = self._counts.pop(surface, 0)
        if prior:
            self._add(surface.kind, -prior)
        return prior

    def mark_notification_read(self, notification: Notification | str) -> bool:
        """Decrement the notification total for a counted, unread notification.

        Ids that were never counted (received while the list was focused,
        or unknown) leave the total unchanged.
        """
        notification_id = (
            notification.id if isinstance(notification, Notification) else notification
        )
        if notification_id is None or str(notification_id) not in self._unread_notifications:
            return False
        self._unread_notifications.discard(str(notification_id))
        self._add(EventKind.NOTIFICATION, -1)
        return True

    def mark_all_notifications_read(self) -> None:
        self._unread_notifications.clear()
        self.totals[EventKind.NOTIFICATION]._set(0)

    def reset(self) -> None:
        """Forget everything (teardown); the next session may seed again."""
        self._counts.clear()
        self._unread_notifications.clear()
        self._seen.reset()
        self._seeded = False
        for observable in self.totals.values():
            observable._set(0)

    def _add(self, kind: EventKind, delta: int) -> None:
        observable = self.totals[kind]
        observable._set(max(0, observable.value + int(delta)))
