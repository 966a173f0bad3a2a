# =============================================================================
# Live Client -- Duplicate Detection
# =============================================================================
#
# Bounded window of recently seen event ids.  Reconnects can re-deliver the
# same event; counters must not count it twice.
# =============================================================================

from __future__ import annotations

import time

from .constants import SEEN_MAX_AGE, SEEN_WINDOW_SIZE


class SeenIds:
    """Remember event ids for ``max_age`` seconds, at most ``window_size``."""

    def __init__(
        self,
        window_size: int = SEEN_WINDOW_SIZE,
        max_age: float = SEEN_MAX_AGE,
    ) -> None:
        self._window_size = window_size
        self._max_age = max_age
        self._seen_ids: dict[str, float] = {}
        self._cleanup_counter = 0
        self.duplicates_detected = 0

    def __len__(self) -> int:
        return len(self._seen_ids)

    def is_duplicate(self, event_id: str) -> bool:
        """Check if event ID was already seen. Registers it if new."""
        self._cleanup_counter += 1
        if self._cleanup_counter >= 100:
            self._cleanup_old_entries()
            self._cleanup_counter = 0

        if event_id in self._seen_ids:
            self.duplicates_detected += 1
            return True

        self._seen_ids[event_id] = time.monotonic()

        # Insertion order is arrival order, so the first key is the oldest
        if len(self._seen_ids) > self._window_size:
            del self._seen_ids[next(iter(self._seen_ids))]

        return False

    def _cleanup_old_entries(self) -> None:
        cutoff = time.monotonic() - self._max_age
        expired = [k for k, v in self._seen_ids.items() if v < cutoff]
        for k in expired:
            del self._seen_ids[k]

    def reset(self) -> None:
        self._seen_ids.clear()
        self._cleanup_counter = 0
        self.duplicates_detected = 0
