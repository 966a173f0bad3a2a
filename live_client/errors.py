# =============================================================================
# Live Client -- Error Types
# =============================================================================


class LiveError(Exception):
    """Base exception for all live client errors."""


class LiveConnectionError(LiveError):
    """The transport is not open (send attempted while disconnected)."""


class LiveProtocolError(LiveError):
    """Invalid outbound command (bad keyword, empty payload)."""


class LiveSessionError(LiveError):
    """Lifecycle misuse: seeding twice, using a torn-down session."""


class LiveApiError(LiveError):
    """The REST gateway rejected a request or was unreachable."""

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message if status is None else f"{message} (HTTP {status})")


class PlaybackBlockedError(LiveError):
    """Audio playback refused until the user interacts with the page."""
