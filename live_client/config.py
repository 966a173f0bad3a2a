# =============================================================================
# Live Client -- Configuration
# =============================================================================

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

from .constants import LIVE_PATH, RECONNECT_BASE_DELAY, RECONNECT_MAX_DELAY
from .errors import LiveError
from .types import ReconnectConfig


@dataclass
class LiveConfig:
    """Settings needed to open a session.

    Attributes:
        ws_url: WebSocket base URL of the gateway.
        api_url: REST base URL of the gateway (``None`` to skip REST calls).
        token: Session token (``jwt`` cookie value).
        user_id: Id of the signed-in user.
        path: Live endpoint path.
        reconnect: Backoff tuning.
    """

    ws_url: str = "ws://localhost:8081"
    api_url: str | None = None
    token: str | None = None
    user_id: str = ""
    path: str = LIVE_PATH
    reconnect: ReconnectConfig = field(default_factory=ReconnectConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> LiveConfig:
        """Build a config from ``LIVE_*`` environment variables."""
        env = os.environ if environ is None else environ
        try:
            base_delay = float(env.get("LIVE_RECONNECT_BASE", RECONNECT_BASE_DELAY))
            max_delay = float(env.get("LIVE_RECONNECT_MAX", RECONNECT_MAX_DELAY))
        except ValueError as exc:
            raise LiveError(f"Invalid reconnect delay in environment: {exc}") from exc

        return cls(
            ws_url=env.get("LIVE_WS_URL", cls.ws_url),
            api_url=env.get("LIVE_API_URL") or None,
            token=env.get("LIVE_TOKEN") or None,
            user_id=env.get("LIVE_USER_ID", ""),
            path=env.get("LIVE_PATH", LIVE_PATH),
            reconnect=ReconnectConfig(base_delay=base_delay, max_delay=max_delay),
        )
