# =============================================================================
# Live Client -- Alert Throttle
# =============================================================================
#
# One audible cue plus a timed "alerting" flag per qualifying event.  A new
# event while alerting restarts the timer instead of stacking effects.
# Playback may be refused until the user has interacted with the app; one
# cue is then held back and played on the next gesture.
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Protocol

from ._logging import logger
from .constants import ALERT_DURATION
from .errors import PlaybackBlockedError
from .listeners import Observable
from .types import InboundEvent, Surface


class AudioSink(Protocol):
    def play(self, cue: str) -> None:
        """Play *cue* once.  Raise PlaybackBlockedError if not allowed yet."""


class NullAudioSink:
    """Sink that plays nothing; used when no audio output is wired."""

    def play(self, cue: str) -> None:
        logger.debug("Cue: %s", cue)


class AlertThrottle:
    """Cue and visual flag for one event kind."""

    def __init__(
        self,
        cue: str,
        sink: AudioSink | None = None,
        duration: float = ALERT_DURATION,
    ) -> None:
        self.cue = cue
        self._sink = sink or NullAudioSink()
        self._duration = duration
        self._timer: asyncio.TimerHandle | None = None
        self._pending_cue = False
        self.alerting: Observable[bool] = Observable(f"alert_{cue}", False)

    @property
    def is_alerting(self) -> bool:
        return self.alerting.value

    @property
    def has_pending_cue(self) -> bool:
        return self._pending_cue

    def on_event(
        self,
        event: InboundEvent,
        local_user_id: str,
        focused: Surface | None = None,
    ) -> bool:
        """Trigger for *event* unless it is our own or its surface is on screen."""
        if event.sender is not None and event.sender.id == str(local_user_id):
            return False
        if focused is not None and Surface.of(event) == focused:
            return False
        self.trigger()
        return True

    def trigger(self) -> None:
        self._play()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().call_later(self._duration, self._clear)
        self.alerting._set(True)

    def on_user_gesture(self) -> bool:
        """Play the held-back cue, if any.  Returns True if one was played."""
        if not self._pending_cue:
            return False
        self._pending_cue = False
        self._play()
        return not self._pending_cue

    def cancel(self) -> None:
        """Drop the held-back cue and clear the flag now."""
        self._pending_cue = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.alerting._set(False)

    def _play(self) -> None:
        try:
            self._sink.play(self.cue)
        except PlaybackBlockedError:
            if not self._pending_cue:
                logger.debug("Playback blocked, holding '%s' until a user gesture", self.cue)
            self._pending_cue = True
        except Exception as exc:
            logger.warning("Audio playback failed for '%s': %s", self.cue, exc)

    def _clear(self) -> None:
        self._timer = None
        self.alerting._set(False)
