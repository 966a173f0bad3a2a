# =============================================================================
# Live Client -- Subscription Multiplexer
# =============================================================================
#
# Tracks which channels this session has joined and keeps the server's view
# in step across reconnects.  The join-set here is the source of truth; the
# transport is only told about it.
# =============================================================================

from __future__ import annotations

from typing import TYPE_CHECKING

from ._logging import logger
from .constants import CMD_SUBSCRIBE, CMD_UNSUBSCRIBE
from .protocol import encode_command

if TYPE_CHECKING:
    from .connection import ConnectionManager


class SubscriptionMultiplexer:
    """Join-set of channel ids with replay on reconnect."""

    def __init__(self, connection: ConnectionManager) -> None:
        self._connection = connection
        # dict for insertion order
        self._joined: dict[str, None] = {}

    @property
    def joined(self) -> tuple[str, ...]:
        return tuple(self._joined)

    def __contains__(self, channel_id: object) -> bool:
        return str(channel_id) in self._joined

    def __len__(self) -> int:
        return len(self._joined)

    async def join(self, channel_id: str) -> bool:
        """Record *channel_id* as joined; send ``sub:`` now if connected.

        Returns False if the channel was already joined.
        """
        channel_id = str(channel_id)
        if channel_id in self._joined:
            return False
        self._joined[channel_id] = None
        if self._connection.is_connected:
            await self._connection.send(encode_command(CMD_SUBSCRIBE, channel_id))
        else:
            logger.debug("Join of %s deferred until connected", channel_id)
        return True

    async def leave(self, channel_id: str) -> bool:
        """Forget *channel_id*; send ``unsub:`` now if connected.

        Returns False if the channel was not joined.
        """
        channel_id = str(channel_id)
        if channel_id not in self._joined:
            return False
        del self._joined[channel_id]
        if self._connection.is_connected:
            await self._connection.send(encode_command(CMD_UNSUBSCRIBE, channel_id))
        return True

    async def replay(self) -> int:
        """Re-send ``sub:`` for every joined channel, in join order.

        Channels left while the replay is running are skipped.  Returns the
        number of subscriptions sent.
        """
        sent = 0
        for channel_id in tuple(self._joined):
            if channel_id not in self._joined:
                continue
            if await self._connection.send(encode_command(CMD_SUBSCRIBE, channel_id)):
                sent += 1
        if sent:
            logger.info("Replayed %d subscription(s)", sent)
        return sent

    def clear(self) -> None:
        """Empty the join-set without telling the server (logout)."""
        self._joined.clear()
