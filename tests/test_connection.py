"""Tests for ConnectionManager (state machine against an in-memory transport)."""

import asyncio
import logging
from unittest.mock import AsyncMock, patch

import pytest

from live_client.connection import ConnectionManager
from live_client.errors import LiveSessionError
from live_client.types import ConnectionState, ReconnectConfig

URL = "ws://gateway.test/live"


@pytest.fixture
def states():
    return []


@pytest.fixture
def frames():
    return []


@pytest.fixture
def manager(transport, fast_reconnect, states, frames):
    return ConnectionManager(
        URL,
        token="test-jwt",
        reconnect=fast_reconnect,
        on_message=frames.append,
        on_state_change=states.append,
        transport_factory=transport,
    )


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_reaches_connected(self, manager, states):
        await manager.connect()
        assert manager.is_connected
        assert states == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]
        assert manager.connected_since is not None
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_token_sent_as_jwt_cookie(self, manager, transport):
        await manager.connect()
        url, headers = transport.calls[0]
        assert url == URL
        assert headers["Cookie"] == "jwt=test-jwt"
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_connect_is_noop_when_connected(self, manager, transport):
        await manager.connect()
        await manager.connect()
        assert len(transport.sockets) == 1
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_frames_forwarded_in_order(self, manager, transport, frames, settle):
        await manager.connect()
        for frame in ("a", "b", "c"):
            transport.last.push(frame)
        await settle()
        assert frames == ["a", "b", "c"]
        assert manager.frames_received == 3
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_on_open_completes_before_first_frame(self, transport, settle):
        order = []

        async def on_open():
            transport.last.push("first")
            await asyncio.sleep(0)
            order.append("open")

        manager = ConnectionManager(
            URL,
            on_message=order.append,
            on_open=on_open,
            transport_factory=transport,
        )
        await manager.connect()
        await settle()
        assert order == ["open", "first"]
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_dispatch_error_does_not_stop_loop(self, transport, settle, caplog):
        received = []

        def on_message(frame):
            if frame == "bad":
                raise ValueError("boom")
            received.append(frame)

        manager = ConnectionManager(URL, on_message=on_message, transport_factory=transport)
        await manager.connect()
        with caplog.at_level(logging.ERROR, logger="live_client"):
            transport.last.push("bad")
            transport.last.push("good")
            await settle()
        assert received == ["good"]
        assert "Error dispatching frame" in caplog.text
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_failed_connect_does_not_raise(self, manager, transport, states):
        transport.fail_next = 1
        await manager.connect()
        assert manager.state == ConnectionState.DISCONNECTED
        assert manager.is_reconnect_scheduled
        assert states == [ConnectionState.CONNECTING, ConnectionState.DISCONNECTED]
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_failed_connect_recovers(self, manager, transport, states):
        transport.fail_next = 1
        await manager.connect()
        await asyncio.sleep(0.05)
        assert manager.is_connected
        assert manager.reconnect_attempts == 0
        assert states == [
            ConnectionState.CONNECTING,
            ConnectionState.DISCONNECTED,
            ConnectionState.RECONNECTING,
            ConnectionState.CONNECTED,
        ]
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_destroyed_manager_refuses_connect(self, manager):
        await manager.destroy()
        with pytest.raises(LiveSessionError):
            await manager.connect()


class TestClose:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", [1006, 1011, 1001, None])
    async def test_abnormal_close_reconnects(self, manager, transport, settle, code):
        await manager.connect()
        transport.last.drop(code)
        await settle()
        assert manager.state == ConnectionState.DISCONNECTED
        assert manager.is_reconnect_scheduled

        await asyncio.sleep(0.05)
        assert len(transport.sockets) == 2
        assert manager.is_connected
        assert manager.reconnect_count == 1
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_normal_close_does_not_reconnect(self, manager, transport, settle):
        await manager.connect()
        transport.last.drop(1000)
        await settle()
        assert manager.state == ConnectionState.DISCONNECTED
        assert not manager.is_reconnect_scheduled

        await asyncio.sleep(0.05)
        assert len(transport.sockets) == 1
        assert manager.reconnect_attempts == 0

    @pytest.mark.asyncio
    async def test_disconnect_closes_with_normal_code(self, manager, transport):
        await manager.connect()
        socket = transport.last
        await manager.disconnect()
        assert socket.close_code == 1000
        assert manager.state == ConnectionState.DISCONNECTED

        await asyncio.sleep(0.05)
        assert len(transport.sockets) == 1

    @pytest.mark.asyncio
    async def test_disconnect_cancels_pending_reconnect(self, manager, transport):
        transport.fail_next = 5
        await manager.connect()
        assert manager.is_reconnect_scheduled

        await manager.disconnect()
        assert not manager.is_reconnect_scheduled
        await asyncio.sleep(0.05)
        assert len(transport.calls) == 1
        assert manager.reconnect_attempts == 0

    @pytest.mark.asyncio
    async def test_connect_after_disconnect_opens_fresh_transport(self, manager, transport):
        await manager.connect()
        await manager.disconnect()
        await manager.connect()
        assert len(transport.sockets) == 2
        assert transport.sockets[0].closed
        assert manager.is_connected
        await manager.disconnect()


class TestBackoff:
    @pytest.mark.asyncio
    async def test_delay_sequence_doubles_then_caps(self):
        manager = ConnectionManager(URL, reconnect=ReconnectConfig())
        manager._session_active = True
        with patch.object(manager, "_reconnect_after", new=AsyncMock()) as after:
            for _ in range(7):
                manager._schedule_reconnect()
            await asyncio.sleep(0)

        delays = [c.args[0] for c in after.call_args_list]
        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]
        assert manager.reconnect_attempts == 7

    @pytest.mark.asyncio
    async def test_max_attempts_stops_loop(self, caplog):
        manager = ConnectionManager(URL, reconnect=ReconnectConfig(max_attempts=2))
        manager._session_active = True
        with patch.object(manager, "_reconnect_after", new=AsyncMock()) as after:
            with caplog.at_level(logging.ERROR, logger="live_client"):
                for _ in range(3):
                    manager._schedule_reconnect()
            await asyncio.sleep(0)

        assert after.call_count == 2
        assert "Max reconnect attempts (2) reached" in caplog.text

    def test_jitter_stays_within_ten_percent(self):
        manager = ConnectionManager(URL, reconnect=ReconnectConfig(jitter=True))
        for _ in range(50):
            assert 0.9 <= manager._calculate_delay() <= 1.1

    def test_no_reconnect_when_session_inactive(self):
        manager = ConnectionManager(URL)
        manager._schedule_reconnect()
        assert not manager.is_reconnect_scheduled


class TestSend:
    @pytest.mark.asyncio
    async def test_send_when_disconnected_returns_false(self, manager):
        assert await manager.send("sub:1") is False

    @pytest.mark.asyncio
    async def test_send_when_connected(self, manager, transport):
        await manager.connect()
        assert await manager.send("sub:1") is True
        assert transport.last.sent == ["sub:1"]
        assert manager.commands_sent == 1
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_send_rejected_by_transport_returns_false(self, manager, transport):
        await manager.connect()
        transport.last.closed = True
        assert await manager.send("sub:1") is False
        await manager.disconnect()
