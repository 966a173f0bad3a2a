"""Tests for LiveConfig and the live URL helper."""

import pytest

from live_client.client import build_live_url
from live_client.config import LiveConfig
from live_client.constants import RECONNECT_BASE_DELAY, RECONNECT_MAX_DELAY
from live_client.errors import LiveError


class TestFromEnv:
    def test_defaults(self):
        config = LiveConfig.from_env({})
        assert config.ws_url == "ws://localhost:8081"
        assert config.api_url is None
        assert config.token is None
        assert config.path == "/live"
        assert config.reconnect.base_delay == RECONNECT_BASE_DELAY
        assert config.reconnect.max_delay == RECONNECT_MAX_DELAY

    def test_reads_live_variables(self):
        config = LiveConfig.from_env(
            {
                "LIVE_WS_URL": "wss://social.example",
                "LIVE_API_URL": "https://social.example/api",
                "LIVE_TOKEN": "abc",
                "LIVE_USER_ID": "7",
                "LIVE_PATH": "/ws",
                "LIVE_RECONNECT_BASE": "0.5",
                "LIVE_RECONNECT_MAX": "10",
            }
        )
        assert config.ws_url == "wss://social.example"
        assert config.api_url == "https://social.example/api"
        assert config.token == "abc"
        assert config.user_id == "7"
        assert config.path == "/ws"
        assert config.reconnect.base_delay == 0.5
        assert config.reconnect.max_delay == 10.0

    def test_process_environment(self, monkeypatch):
        monkeypatch.setenv("LIVE_USER_ID", "42")
        assert LiveConfig.from_env().user_id == "42"

    def test_invalid_delay(self):
        with pytest.raises(LiveError):
            LiveConfig.from_env({"LIVE_RECONNECT_BASE": "soon"})


class TestBuildLiveUrl:
    @pytest.mark.parametrize(
        "base, expected",
        [
            ("ws://host", "ws://host/live"),
            ("ws://host/", "ws://host/live"),
            ("ws://host/live", "ws://host/live"),
            ("ws://host/api", "ws://host/api/live"),
        ],
    )
    def test_appends_path_once(self, base, expected):
        assert build_live_url(base) == expected

    def test_empty_path(self):
        assert build_live_url("ws://host/socket", "") == "ws://host/socket"
