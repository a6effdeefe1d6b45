from __future__ import annotations

import pytest

from config.settings import Settings, derive_ws_url

_KEYS = (
    "DESK_API_URL",
    "DESK_WS_URL",
    "DESK_RECONNECT_DELAY_SECS",
    "COPY_SUCCESS_DISPLAY_SECS",
    "COPY_FAILURE_DISPLAY_SECS",
    "CLIPBOARD_FORCE_MANUAL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for k in _KEYS:
        monkeypatch.delenv(k, raising=False)


def test_defaults():
    s = Settings.load()
    assert s.api_url == "http://127.0.0.1:8888"
    assert s.ws_url == "ws://127.0.0.1:8888/ws"
    assert s.reconnect_delay_secs == 3.0
    assert s.copy_success_display_secs == 2.0
    assert s.copy_failure_display_secs == 3.0
    assert s.clipboard_force_manual is False


def test_ws_url_follows_api_url(monkeypatch):
    monkeypatch.setenv("DESK_API_URL", "https://desk.example.com/")
    s = Settings.load()
    assert s.api_url == "https://desk.example.com"
    assert s.ws_url == "wss://desk.example.com/ws"


def test_explicit_ws_url_wins(monkeypatch):
    monkeypatch.setenv("DESK_API_URL", "https://desk.example.com")
    monkeypatch.setenv("DESK_WS_URL", "ws://10.0.0.2:8888/ws")
    assert Settings.load().ws_url == "ws://10.0.0.2:8888/ws"


@pytest.mark.parametrize(
    "key,value",
    [
        ("DESK_API_URL", "desk.example.com"),
        ("DESK_WS_URL", "http://desk.example.com/ws"),
        ("DESK_RECONNECT_DELAY_SECS", "0"),
        ("COPY_FAILURE_DISPLAY_SECS", "-1"),
    ],
)
def test_invalid_values_raise(monkeypatch, key, value):
    monkeypatch.setenv(key, value)
    with pytest.raises(ValueError):
        Settings.load()


def test_derive_ws_url_keeps_path_prefix():
    assert derive_ws_url("http://host:8888/desk") == "ws://host:8888/desk/ws"
