from __future__ import annotations

import aiohttp
import pytest

from connectors.desk.rest import DeskApiClient, copy_text_of
from desk.errors import DeskApiError


class _FakeResp:
    def __init__(self, payload, status=200):
        self._payload = payload
        self.status = status

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self, content_type=None):  # noqa: ARG002 - signature matches aiohttp usage
        if isinstance(self._payload, BaseException):
            raise self._payload
        return self._payload


class _FakeSession:
    def __init__(self, resp, calls):
        self._resp = resp
        self._calls = calls

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def request(self, method, url, params=None, json=None):
        self._calls.append({"method": method, "url": url, "params": params, "json": json})
        if isinstance(self._resp, BaseException):
            raise self._resp
        return self._resp


def _patch_session(monkeypatch, resp):
    import connectors.desk.rest as mod

    calls: list[dict] = []
    monkeypatch.setattr(mod.aiohttp, "ClientSession", lambda *a, **k: _FakeSession(resp, calls))  # type: ignore[arg-type]
    return calls


@pytest.mark.asyncio
async def test_get_returns_decoded_json(monkeypatch):
    calls = _patch_session(monkeypatch, _FakeResp({"daily_pnl": 12.0}))
    api = DeskApiClient("http://desk.test:8888/")

    data = await api.get_daily_pnl()

    assert data == {"daily_pnl": 12.0}
    assert calls == [{"method": "GET", "url": "http://desk.test:8888/api/desk/pnl", "params": None, "json": None}]


@pytest.mark.asyncio
async def test_query_params_and_post_body(monkeypatch):
    calls = _patch_session(monkeypatch, _FakeResp({"ok": True}))
    api = DeskApiClient("http://desk.test")

    await api.get_events(limit=20)
    await api.get_copy_snapshot(compact=True)
    await api.run_backtest({"strategy": "vwap", "days": 60})
    await api.get_bot_trades("spx fleet/1")

    assert calls[0]["params"] == {"limit": "20"}
    assert calls[1]["params"] == {"compact": "true"}
    assert calls[2]["method"] == "POST"
    assert calls[2]["json"] == {"strategy": "vwap", "days": 60}
    assert calls[3]["url"] == "http://desk.test/api/bots/spx%20fleet%2F1/trades"


@pytest.mark.asyncio
async def test_copy_endpoints(monkeypatch):
    calls = _patch_session(monkeypatch, _FakeResp({"text": "ctx"}))
    api = DeskApiClient("http://desk.test")

    assert copy_text_of(await api.get_copy_claude_context()) == "ctx"
    await api.get_copy_positions()
    await api.get_copy_backtest()

    assert [c["url"] for c in calls] == [
        "http://desk.test/api/copy/claude-context",
        "http://desk.test/api/copy/positions",
        "http://desk.test/api/copy/backtest",
    ]


@pytest.mark.asyncio
async def test_http_error_status_raises_desk_api_error(monkeypatch):
    _patch_session(monkeypatch, _FakeResp({"detail": "boom"}, status=502))
    api = DeskApiClient("http://desk.test")

    with pytest.raises(DeskApiError) as ei:
        await api.get_bots()
    assert ei.value.status == 502
    assert ei.value.endpoint == "/api/desk/bots"
    assert str(ei.value) == "HTTP 502"


@pytest.mark.asyncio
async def test_transport_and_decode_errors_are_wrapped(monkeypatch):
    _patch_session(monkeypatch, aiohttp.ClientConnectionError("refused"))
    api = DeskApiClient("http://desk.test")
    with pytest.raises(DeskApiError) as ei:
        await api.get_positions()
    assert ei.value.status is None

    _patch_session(monkeypatch, _FakeResp(ValueError("Expecting value")))
    with pytest.raises(DeskApiError):
        await api.get_alerts()


def test_copy_text_of():
    assert copy_text_of({"text": "report"}) == "report"
    assert copy_text_of({"text": None}) == ""
    assert copy_text_of({}) == ""
    assert copy_text_of(["text"]) == ""
