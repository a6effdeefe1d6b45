from __future__ import annotations

import asyncio
from typing import Any, Mapping
from urllib.parse import quote

import aiohttp

from desk.errors import DeskApiError


class DeskApiClient:
    """
    JSON request/response client for the desk backend's REST API.

    Response schemas belong to the backend; every method returns the decoded JSON as-is.
    Failures (non-2xx, transport error, non-JSON body) raise `DeskApiError`.
    """

    def __init__(self, base_url: str, *, timeout_secs: float = 20.0):
        self._base = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=float(timeout_secs))

    @property
    def base_url(self) -> str:
        return self._base

    def _url(self, endpoint: str) -> str:
        return f"{self._base}/{endpoint.lstrip('/')}"

    async def fetch_json(
        self,
        endpoint: str,
        *,
        method: str = "GET",
        json_body: Any = None,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        url = self._url(endpoint)
        try:
            async with aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"Content-Type": "application/json"},
            ) as session:
                async with session.request(method, url, params=params, json=json_body) as resp:
                    if resp.status >= 400:
                        raise DeskApiError(f"HTTP {resp.status}", status=resp.status, endpoint=endpoint)
                    return await resp.json(content_type=None)
        except DeskApiError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise DeskApiError(f"{type(e).__name__}: {e}", endpoint=endpoint) from e

    # Desk
    async def get_snapshot(self) -> Any:
        return await self.fetch_json("/api/desk/snapshot")

    async def get_positions(self) -> Any:
        return await self.fetch_json("/api/desk/positions")

    async def get_bots(self) -> Any:
        return await self.fetch_json("/api/desk/bots")

    async def get_events(self, limit: int = 50) -> Any:
        return await self.fetch_json("/api/desk/events", params={"limit": str(int(limit))})

    async def get_daily_pnl(self) -> Any:
        return await self.fetch_json("/api/desk/pnl")

    async def get_alerts(self) -> Any:
        return await self.fetch_json("/api/alerts")

    async def get_market_clock(self) -> Any:
        return await self.fetch_json("/api/golive/status")

    async def get_bot_trades(self, bot_id: str) -> Any:
        return await self.fetch_json(f"/api/bots/{quote(str(bot_id), safe='')}/trades")

    # Copy payloads: `{"text": "..."}` bodies meant for the clipboard
    async def get_copy_snapshot(self, compact: bool = False) -> Any:
        return await self.fetch_json("/api/copy/snapshot", params={"compact": "true" if compact else "false"})

    async def get_copy_claude_context(self) -> Any:
        return await self.fetch_json("/api/copy/claude-context")

    async def get_copy_positions(self) -> Any:
        return await self.fetch_json("/api/copy/positions")

    async def get_copy_backtest(self) -> Any:
        return await self.fetch_json("/api/copy/backtest")

    # Backtest
    async def run_backtest(self, request: Mapping[str, Any]) -> Any:
        return await self.fetch_json("/api/backtest/run", method="POST", json_body=dict(request))


def copy_text_of(payload: Any) -> str:
    """`text` field of a copy endpoint body; empty when the backend sent nothing usable."""
    if isinstance(payload, dict):
        text = payload.get("text")
        return text if isinstance(text, str) else ""
    return ""
