import argparse
import asyncio
import contextlib
import dataclasses
import json
import sys

from config.settings import Settings
from connectors.desk.rest import DeskApiClient, copy_text_of
from desk.clipboard import ClipboardCapabilities, ClipboardService
from desk.connection import ConnectionManager
from desk.errors import DeskApiError
from desk.polling import PollingRefresher
from desk.types import Snapshot
from monitoring.status import get_component_statuses, overall_state
from utils.logging import configure_logging, get_logger

COPY_SOURCES = ("snapshot", "claude-context", "positions", "backtest")


def _summarize(snapshot: Snapshot) -> dict:
    pnl = snapshot.section("daily_pnl") or {}
    summary = snapshot.section("summary") or {}
    positions = snapshot.section("positions") or []
    bots = snapshot.section("bots") or []
    return {
        "source": snapshot.source,
        "sections": sorted(snapshot.data.keys()),
        "daily_pnl": pnl.get("daily_pnl") if isinstance(pnl, dict) else None,
        "positions": summary.get("total_positions", len(positions)) if isinstance(summary, dict) else len(positions),
        "bots_running": summary.get("running_bots") if isinstance(summary, dict) else None,
        "bots_total": len(bots) if isinstance(bots, list) else None,
    }


async def _watch(settings: Settings, seconds: float | None) -> None:
    log = get_logger("desk.watch")
    api = DeskApiClient(settings.api_url, timeout_secs=settings.http_timeout_secs)
    conn = ConnectionManager(settings.ws_url, reconnect_delay_secs=settings.reconnect_delay_secs)
    conn.subscribe(lambda snap: log.info("desk.snapshot", **_summarize(snap)))
    conn.subscribe_status(lambda ok: log.info("desk.connection", connected=ok))

    pollers = [
        PollingRefresher("clock", api.get_market_clock, interval_secs=settings.poll_clock_secs, resource="/api/golive/status"),
        PollingRefresher("bots", api.get_bots, interval_secs=settings.poll_bots_secs, resource="/api/desk/bots"),
        PollingRefresher(
            "positions", api.get_positions, interval_secs=settings.poll_positions_secs, resource="/api/desk/positions"
        ),
    ]
    for p in pollers:
        p.subscribe(lambda result, name=p.name: log.info("desk.poll", poller=name, kind=type(result).__name__))

    log.info("desk.watch.start", api_url=settings.api_url, ws_url=settings.ws_url)
    await conn.connect()
    for p in pollers:
        p.activate()
    try:
        if seconds is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(seconds)
    finally:
        for p in pollers:
            p.deactivate()
        await conn.teardown()
        log.info("desk.watch.stop", health=overall_state(), statuses=get_component_statuses())


async def _copy(settings: Settings, what: str) -> int:
    log = get_logger("desk.copy")
    api = DeskApiClient(settings.api_url, timeout_secs=settings.http_timeout_secs)
    caps = ClipboardCapabilities.detect(origin=settings.api_url, user_agent=settings.user_agent)
    if settings.clipboard_force_manual:
        caps = dataclasses.replace(caps, is_touch_platform=True)
    service = ClipboardService(
        caps,
        success_display_secs=settings.copy_success_display_secs,
        failure_display_secs=settings.copy_failure_display_secs,
    )

    fetchers = {
        "snapshot": api.get_copy_snapshot,
        "claude-context": api.get_copy_claude_context,
        "positions": api.get_copy_positions,
        "backtest": api.get_copy_backtest,
    }

    async def produce() -> str:
        return copy_text_of(await fetchers[what]())

    attempt = await service.copy(produce)
    log.info(
        "desk.copy.done",
        what=what,
        outcome=attempt.outcome,
        method=attempt.method,
        error=None if attempt.error is None else f"{type(attempt.error).__name__}: {attempt.error}",
        touch=caps.is_touch_platform,
        secure=caps.has_secure_clipboard,
    )
    if attempt.outcome == "succeeded":
        print("Copied!", file=sys.stderr)
    elif attempt.outcome == "failed":
        print("No data" if attempt.error is None else str(attempt.error), file=sys.stderr)
    return 1 if attempt.outcome == "failed" else 0


async def _fetch(settings: Settings, endpoint: str) -> int:
    api = DeskApiClient(settings.api_url, timeout_secs=settings.http_timeout_secs)
    try:
        data = await api.fetch_json(endpoint)
    except DeskApiError as e:
        get_logger("desk.fetch").error("desk.fetch.failed", endpoint=endpoint, status=e.status, err=str(e))
        return 1
    print(json.dumps(data, indent=2, ensure_ascii=False))
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Desk dashboard client")
    parser.add_argument("--api-url", help="Override DESK_API_URL")
    parser.add_argument("--ws-url", help="Override DESK_WS_URL")
    sub = parser.add_subparsers(dest="command", required=True)

    p_watch = sub.add_parser("watch", help="Follow the live desk snapshot and pollers")
    p_watch.add_argument("--seconds", type=float, default=None, help="Stop after N seconds")

    p_copy = sub.add_parser("copy", help="Copy a desk report to the clipboard")
    p_copy.add_argument("--what", choices=COPY_SOURCES, default="snapshot")

    p_fetch = sub.add_parser("fetch", help="One-shot GET of a REST endpoint")
    p_fetch.add_argument("endpoint", help="e.g. /api/desk/pnl")

    args = parser.parse_args()

    overrides = {}
    if args.api_url:
        overrides["DESK_API_URL"] = args.api_url
    if args.ws_url:
        overrides["DESK_WS_URL"] = args.ws_url
    if overrides:
        Settings.override_env(overrides)

    settings = Settings.load()
    configure_logging(settings)

    if args.command == "watch":
        with contextlib.suppress(KeyboardInterrupt):
            asyncio.run(_watch(settings, args.seconds))
    elif args.command == "copy":
        sys.exit(asyncio.run(_copy(settings, args.what)))
    elif args.command == "fetch":
        sys.exit(asyncio.run(_fetch(settings, args.endpoint)))


if __name__ == "__main__":
    main()
