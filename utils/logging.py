from __future__ import annotations

import json
import logging
import sys
import time
from dataclasses import asdict, is_dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": round(record.created, 6),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        extra = getattr(record, "extra_fields", None)
        if isinstance(extra, dict):
            for k, v in extra.items():
                payload[k] = _to_jsonable(v)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


class KeyValueFormatter(logging.Formatter):
    """Human-readable variant for terminals: `event k=v k=v`."""

    def format(self, record: logging.LogRecord) -> str:
        ts = time.strftime("%H:%M:%S", time.localtime(record.created))
        parts = [f"{ts} {record.levelname:<7} {record.name} {record.getMessage()}"]
        extra = getattr(record, "extra_fields", None)
        if isinstance(extra, dict):
            parts.extend(f"{k}={_to_jsonable(v)}" for k, v in extra.items())
        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _to_jsonable(v: Any) -> Any:
    if is_dataclass(v) and not isinstance(v, type):
        return asdict(v)
    if isinstance(v, (str, int, float, bool)) or v is None:
        return v
    if isinstance(v, dict):
        return {str(k): _to_jsonable(val) for k, val in v.items()}
    if isinstance(v, (list, tuple, set, frozenset)):
        return [_to_jsonable(x) for x in v]
    return str(v)


class _Logger:
    """
    Event-style logger: `log.info("desk_ws.connected", url=url)`.
    Fields bound at construction are merged into every record.
    """

    def __init__(self, logger: logging.Logger, bound: dict[str, Any] | None = None):
        self._l = logger
        self._bound = dict(bound or {})

    def bind(self, **fields: Any) -> "_Logger":
        return _Logger(self._l, {**self._bound, **fields})

    def _extra(self, fields: dict[str, Any]) -> dict[str, Any]:
        return {"extra_fields": {**self._bound, **fields}}

    def info(self, msg: str, **fields: Any) -> None:
        self._l.info(msg, extra=self._extra(fields))

    def warning(self, msg: str, **fields: Any) -> None:
        self._l.warning(msg, extra=self._extra(fields))

    def error(self, msg: str, **fields: Any) -> None:
        self._l.error(msg, extra=self._extra(fields))

    def exception(self, msg: str, **fields: Any) -> None:
        self._l.exception(msg, extra=self._extra(fields))

    def debug(self, msg: str, **fields: Any) -> None:
        self._l.debug(msg, extra=self._extra(fields))


def get_logger(name: str, **bound: Any) -> _Logger:
    return _Logger(logging.getLogger(name), bound)


def configure_logging(settings: Any) -> None:
    level_name = getattr(settings, "log_level", "INFO")
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)

    fmt: logging.Formatter
    if getattr(settings, "json_logs", True):
        fmt = JsonFormatter()
    else:
        fmt = KeyValueFormatter()

    # stderr keeps stdout free for command output (`fetch`, console copy surface).
    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(fmt)
    root.addHandler(stream)

    log_file = getattr(settings, "log_file", None)
    if log_file:
        p = Path(str(log_file)).expanduser()
        if not p.is_absolute():
            p = Path.cwd() / p
        p.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(
            str(p),
            maxBytes=int(getattr(settings, "log_max_bytes", 10_000_000)),
            backupCount=int(getattr(settings, "log_backup_count", 5)),
            encoding="utf-8",
        )
        fh.setFormatter(fmt)
        root.addHandler(fh)

    # aiohttp/websockets are chatty at DEBUG; keep them at WARNING unless asked.
    if level > logging.DEBUG:
        for noisy in ("websockets", "aiohttp"):
            logging.getLogger(noisy).setLevel(logging.WARNING)
