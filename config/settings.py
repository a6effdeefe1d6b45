from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from dotenv import load_dotenv

DEFAULT_API_URL = "http://127.0.0.1:8888"


def _get_env(key: str, default: str | None = None) -> str | None:
    val = os.getenv(key)
    return val if val is not None else default


def _get_int(key: str, default: int) -> int:
    v = _get_env(key)
    return default if v is None or v == "" else int(v)


def _get_float(key: str, default: float) -> float:
    v = _get_env(key)
    return default if v is None or v == "" else float(v)


def _get_bool(key: str, default: bool) -> bool:
    v = _get_env(key)
    if v is None or v == "":
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_positive(key: str, default: float) -> float:
    v = _get_float(key, default)
    if v <= 0:
        raise ValueError(f"{key} must be > 0 (got {v})")
    return v


def derive_ws_url(api_url: str) -> str:
    """
    Push-channel URL that sits next to the REST API:
    http://host:8888 -> ws://host:8888/ws, https://... -> wss://.../ws
    """
    parts = urlsplit(api_url)
    scheme = {"https": "wss", "http": "ws"}.get(parts.scheme.lower(), parts.scheme or "ws")
    path = parts.path.rstrip("/") + "/ws"
    return urlunsplit((scheme, parts.netloc, path, "", ""))


@dataclass(frozen=True)
class Settings:
    # Endpoints
    api_url: str
    ws_url: str
    http_timeout_secs: float

    # Push channel
    reconnect_delay_secs: float

    # Pollers used by `main.py watch`
    poll_clock_secs: float
    poll_bots_secs: float
    poll_positions_secs: float

    # Clipboard
    copy_success_display_secs: float
    copy_failure_display_secs: float
    user_agent: str | None
    clipboard_force_manual: bool

    # Logs
    log_level: str
    json_logs: bool
    log_file: str | None
    log_max_bytes: int
    log_backup_count: int

    @staticmethod
    def override_env(pairs: dict[str, str]) -> None:
        for k, v in pairs.items():
            os.environ[k] = v

    @classmethod
    def load(cls) -> "Settings":
        load_dotenv(override=False)

        api_url = (_get_env("DESK_API_URL", DEFAULT_API_URL) or DEFAULT_API_URL).strip().rstrip("/")
        if not api_url.lower().startswith(("http://", "https://")):
            raise ValueError("DESK_API_URL must start with http:// or https://")

        ws_url = (_get_env("DESK_WS_URL") or "").strip() or derive_ws_url(api_url)
        if not ws_url.lower().startswith(("ws://", "wss://")):
            raise ValueError("DESK_WS_URL must start with ws:// or wss://")

        return cls(
            api_url=api_url,
            ws_url=ws_url,
            http_timeout_secs=_get_positive("DESK_HTTP_TIMEOUT_SECS", 20.0),
            reconnect_delay_secs=_get_positive("DESK_RECONNECT_DELAY_SECS", 3.0),
            poll_clock_secs=_get_positive("POLL_CLOCK_SECS", 30.0),
            poll_bots_secs=_get_positive("POLL_BOTS_SECS", 60.0),
            poll_positions_secs=_get_positive("POLL_POSITIONS_SECS", 10.0),
            copy_success_display_secs=_get_positive("COPY_SUCCESS_DISPLAY_SECS", 2.0),
            copy_failure_display_secs=_get_positive("COPY_FAILURE_DISPLAY_SECS", 3.0),
            user_agent=_get_env("DESK_USER_AGENT"),
            clipboard_force_manual=_get_bool("CLIPBOARD_FORCE_MANUAL", False),
            log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
            json_logs=_get_bool("JSON_LOGS", True),
            log_file=_get_env("LOG_FILE"),
            log_max_bytes=_get_int("LOG_MAX_BYTES", 10_000_000),
            log_backup_count=_get_int("LOG_BACKUP_COUNT", 5),
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            k: getattr(self, k)
            for k in self.__dataclass_fields__.keys()  # type: ignore[attr-defined]
            if not k.startswith("_")
        }
