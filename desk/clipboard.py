from __future__ import annotations

import asyncio
import inspect
import os
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator, Mapping, Protocol, Union
from urllib.parse import urlsplit

from connectors.clipboard.native import PyperclipWriter
from connectors.clipboard.selection import TkSelectionWriter
from connectors.clipboard.surface import ConsoleCopySurface, ManualCopySurface, default_manual_surface
from desk.errors import ClipboardError, ClipboardUnavailable, ClipboardWriteFailed, EmptyPayload, PayloadUnavailable
from desk.types import ClipboardAttempt, CopyMethod, CopyOutcome
from monitoring.status import set_component_status
from utils.logging import get_logger
from utils.timers import Scheduler, TimerHandle, resolve_scheduler

SUCCESS_DISPLAY_SECS = 2.0
FAILURE_DISPLAY_SECS = 3.0

_TOUCH_UA = re.compile(r"Android|iPhone|iPad|iPod|Mobile|webOS|BlackBerry|IEMobile|Opera Mini", re.IGNORECASE)
_LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}

PayloadProducer = Callable[[], Union[str, None, Awaitable[Union[str, None]]]]
AttemptListener = Callable[[ClipboardAttempt], None]


class ClipboardWriter(Protocol):
    async def write(self, text: str) -> bool: ...


def is_secure_context(origin: str) -> bool:
    """
    Same rule browsers use for `isSecureContext`: TLS transport, or a loopback host.
    """
    parts = urlsplit(origin)
    scheme = (parts.scheme or "").lower()
    if scheme in ("https", "wss", "file"):
        return True
    host = (parts.hostname or "").lower()
    return host in _LOOPBACK_HOSTS or host.endswith(".localhost")


@dataclass(frozen=True)
class ClipboardCapabilities:
    is_touch_platform: bool
    has_secure_clipboard: bool

    @classmethod
    def detect(
        cls,
        *,
        origin: str,
        user_agent: str | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> "ClipboardCapabilities":
        env = os.environ if environ is None else environ
        ua = user_agent if user_agent is not None else env.get("DESK_USER_AGENT", "")
        touch = bool(ua and _TOUCH_UA.search(ua))
        # Termux on Android: no reliable clipboard backend without the termux-api add-on.
        if "com.termux" in env.get("PREFIX", ""):
            touch = True
        return cls(is_touch_platform=touch, has_secure_clipboard=is_secure_context(origin))


class ClipboardService:
    """
    Gets text onto the system clipboard and always leaves the user a way to get it.

    Cascade, stopping at the first success:
      1. native OS clipboard write (only in a secure context)
      2. selection-based copy through a hidden text field
      3. manual-copy surface with the full payload (terminal, always "works")
    On touch platforms 1 and 2 are skipped.

    Each `copy()` produces exactly one outcome: succeeded | failed | manual_surface_shown.
    `failed` means there was nothing to copy (producer raised or returned empty), or that
    not even the console surface could be written to.
    A later `copy()` supersedes an earlier one still in flight: the older outcome is
    recorded on its own attempt but never displayed.
    """

    def __init__(
        self,
        capabilities: ClipboardCapabilities,
        *,
        native: ClipboardWriter | None = None,
        legacy: ClipboardWriter | None = None,
        surface: ManualCopySurface | None = None,
        fallback_surface: ManualCopySurface | None = None,
        scheduler: Scheduler | None = None,
        success_display_secs: float = SUCCESS_DISPLAY_SECS,
        failure_display_secs: float = FAILURE_DISPLAY_SECS,
    ):
        self.capabilities = capabilities
        self._native = native if native is not None else PyperclipWriter()
        self._legacy = legacy if legacy is not None else TkSelectionWriter()
        self._surface = surface if surface is not None else default_manual_surface()
        self._fallback_surface = fallback_surface if fallback_surface is not None else ConsoleCopySurface()
        self._scheduler = scheduler
        self._success_secs = float(success_display_secs)
        self._failure_secs = float(failure_display_secs)
        self._log = get_logger(__name__)

        self.attempt = ClipboardAttempt()
        self._clear_handle: TimerHandle | None = None
        self._listeners: list[AttemptListener] = []

    def on_change(self, listener: AttemptListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def copy_text(self, text: str) -> ClipboardAttempt:
        return await self.copy(lambda: text)

    async def copy(self, get_payload: PayloadProducer) -> ClipboardAttempt:
        self._cancel_clear()
        attempt = ClipboardAttempt(status="pending")
        self._publish(attempt)

        try:
            text: Any = get_payload()
            if inspect.isawaitable(text):
                text = await text
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._log.exception("clipboard.payload_failed")
            err = PayloadUnavailable(f"failed to get data: {type(e).__name__}: {e}")
            err.__cause__ = e
            return self._finish(attempt, "failed", error=err)

        if text is not None and not isinstance(text, str):
            return self._finish(
                attempt, "failed", error=PayloadUnavailable(f"payload is {type(text).__name__}, not text")
            )
        if not text:
            self._log.warning("clipboard.no_data")
            return self._finish(attempt, "failed", error=EmptyPayload("no data"))

        attempt.payload = text
        if self.capabilities.is_touch_platform:
            return await self._show_manual(attempt, reason="touch platform")

        last_error: ClipboardError | None = None
        for method, writer in self._strategies():
            try:
                ok = await writer.write(text)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e if isinstance(e, ClipboardError) else ClipboardWriteFailed(f"{type(e).__name__}: {e}")
                self._log.warning("clipboard.method_failed", method=method, err=f"{type(e).__name__}: {e}")
                continue
            if ok:
                self._log.info("clipboard.copied", method=method, chars=len(text))
                return self._finish(attempt, "succeeded", method=method)
            last_error = ClipboardWriteFailed(f"{method} copy reported failure")
            self._log.warning("clipboard.method_failed", method=method, err="returned false")

        attempt.error = last_error
        return await self._show_manual(attempt, reason="all methods failed")

    def _strategies(self) -> Iterator[tuple[CopyMethod, ClipboardWriter]]:
        if self.capabilities.has_secure_clipboard:
            yield "native", self._native
        else:
            self._log.debug("clipboard.native_skipped", reason="insecure context")
        yield "legacy", self._legacy

    async def _show_manual(self, attempt: ClipboardAttempt, *, reason: str) -> ClipboardAttempt:
        text = attempt.payload or ""
        self._log.info("clipboard.manual_surface", reason=reason, chars=len(text))
        try:
            await self._surface.show(text)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            level = self._log.warning if isinstance(e, ClipboardUnavailable) else self._log.exception
            level("clipboard.surface_failed", err=f"{type(e).__name__}: {e}")
            try:
                await self._fallback_surface.show(text)
            except asyncio.CancelledError:
                raise
            except Exception as fallback_err:
                self._log.exception("clipboard.fallback_surface_failed")
                err = ClipboardUnavailable(f"no manual copy surface: {type(fallback_err).__name__}: {fallback_err}")
                err.__cause__ = fallback_err
                return self._finish(attempt, "failed", method="manual", error=err)

        attempt.status = "idle"
        attempt.outcome = "manual_surface_shown"
        attempt.method = "manual"
        if self.attempt is not attempt:
            return attempt
        set_component_status("clipboard", state="degraded", detail={"outcome": "manual_surface_shown", "reason": reason})
        self._publish(attempt)
        return attempt

    def _finish(
        self,
        attempt: ClipboardAttempt,
        outcome: CopyOutcome,
        *,
        method: CopyMethod | None = None,
        error: ClipboardError | None = None,
    ) -> ClipboardAttempt:
        attempt.outcome = outcome
        attempt.method = method
        attempt.error = error
        attempt.status = "succeeded" if outcome == "succeeded" else "failed"
        if self.attempt is not attempt:
            # A newer copy() owns the displayed status.
            self._log.debug("clipboard.superseded", outcome=outcome)
            return attempt
        if outcome == "succeeded":
            delay = self._success_secs
            set_component_status("clipboard", state="ok", detail={"outcome": outcome, "method": method}, last_success_ts=time.time())
        else:
            delay = self._failure_secs
            set_component_status(
                "clipboard",
                state="error",
                detail={"outcome": outcome},
                last_error=f"{type(error).__name__}: {error}" if error else None,
            )
        self._publish(attempt)
        self._cancel_clear()
        self._clear_handle = resolve_scheduler(self._scheduler).call_later(delay, self._clear, attempt)
        return attempt

    def _clear(self, attempt: ClipboardAttempt) -> None:
        self._clear_handle = None
        if self.attempt is not attempt:
            return
        attempt.status = "idle"
        self._publish(attempt)

    def _cancel_clear(self) -> None:
        if self._clear_handle is not None:
            self._clear_handle.cancel()
            self._clear_handle = None

    def _publish(self, attempt: ClipboardAttempt) -> None:
        self.attempt = attempt
        for listener in list(self._listeners):
            try:
                listener(attempt)
            except Exception:
                self._log.exception("clipboard.listener_error")
