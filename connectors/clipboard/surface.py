from __future__ import annotations

import asyncio
import os
import sys
import threading
from typing import IO, Protocol

from desk.errors import ClipboardUnavailable
from utils.logging import get_logger

MANUAL_COPY_HINT = "Could not copy automatically. Select the text below and copy it manually."


class ManualCopySurface(Protocol):
    async def show(self, text: str) -> None: ...


class ConsoleCopySurface:
    """Writes the full payload between markers so a terminal user can select it."""

    def __init__(self, stream: IO[str] | None = None):
        self._stream = stream

    async def show(self, text: str) -> None:
        out = self._stream if self._stream is not None else sys.stdout
        out.write(f"\n{MANUAL_COPY_HINT}\n")
        out.write("----- BEGIN COPY -----\n")
        out.write(text)
        if not text.endswith("\n"):
            out.write("\n")
        out.write("----- END COPY -----\n")
        out.flush()


def has_display() -> bool:
    if sys.platform in ("win32", "darwin"):
        return True
    return bool(os.environ.get("DISPLAY") or os.environ.get("WAYLAND_DISPLAY"))


class TkCopySurface:
    """
    Modal window with the whole payload in a selectable text area and a
    "Select all" button. Runs its own Tk loop on a daemon thread; `show()`
    returns once the window is up and raises `ClipboardUnavailable` if it can't be built.
    """

    def __init__(self, *, title: str = "Copy manually", ready_timeout_secs: float = 5.0):
        self._title = title
        self._ready_timeout = float(ready_timeout_secs)
        self._log = get_logger(__name__)

    async def show(self, text: str) -> None:
        if not has_display():
            raise ClipboardUnavailable("no display for manual copy window")
        ready = threading.Event()
        failure: list[BaseException] = []
        t = threading.Thread(target=self._run, args=(text, ready, failure), name="manual-copy", daemon=True)
        t.start()
        if not await asyncio.to_thread(ready.wait, self._ready_timeout):
            raise ClipboardUnavailable("manual copy window did not open")
        if failure:
            raise ClipboardUnavailable(f"manual copy window failed: {failure[0]}") from failure[0]

    def _run(self, text: str, ready: threading.Event, failure: list[BaseException]) -> None:
        try:
            import tkinter as tk

            root = tk.Tk()
            root.title(self._title)
            root.attributes("-topmost", True)

            tk.Label(root, text=MANUAL_COPY_HINT, anchor="w").pack(fill="x", padx=8, pady=(8, 4))
            area = tk.Text(root, wrap="none", width=100, height=30)
            area.insert("1.0", text)
            area.pack(fill="both", expand=True, padx=8)

            def select_all() -> None:
                area.focus_set()
                area.tag_add("sel", "1.0", "end-1c")
                area.mark_set("insert", "1.0")
                area.see("1.0")

            bar = tk.Frame(root)
            bar.pack(fill="x", padx=8, pady=8)
            tk.Button(bar, text="Select all", command=select_all).pack(side="left")
            tk.Button(bar, text="Close", command=root.destroy).pack(side="right")
            select_all()
        except Exception as e:
            failure.append(e)
            ready.set()
            return
        ready.set()
        try:
            root.mainloop()
        except Exception:
            self._log.exception("manual_copy.window_error")


def default_manual_surface() -> ManualCopySurface:
    return TkCopySurface() if has_display() else ConsoleCopySurface()
