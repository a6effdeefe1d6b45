from __future__ import annotations

import asyncio
import time

from desk.errors import ClipboardUnavailable

# How long the copying window keeps serving selection requests before it is destroyed.
HANDOFF_SECS = 0.25


class TkSelectionWriter:
    """
    Selection-based copy: an off-screen, read-only Tk text field holds the payload,
    its whole content is selected and the toolkit's own <<Copy>> command runs.
    The window is destroyed on every path.

    On X11 the clipboard lives only as long as its owner window, unless a clipboard
    manager takes the contents over. So the copy is verified from a second, fresh Tk
    instance after the first one is gone, and reports False when nothing survived.
    """

    method = "legacy"

    def __init__(self, handoff_secs: float = HANDOFF_SECS):
        self.handoff_secs = float(handoff_secs)

    async def write(self, text: str) -> bool:
        return await asyncio.to_thread(self._copy_blocking, text)

    def _copy_blocking(self, text: str) -> bool:
        tk = _import_tk()
        root = _new_root(tk)
        try:
            root.withdraw()
            root.geometry("1x1-10000-10000")
            field = tk.Text(root, width=1, height=1)
            field.insert("1.0", text)
            field.configure(state="disabled")
            field.pack()
            field.focus_force()
            field.tag_add("sel", "1.0", "end-1c")
            root.clipboard_clear()
            field.event_generate("<<Copy>>")
            # Answer a clipboard manager's request for the contents while we still own them.
            deadline = time.monotonic() + self.handoff_secs
            while True:
                root.update()
                if time.monotonic() >= deadline:
                    break
                time.sleep(0.02)
        finally:
            _destroy(tk, root)
        return self._read_back(tk) == text

    def _read_back(self, tk) -> str | None:
        try:
            check_root = tk.Tk()
        except tk.TclError:
            return None
        try:
            check_root.withdraw()
            return check_root.clipboard_get()
        except tk.TclError:
            return None
        finally:
            _destroy(tk, check_root)


def _import_tk():
    try:
        import tkinter as tk
    except ImportError as e:
        raise ClipboardUnavailable("tkinter is not installed") from e
    return tk


def _new_root(tk):
    try:
        return tk.Tk()
    except tk.TclError as e:
        raise ClipboardUnavailable(f"no display for selection copy: {e}") from e


def _destroy(tk, root) -> None:
    try:
        root.destroy()
    except tk.TclError:
        pass
