from __future__ import annotations

import io
import sys

import pyperclip
import pytest

from connectors.clipboard.native import PyperclipWriter
from connectors.clipboard.selection import TkSelectionWriter
from connectors.clipboard.surface import ConsoleCopySurface
from desk.errors import ClipboardUnavailable, ClipboardWriteFailed


@pytest.mark.asyncio
async def test_pyperclip_writer_verifies_read_back(monkeypatch):
    board = {}
    monkeypatch.setattr(pyperclip, "copy", lambda text: board.__setitem__("v", text))
    monkeypatch.setattr(pyperclip, "paste", lambda: board.get("v"))

    assert await PyperclipWriter().write("pnl +120.50") is True
    assert board["v"] == "pnl +120.50"


@pytest.mark.asyncio
async def test_pyperclip_writer_missing_backend(monkeypatch):
    def _no_backend(text):
        raise pyperclip.PyperclipException("could not find a copy/paste mechanism")

    monkeypatch.setattr(pyperclip, "copy", _no_backend)
    with pytest.raises(ClipboardUnavailable):
        await PyperclipWriter().write("x")


@pytest.mark.asyncio
async def test_pyperclip_writer_silent_failure_detected(monkeypatch):
    monkeypatch.setattr(pyperclip, "copy", lambda text: None)
    monkeypatch.setattr(pyperclip, "paste", lambda: "something else")
    with pytest.raises(ClipboardWriteFailed):
        await PyperclipWriter().write("x")

    assert await PyperclipWriter(verify=False).write("x") is True


@pytest.mark.asyncio
async def test_console_surface_prints_full_payload():
    out = io.StringIO()
    payload = "row\n" * 300
    await ConsoleCopySurface(out).show(payload)

    text = out.getvalue()
    assert payload in text
    assert "copy it manually" in text
    assert "[...truncated]" not in text


class _FakeTk:
    """Stand-in for the tkinter module with X11 clipboard ownership rules."""

    class TclError(Exception):
        pass

    def __init__(self, *, manager: bool, display: bool = True):
        self.manager = manager
        self.display = display
        self.board: str | None = None
        self.owner = None
        self.roots: list = []
        fake = self

        class Tk:
            def __init__(self):
                if not fake.display:
                    raise fake.TclError("no display name and no $DISPLAY environment variable")
                self.destroyed = False
                fake.roots.append(self)

            def withdraw(self):
                pass

            def geometry(self, size):
                pass

            def update(self):
                if fake.manager and fake.owner is self:
                    fake.owner = "manager"

            def clipboard_clear(self):
                fake.board, fake.owner = None, self

            def clipboard_get(self):
                if fake.board is None:
                    raise fake.TclError("CLIPBOARD selection doesn't exist")
                return fake.board

            def destroy(self):
                self.destroyed = True
                if fake.owner is self:
                    fake.board, fake.owner = None, None

        class Text:
            def __init__(self, root, **kw):
                self.root = root
                self.content = ""

            def insert(self, index, text):
                self.content += text

            def configure(self, **kw):
                pass

            def pack(self):
                pass

            def focus_force(self):
                pass

            def tag_add(self, tag, start, end):
                pass

            def event_generate(self, sequence):
                assert sequence == "<<Copy>>"
                fake.board, fake.owner = self.content, self.root

        self.Tk = Tk
        self.Text = Text


@pytest.mark.asyncio
async def test_selection_copy_survives_when_clipboard_manager_takes_over(monkeypatch):
    fake = _FakeTk(manager=True)
    monkeypatch.setitem(sys.modules, "tkinter", fake)

    assert await TkSelectionWriter(handoff_secs=0).write("desk report") is True
    assert fake.board == "desk report"
    assert fake.roots and all(r.destroyed for r in fake.roots)


@pytest.mark.asyncio
async def test_selection_copy_lost_with_owner_window_reports_false(monkeypatch):
    fake = _FakeTk(manager=False)
    monkeypatch.setitem(sys.modules, "tkinter", fake)

    assert await TkSelectionWriter(handoff_secs=0).write("desk report") is False
    assert all(r.destroyed for r in fake.roots)


@pytest.mark.asyncio
async def test_selection_copy_without_display_is_unavailable(monkeypatch):
    monkeypatch.setitem(sys.modules, "tkinter", _FakeTk(manager=True, display=False))
    with pytest.raises(ClipboardUnavailable):
        await TkSelectionWriter().write("x")
