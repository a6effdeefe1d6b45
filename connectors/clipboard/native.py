from __future__ import annotations

import asyncio

import pyperclip

from desk.errors import ClipboardUnavailable, ClipboardWriteFailed


class PyperclipWriter:
    """
    OS clipboard through pyperclip (pbcopy, xclip/xsel/wl-copy, win32).

    Raises instead of returning False: `ClipboardUnavailable` when pyperclip has no
    backend here, `ClipboardWriteFailed` when the read-back doesn't match.
    """

    method = "native"

    def __init__(self, *, verify: bool = True):
        self._verify = verify

    async def write(self, text: str) -> bool:
        return await asyncio.to_thread(self._write_blocking, text)

    def _write_blocking(self, text: str) -> bool:
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as e:
            raise ClipboardUnavailable(str(e)) from e
        if not self._verify:
            return True
        try:
            pasted = pyperclip.paste()
        except pyperclip.PyperclipException as e:
            raise ClipboardWriteFailed(f"read-back failed: {e}") from e
        if pasted != text:
            raise ClipboardWriteFailed("clipboard does not hold the payload after copy")
        return True
