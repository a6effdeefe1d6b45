from __future__ import annotations


class MalformedMessage(ValueError):
    """Inbound push frame that fails the structural parse; dropped by the connection."""


class DeskApiError(RuntimeError):
    """REST call failed: non-2xx status, transport error or a body that isn't JSON."""

    def __init__(self, message: str, *, status: int | None = None, endpoint: str | None = None):
        super().__init__(message)
        self.status = status
        self.endpoint = endpoint


class ClipboardError(Exception):
    pass


class PayloadUnavailable(ClipboardError):
    """The payload producer raised; no clipboard mechanism was tried."""


class EmptyPayload(ClipboardError):
    """The payload producer returned nothing to copy."""


class ClipboardUnavailable(ClipboardError):
    """A mechanism can't run in this environment (no display, no backend, insecure origin)."""


class ClipboardWriteFailed(ClipboardError):
    """A mechanism ran but the clipboard doesn't hold the payload afterwards."""
