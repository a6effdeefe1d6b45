from __future__ import annotations

import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal, Mapping

ConnectionState = Literal["connecting", "open", "closed"]
SnapshotSource = Literal["snapshot", "desk_update", "rest"]

CopyStatus = Literal["idle", "pending", "succeeded", "failed"]
CopyOutcome = Literal["succeeded", "failed", "manual_surface_shown"]
CopyMethod = Literal["native", "legacy", "manual"]


@dataclass(frozen=True)
class Snapshot:
    """
    The state of the desk right now, as the server defines it.
    Sections (positions, bots, events, daily_pnl, summary, ...) are passed through untouched;
    a newer Snapshot replaces this one wholesale.
    """

    data: Mapping[str, Any]
    source: SnapshotSource
    received_ts: float = field(default_factory=lambda: time.time())

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        *,
        source: SnapshotSource,
        received_ts: float | None = None,
    ) -> "Snapshot":
        if not isinstance(payload, Mapping):
            raise TypeError(f"snapshot payload must be a mapping, got {type(payload).__name__}")
        return cls(
            data=MappingProxyType(dict(payload)),
            source=source,
            received_ts=time.time() if received_ts is None else float(received_ts),
        )

    def section(self, name: str, default: Any = None) -> Any:
        return self.data.get(name, default)

    def as_dict(self) -> dict[str, Any]:
        return dict(self.data)


@dataclass
class PollingSubscription:
    resource: str
    interval_secs: float
    last_result: Any = None
    last_success_ts: float | None = None
    last_error: str | None = None
    fetch_count: int = 0
    error_count: int = 0

    @property
    def has_value(self) -> bool:
        return self.last_success_ts is not None


@dataclass
class ClipboardAttempt:
    payload: str | None = None
    status: CopyStatus = "idle"
    outcome: CopyOutcome | None = None
    method: CopyMethod | None = None
    error: BaseException | None = None
    started_ts: float = field(default_factory=lambda: time.time())
