from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Literal

ComponentState = Literal["idle", "connecting", "ok", "degraded", "error"]

# Worst first; the board's overall health is the worst state any component reports.
_SEVERITY: dict[str, int] = {"error": 4, "degraded": 3, "connecting": 2, "ok": 1, "idle": 0}

HISTORY_LEN = 20


@dataclass(frozen=True)
class StateChange:
    ts: float
    previous: ComponentState
    state: ComponentState
    reason: str | None = None


@dataclass
class ComponentStatus:
    name: str
    state: ComponentState = "idle"
    detail: dict[str, Any] = field(default_factory=dict)

    last_change_ts: float | None = None
    last_success_ts: float | None = None
    last_error: str | None = None
    changes: deque[StateChange] = field(default_factory=lambda: deque(maxlen=HISTORY_LEN))

    def as_dict(self) -> dict[str, Any]:
        now = time.time()
        return {
            "name": self.name,
            "state": self.state,
            "detail": dict(self.detail),
            "last_change_ts": self.last_change_ts,
            "last_success_ts": self.last_success_ts,
            "last_error": self.last_error,
            "age_secs": None if self.last_success_ts is None else max(0.0, now - float(self.last_success_ts)),
            "changes": len(self.changes),
        }


_lock = threading.Lock()
_statuses: dict[str, ComponentStatus] = {}


def set_component_status(
    name: str,
    *,
    state: ComponentState | None = None,
    detail: dict[str, Any] | None = None,
    last_success_ts: float | None = None,
    last_error: str | None = None,
) -> None:
    """
    In-process diagnostics board for the connection, pollers and clipboard flow.
    Updates are last-write-wins; `detail` is merged into what is already there.
    Each state transition is kept in a short per-component history.
    """
    with _lock:
        st = _statuses.get(name) or ComponentStatus(name=name)
        if state is not None and state != st.state:
            now = time.time()
            st.changes.append(StateChange(ts=now, previous=st.state, state=state, reason=last_error))
            st.state = state
            st.last_change_ts = now
        if detail:
            st.detail = {**st.detail, **detail}
        if last_success_ts is not None:
            st.last_success_ts = last_success_ts
        if last_error is not None:
            st.last_error = last_error
        _statuses[name] = st


def get_component_statuses() -> dict[str, dict[str, Any]]:
    with _lock:
        return {k: v.as_dict() for k, v in sorted(_statuses.items(), key=lambda kv: kv[0])}


def get_component_history(name: str) -> list[StateChange]:
    with _lock:
        st = _statuses.get(name)
        return [] if st is None else list(st.changes)


def overall_state(prefix: str | None = None) -> ComponentState:
    """Worst state across components (optionally only names starting with `prefix`)."""
    with _lock:
        states = [st.state for name, st in _statuses.items() if prefix is None or name.startswith(prefix)]
    if not states:
        return "idle"
    return max(states, key=lambda s: _SEVERITY[s])


def reset_component_statuses() -> None:
    with _lock:
        _statuses.clear()
