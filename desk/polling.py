from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable

from desk.types import PollingSubscription
from monitoring.status import set_component_status
from utils.logging import get_logger
from utils.timers import BackgroundTasks, Scheduler, TimerHandle, resolve_scheduler

# Refresh cadences used across the desk views, fastest to slowest.
FAST_SECS = 5.0
POSITIONS_SECS = 10.0
STATUS_SECS = 30.0
ROSTER_SECS = 60.0
SLOW_SECS = 300.0

Fetch = Callable[[], Awaitable[Any]]
ResultListener = Callable[[Any], None]


class PollingRefresher:
    """
    Fixed-interval re-fetch of one read-only resource.

    The timer is re-armed before each fetch starts and every fetch runs as its own task,
    so ticks stay on schedule however long a fetch takes. Deactivation cancels that one
    timer handle; in-flight fetches are left to finish.

    Failed fetches are logged and the last good value is kept.
    Results that arrive after `deactivate()`, or that are older than a result already
    applied, are discarded.
    """

    def __init__(
        self,
        name: str,
        fetch: Fetch,
        *,
        interval_secs: float,
        scheduler: Scheduler | None = None,
        resource: str | None = None,
    ):
        if float(interval_secs) <= 0:
            raise ValueError("interval_secs must be > 0")
        self.name = name
        self._fetch = fetch
        self._interval = float(interval_secs)
        self._scheduler = scheduler
        self._log = get_logger(__name__, poller=name)
        self.subscription = PollingSubscription(resource=resource or name, interval_secs=self._interval)

        self._active = False
        self._handle: TimerHandle | None = None
        # Bumped on every activate/deactivate; in-flight fetches from an older generation are stale.
        self._generation = 0
        self._seq = 0
        self._applied_seq = 0
        self._tasks = BackgroundTasks()
        self._listeners: list[ResultListener] = []

    @property
    def active(self) -> bool:
        return self._active

    @property
    def value(self) -> Any:
        return self.subscription.last_result

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def subscribe(self, listener: ResultListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def activate(self) -> None:
        """Fetch now, then every `interval_secs`. Must be called from inside the event loop."""
        if self._active:
            return
        self._active = True
        self._generation += 1
        self._log.debug("poll.activate", interval_secs=self._interval)
        self._tick(self._generation)

    def deactivate(self) -> None:
        if not self._active:
            return
        self._active = False
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._log.debug("poll.deactivate", in_flight=len(self._tasks))

    async def refresh_now(self) -> Any:
        """Out-of-band fetch; the regular schedule is untouched."""
        if self._active:
            await self._launch(self._generation)
        return self.value

    async def __aenter__(self) -> "PollingRefresher":
        self.activate()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.deactivate()

    def _tick(self, generation: int) -> None:
        if not self._active or generation != self._generation:
            return
        self._handle = resolve_scheduler(self._scheduler).call_later(self._interval, self._tick, generation)
        self._launch(generation)

    def _launch(self, generation: int) -> asyncio.Task:
        self._seq += 1
        return self._tasks.spawn(self._run_fetch(generation, self._seq), name=f"poll-{self.name}")

    def _is_current(self, generation: int) -> bool:
        return self._active and generation == self._generation

    async def _run_fetch(self, generation: int, seq: int) -> None:
        sub = self.subscription
        try:
            result = await self._fetch()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self._is_current(generation):
                return
            sub.error_count += 1
            sub.last_error = f"{type(e).__name__}: {e}"
            self._log.exception("poll.error", resource=sub.resource, errors=sub.error_count, stale=sub.has_value)
            set_component_status(
                f"poll.{self.name}",
                state="degraded" if sub.has_value else "error",
                last_error=sub.last_error,
            )
            return

        if not self._is_current(generation):
            self._log.debug("poll.discarded", reason="inactive")
            return
        if seq < self._applied_seq:
            self._log.debug("poll.discarded", reason="superseded", seq=seq, applied=self._applied_seq)
            return

        self._applied_seq = seq
        now = time.time()
        sub.last_result = result
        sub.last_success_ts = now
        sub.last_error = None
        sub.fetch_count += 1
        set_component_status(
            f"poll.{self.name}",
            state="ok",
            detail={"resource": sub.resource, "interval_secs": self._interval},
            last_success_ts=now,
        )
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:
                self._log.exception("poll.listener_error")
