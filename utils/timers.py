from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Callable, Coroutine, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """
    Clock + one-shot timers.

    `asyncio.AbstractEventLoop` satisfies this directly (`time()` / `call_later()`),
    so production code passes nothing and falls back to the running loop. Tests pass a
    virtual-time scheduler instead and advance it explicitly.
    """

    def time(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


def resolve_scheduler(scheduler: Scheduler | None) -> Scheduler:
    return scheduler if scheduler is not None else asyncio.get_running_loop()


class BackgroundTasks:
    """
    Holds strong references to fire-and-forget tasks until they finish
    (the event loop only keeps weak ones).
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def __len__(self) -> int:
        return len(self._tasks)

    async def cancel_all(self) -> None:
        current = asyncio.current_task()
        pending = [t for t in self._tasks if t is not current and not t.done()]
        for t in pending:
            t.cancel()
        for t in pending:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await t
