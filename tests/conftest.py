from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import pytest

from connectors.desk.ws_channel import ChannelClosed, DeskChannel
from monitoring.status import reset_component_statuses

_CLOSE = object()


class _ManualHandle:
    def __init__(self, when: float, callback: Callable[..., Any], args: tuple):
        self.when = when
        self.callback = callback
        self.args = args
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler:
    """Virtual clock: timers only fire when the test calls `advance()`."""

    def __init__(self) -> None:
        self.now = 0.0
        self._timers: list[_ManualHandle] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> _ManualHandle:
        h = _ManualHandle(self.now + float(delay), callback, args)
        self._timers.append(h)
        return h

    def pending(self) -> list[_ManualHandle]:
        return [h for h in self._timers if not h.cancelled()]

    def advance(self, secs: float) -> None:
        target = self.now + float(secs)
        while True:
            due = [h for h in self._timers if not h.cancelled() and h.when <= target]
            if not due:
                break
            h = min(due, key=lambda x: x.when)
            self._timers.remove(h)
            self.now = h.when
            h.callback(*h.args)
        self.now = target


class FakeChannel(DeskChannel):
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.fail_sends = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, text: str) -> None:
        if self.closed or self.fail_sends:
            raise ChannelClosed("send on closed channel")
        self.sent.append(json.loads(text))

    async def recv(self) -> str | bytes:
        item = await self._inbox.get()
        if item is _CLOSE:
            raise ChannelClosed("closed")
        return item

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(_CLOSE)

    def push(self, msg: Any) -> None:
        self._inbox.put_nowait(msg if isinstance(msg, (str, bytes)) else json.dumps(msg))

    def drop(self) -> None:
        """Server side goes away."""
        self.closed = True
        self._inbox.put_nowait(_CLOSE)


class FakeOpener:
    def __init__(self) -> None:
        self.calls = 0
        self.urls: list[str] = []
        self.channels: list[FakeChannel] = []
        self.fail_next = 0

    async def __call__(self, url: str) -> FakeChannel:
        self.calls += 1
        self.urls.append(url)
        if self.fail_next:
            self.fail_next -= 1
            raise OSError("connection refused")
        ch = FakeChannel()
        self.channels.append(ch)
        return ch

    @property
    def last(self) -> FakeChannel:
        return self.channels[-1]


async def settle(rounds: int = 20) -> None:
    """Let every ready callback/task run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def opener() -> FakeOpener:
    return FakeOpener()


@pytest.fixture(autouse=True)
def _clean_status_board():
    reset_component_statuses()
    yield
    reset_component_statuses()
