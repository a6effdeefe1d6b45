from __future__ import annotations

import asyncio
import contextlib
import time
from typing import Any, Callable, Mapping

from connectors.desk.ws_channel import ChannelClosed, ChannelOpener, DeskChannel, open_websocket_channel
from desk.errors import MalformedMessage
from desk.messages import GET_SNAPSHOT, DeskMessage, SnapshotMessage, encode_message, parse_message
from desk.types import ConnectionState, Snapshot
from monitoring.status import set_component_status
from utils.logging import get_logger
from utils.timers import BackgroundTasks, Scheduler, TimerHandle, resolve_scheduler

RECONNECT_DELAY_SECS = 3.0

SnapshotListener = Callable[[Snapshot], None]
StatusListener = Callable[[bool], None]


class ConnectionManager:
    """
    Owns the single push channel to the desk backend.

    Lifecycle:
        closed --connect()--> connecting --handshake ok--> open --any failure/close--> closed
        closed --reconnect timer (fixed delay)--> connecting --> ...

    Retries forever with a fixed delay. Every transport problem (refused handshake,
    dropped socket, failed send) takes the same path: mark closed, arm one reconnect timer.
    Inbound `snapshot` / `desk_update` frames replace the current Snapshot wholesale,
    in the order the transport delivers them.

    One instance per session; `teardown()` is final.
    """

    def __init__(
        self,
        url: str,
        *,
        open_channel: ChannelOpener | None = None,
        scheduler: Scheduler | None = None,
        reconnect_delay_secs: float = RECONNECT_DELAY_SECS,
        status_name: str = "desk.ws",
    ):
        if float(reconnect_delay_secs) <= 0:
            raise ValueError("reconnect_delay_secs must be > 0")
        self.url = url
        self._open_channel = open_channel or open_websocket_channel
        self._scheduler = scheduler
        self._delay = float(reconnect_delay_secs)
        self._status_name = status_name
        self._log = get_logger(__name__, url=url)

        self._state: ConnectionState = "closed"
        self._channel: DeskChannel | None = None
        self._reader: asyncio.Task | None = None
        self._reconnect_handle: TimerHandle | None = None
        self._torn_down = False
        self._tasks = BackgroundTasks()

        self._snapshot: Snapshot | None = None
        self._snapshot_ready = asyncio.Event()
        self.last_message: DeskMessage | None = None
        self.reconnect_attempts = 0
        self.dropped_messages = 0

        self._listeners: list[SnapshotListener] = []
        self._status_listeners: list[StatusListener] = []

    # -- read side ---------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == "open"

    @property
    def snapshot(self) -> Snapshot | None:
        return self._snapshot

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Called with every new Snapshot. Returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: _discard(self._listeners, listener)

    def subscribe_status(self, listener: StatusListener) -> Callable[[], None]:
        """Called with the new `is_connected` value on every flip."""
        self._status_listeners.append(listener)
        return lambda: _discard(self._status_listeners, listener)

    async def wait_for_snapshot(self, timeout: float | None = None) -> Snapshot:
        while self._snapshot is None:
            await asyncio.wait_for(self._snapshot_ready.wait(), timeout)
        return self._snapshot

    # -- lifecycle ---------------------------------------------------------

    async def connect(self) -> None:
        """
        Open the channel unless one is already open or opening.
        Never raises for transport problems; those arm the reconnect timer instead.
        """
        if self._torn_down:
            self._log.debug("desk_ws.connect_after_teardown")
            return
        if self._state in ("open", "connecting"):
            return

        self._set_state("connecting")
        try:
            channel = await self._open_channel(self.url)
        except asyncio.CancelledError:
            self._set_state("closed")
            raise
        except Exception as e:
            self._log.warning("desk_ws.connect_failed", err=f"{type(e).__name__}: {e}")
            self._handle_closed(None, reason=f"connect failed: {type(e).__name__}")
            return

        if self._torn_down:
            await _close_quietly(channel)
            return

        self._channel = channel
        self._set_state("open")
        self._log.info("desk_ws.connected", attempt=self.reconnect_attempts)
        set_component_status(self._status_name, last_success_ts=time.time())

        # Pull on connect instead of waiting for the next server push.
        await self.send(GET_SNAPSHOT)
        if self._channel is channel:
            self._reader = asyncio.get_running_loop().create_task(self._read_loop(channel), name="desk-ws-reader")

    async def send(self, message: Mapping[str, Any]) -> None:
        """Fire-and-forget. Dropped silently unless the channel is open."""
        channel = self._channel
        if self._state != "open" or channel is None:
            self._log.debug("desk_ws.send_dropped", type=message.get("type"), state=self._state)
            return
        try:
            await channel.send(encode_message(message))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._log.warning("desk_ws.send_failed", type=message.get("type"), err=f"{type(e).__name__}: {e}")
            self._tasks.spawn(_close_quietly(channel))
            self._handle_closed(channel, reason="send failed")

    async def teardown(self) -> None:
        """Cancel the reconnect timer and close the channel. Safe to call repeatedly, in any state."""
        first = not self._torn_down
        self._torn_down = True
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        reader, self._reader = self._reader, None
        channel, self._channel = self._channel, None
        was_open = self._state == "open"
        self._state = "closed"

        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await reader
        if channel is not None:
            await _close_quietly(channel)
        await self._tasks.cancel_all()

        if was_open:
            self._notify_status(False)
        if first:
            self._log.info("desk_ws.teardown")
            set_component_status(self._status_name, state="idle", detail={"torn_down": True})

    async def __aenter__(self) -> "ConnectionManager":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.teardown()

    # -- internals ---------------------------------------------------------

    async def _read_loop(self, channel: DeskChannel) -> None:
        reason = "closed"
        try:
            while True:
                raw = await channel.recv()
                self._handle_frame(raw)
        except asyncio.CancelledError:
            raise
        except ChannelClosed as e:
            reason = f"closed: {e}"
            self._log.info("desk_ws.closed", reason=str(e))
        except Exception as e:
            reason = f"{type(e).__name__}: {e}"
            self._log.exception("desk_ws.error")
        if self._channel is channel:
            self._reader = None
        self._handle_closed(channel, reason=reason)

    def _handle_frame(self, raw: Any) -> None:
        try:
            msg = parse_message(raw)
        except MalformedMessage as e:
            self.dropped_messages += 1
            self._log.warning("desk_ws.malformed_message", err=str(e), dropped=self.dropped_messages)
            return

        self.last_message = msg
        if isinstance(msg, SnapshotMessage):
            self._apply_snapshot(Snapshot.from_payload(msg.data, source=msg.kind))
        else:
            self._log.debug("desk_ws.ignored_message", tag=msg.tag)

    def _apply_snapshot(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot
        self._snapshot_ready.set()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                self._log.exception("desk_ws.listener_error")

    def _handle_closed(self, channel: DeskChannel | None, *, reason: str) -> None:
        if channel is not None and channel is not self._channel:
            # Late close from a channel that was already replaced or torn down.
            return

        was_open = self._state == "open"
        self._channel = None
        self._state = "closed"
        if self._reader is not None and self._reader is not asyncio.current_task():
            self._reader.cancel()
        self._reader = None
        if was_open:
            self._notify_status(False)

        if self._torn_down:
            return
        set_component_status(self._status_name, state="error", last_error=reason)
        if self._reconnect_handle is not None:
            return
        self._log.info("desk_ws.reconnect_scheduled", delay_secs=self._delay, reason=reason)
        self._reconnect_handle = resolve_scheduler(self._scheduler).call_later(self._delay, self._on_reconnect_timer)

    def _on_reconnect_timer(self) -> None:
        self._reconnect_handle = None
        if self._torn_down:
            return
        self.reconnect_attempts += 1
        self._tasks.spawn(self.connect(), name="desk-ws-reconnect")

    def _set_state(self, state: ConnectionState) -> None:
        was_open = self._state == "open"
        self._state = state
        set_component_status(
            self._status_name,
            state={"connecting": "connecting", "open": "ok", "closed": "error"}[state],
            detail={"url": self.url, "reconnect_attempts": self.reconnect_attempts},
        )
        if state == "open" and not was_open:
            self._notify_status(True)
        elif was_open and state != "open":
            self._notify_status(False)

    def _notify_status(self, connected: bool) -> None:
        for listener in list(self._status_listeners):
            try:
                listener(connected)
            except Exception:
                self._log.exception("desk_ws.status_listener_error")


async def _close_quietly(channel: DeskChannel) -> None:
    try:
        await channel.close()
    except Exception:
        pass


def _discard(items: list, item: Any) -> None:
    with contextlib.suppress(ValueError):
        items.remove(item)
