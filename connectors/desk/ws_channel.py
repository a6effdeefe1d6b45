from __future__ import annotations

import abc
from typing import Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed

from utils.logging import get_logger


class ChannelClosed(ConnectionError):
    """The duplex channel is gone (peer close, network drop or local close)."""


class DeskChannel(abc.ABC):
    """One open duplex message channel to the desk backend."""

    @abc.abstractmethod
    async def send(self, text: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def recv(self) -> str | bytes:
        """
        Next inbound frame. Raises `ChannelClosed` once the channel is gone.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def close(self) -> None:
        raise NotImplementedError


ChannelOpener = Callable[[str], Awaitable[DeskChannel]]


class WebsocketChannel(DeskChannel):
    def __init__(self, ws, url: str):
        self._ws = ws
        self.url = url
        self._log = get_logger(__name__)

    @classmethod
    async def open(cls, url: str) -> "WebsocketChannel":
        # No client-side open timeout: a failed handshake surfaces as the transport's own error.
        # Keepalive pings make a silently dead TCP peer show up as a close within ~40s.
        ws = await websockets.connect(
            url,
            open_timeout=None,
            ping_interval=20,
            ping_timeout=20,
            close_timeout=5,
            max_size=None,
        )
        return cls(ws, url)

    async def send(self, text: str) -> None:
        try:
            await self._ws.send(text)
        except ConnectionClosed as e:
            raise ChannelClosed(f"send on closed channel: {e}") from e

    async def recv(self) -> str | bytes:
        try:
            return await self._ws.recv()
        except ConnectionClosed as e:
            raise ChannelClosed(str(e) or "closed") from e

    async def close(self) -> None:
        try:
            await self._ws.close()
        except Exception:
            self._log.debug("ws_channel.close_error", url=self.url)


async def open_websocket_channel(url: str) -> DeskChannel:
    return await WebsocketChannel.open(url)
