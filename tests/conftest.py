"""Shared fakes for the TV websocket channel."""

import asyncio
import json
from types import SimpleNamespace
from typing import Any

import pytest
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from devices.connection import ConnectionManager
from devices.storage import TokenStore


def connect_event(token: str | None = None) -> str:
    data: dict[str, Any] = {"id": "abc", "clients": []}
    if token:
        data["token"] = token
    return json.dumps({"event": "ms.channel.connect", "data": data})


class FakeChannel:
    """Stands in for a websockets ClientConnection."""

    def __init__(self, *incoming: Any) -> None:
        self.state = State.OPEN
        # Mirrors ClientConnection.protocol, where frame parse errors are kept
        self.protocol = SimpleNamespace(parser_exc=None)
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.fail_send: BaseException | None = None
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()
        for item in incoming:
            self.feed(item)

    def feed(self, item: Any) -> None:
        self._incoming.put_nowait(item)

    async def recv(self) -> Any:
        item = await self._incoming.get()
        if isinstance(item, BaseException):
            if isinstance(item, ConnectionClosed):
                self.state = State.CLOSED
            raise item
        return item

    def __aiter__(self) -> "FakeChannel":
        return self

    async def __anext__(self) -> Any:
        return await self.recv()

    async def send(self, data: str) -> None:
        if self.fail_send is not None:
            raise self.fail_send
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        self.closed = True
        self.state = State.CLOSED


class FakeConnector:
    """Records handshake URLs and hands out prepared channels or errors."""

    def __init__(self, *outcomes: Any) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[tuple[str, dict[str, Any]]] = []

    @property
    def urls(self) -> list[str]:
        return [url for url, _ in self.calls]

    async def __call__(self, url: str, **kwargs: Any) -> Any:
        self.calls.append((url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def store(tmp_path):
    return TokenStore(tmp_path / ".tokens" / "tv-token.json")


def make_manager(store: TokenStore, *outcomes: Any, timeout: float = 1.0):
    connector = FakeConnector(*outcomes)
    manager = ConnectionManager(
        store, app_name="TestRemote", handshake_timeout=timeout, connector=connector
    )
    return manager, connector


async def connected_manager(store: TokenStore, ip: str = "192.168.1.50"):
    """A manager with a live fake channel to ``ip``."""
    channel = FakeChannel(connect_event("tok-1"))
    manager, _ = make_manager(store, channel)
    await manager.connect(ip, "aa:bb:cc:dd:ee:ff", "Living Room TV")
    return manager, channel
