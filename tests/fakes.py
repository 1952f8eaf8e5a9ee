"""In-memory stand-ins for sockets and client transports."""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional, Tuple, Union

from core.exceptions import TransportFailure
from models.models import Identity
from services.connection_registry import Connection
from services.dispatcher import SocketDispatcher
from services.hub import ChatHub


class FakeSocket:
    """Stands in for a FastAPI WebSocket on the server side."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: List[dict] = []
        self.fail = fail

    async def send_json(self, payload: dict) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(payload)


async def eventually(predicate, timeout: float = 2.0) -> None:
    """Poll until predicate() is true, yielding to the event loop in between."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class FakeTransport:
    """
    Scriptable client transport.

    ``connect_results`` is consumed one entry per connect: True succeeds,
    False raises TransportFailure and an exception instance is raised as
    is. When exhausted, connects succeed. Inbound frames are pushed with
    ``push``; ``drop`` makes the pending receive fail as if the socket
    died and ``fail`` makes it raise the given error. A ``connect_gate``
    holds every connect until it is set.
    """

    def __init__(
        self,
        connect_results: Optional[List[Union[bool, Exception]]] = None,
        connect_gate: Optional[asyncio.Event] = None,
    ) -> None:
        self.connect_results = list(connect_results or [])
        self.connect_gate = connect_gate
        self.connects = 0
        self.closes = 0
        self.sent: List[Tuple[str, Any]] = []
        self.connected = asyncio.Event()
        self._inbound: asyncio.Queue = asyncio.Queue()

    async def connect(self, identity: Identity) -> None:
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        self.connects += 1
        ok = self.connect_results.pop(0) if self.connect_results else True
        if isinstance(ok, Exception):
            raise ok
        if not ok:
            raise TransportFailure("connect_error: refused")
        self._inbound = asyncio.Queue()
        self.connected.set()

    async def send(self, event: str, data: Any) -> None:
        self.sent.append((event, data))

    async def receive(self) -> Tuple[str, Any]:
        item = await self._inbound.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closes += 1
        self.connected.clear()

    def push(self, event: str, data: Any) -> None:
        self._inbound.put_nowait((event, data))

    def drop(self) -> None:
        self.connected.clear()
        self._inbound.put_nowait(TransportFailure("disconnect: transport close"))

    def fail(self, error: Exception) -> None:
        self._inbound.put_nowait(error)


class LocalTransport:
    """Client transport wired straight into a server-side ChatHub."""

    def __init__(self, hub: ChatHub, dispatcher: SocketDispatcher) -> None:
        self.hub = hub
        self.dispatcher = dispatcher
        self.connection: Optional[Connection] = None

    async def connect(self, identity: Identity) -> None:
        self.connection = self.hub.registry.register(FakeSocket(), identity)

    async def send(self, event: str, data: Any) -> None:
        if self.connection is None or self.connection.closed:
            raise TransportFailure("Not connected")
        self.dispatcher.handle(self.connection.id, event, data)

    async def receive(self) -> Tuple[str, Any]:
        if self.connection is None:
            raise TransportFailure("Not connected")
        payload = await self.connection.outbox.get()
        if payload is None:
            raise TransportFailure("disconnect: server closed connection")
        return payload["event"], payload["data"]

    async def close(self) -> None:
        if self.connection is not None:
            self.hub.registry.unregister(self.connection.id)
