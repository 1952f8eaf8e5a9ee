from __future__ import annotations

import os
from typing import Any, Callable, List

import pytest

os.environ.setdefault("LOG_LEVEL", "WARNING")

from core.config import Settings  # noqa: E402
from fakes import FakeSocket  # noqa: E402
from models.models import Identity  # noqa: E402
from services.connection_registry import Connection  # noqa: E402
from services.dispatcher import SocketDispatcher  # noqa: E402
from services.hub import ChatHub  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    s = Settings()
    s.AUTH_JWT_SECRET = ""
    s.BROADCAST_INCLUDE_SENDER = True
    s.MESSAGE_MAX_LENGTH = 5000
    s.MESSAGE_MAX_ATTACHMENTS = 10
    s.OUTBOUND_QUEUE_SIZE = 256
    return s


@pytest.fixture
def hub(settings: Settings) -> ChatHub:
    return ChatHub.from_settings(settings)


@pytest.fixture
def dispatcher(hub: ChatHub) -> SocketDispatcher:
    return SocketDispatcher(hub)


@pytest.fixture
def connect(hub: ChatHub) -> Callable[..., Connection]:
    """Register a connection for a user id backed by a FakeSocket."""

    def _connect(user_id: str, name: str | None = None, role: str = "student", **kwargs: Any) -> Connection:
        identity = Identity(id=user_id, name=name or user_id.title(), role=role)
        return hub.registry.register(FakeSocket(), identity, **kwargs)

    return _connect


@pytest.fixture
def drain() -> Callable[[Connection], List[dict]]:
    """Pop every queued frame off a connection's outbox."""

    def _drain(connection: Connection) -> List[dict]:
        frames = []
        while not connection.outbox.empty():
            item = connection.outbox.get_nowait()
            if item is not None:
                frames.append(item)
        return frames

    return _drain
