# backend/client/transport.py
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional, Protocol, Tuple
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from core.config import Settings, settings as default_settings
from core.exceptions import TransportFailure
from models.models import Identity, frame

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """
    What a ChatSession needs from the wire.

    Every method raises TransportFailure when the connection cannot be
    opened or has dropped.
    """

    async def connect(self, identity: Identity) -> None: ...

    async def send(self, event: str, data: Any) -> None: ...

    async def receive(self) -> Tuple[str, Any]: ...

    async def close(self) -> None: ...


class WebSocketTransport:
    """
    Transport over the server's ``/ws`` endpoint using the websockets client.

    The identity travels in the handshake query string: a signed ``token``
    when one is given, otherwise the development ``user_id``/``user_name``/
    ``role`` parameters.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        token: Optional[str] = None,
        connect_timeout: Optional[float] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or default_settings
        self.url = url or settings.SOCKET_URL
        self.token = token
        self.connect_timeout = connect_timeout or settings.CONNECT_TIMEOUT
        self._ws = None

    def handshake_url(self, identity: Identity) -> str:
        if self.token:
            params = {"token": self.token}
        else:
            params = {"user_id": identity.id, "user_name": identity.name, "role": identity.role}
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{urlencode(params)}"

    async def connect(self, identity: Identity) -> None:
        try:
            self._ws = await websockets.connect(
                self.handshake_url(identity),
                open_timeout=self.connect_timeout,
            )
        except (OSError, asyncio.TimeoutError, InvalidHandshake, InvalidURI) as e:
            raise TransportFailure(f"connect_error: {e}") from e
        logger.info("Connected to %s", self.url)

    async def send(self, event: str, data: Any) -> None:
        if self._ws is None:
            raise TransportFailure("Not connected")
        try:
            await self._ws.send(json.dumps(frame(event, data)))
        except ConnectionClosed as e:
            raise TransportFailure(f"disconnect: {e}") from e

    async def receive(self) -> Tuple[str, Any]:
        if self._ws is None:
            raise TransportFailure("Not connected")
        while True:
            try:
                raw = await self._ws.recv()
            except ConnectionClosed as e:
                raise TransportFailure(f"disconnect: {e}") from e
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Ignoring non-JSON frame from server")
                continue
            if isinstance(message, dict):
                return message.get("event"), message.get("data")

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()
