# backend/services/connection_registry.py

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional

from core.exceptions import DuplicateConnection
from models.models import Identity
from services.room_manager import RoomManager

logger = logging.getLogger(__name__)

# ============================================================================
# CONNECTION
# ============================================================================

class Connection:
    """
    One live client socket and the identity it authenticated as.

    Outbound frames are never written to the socket directly by the
    fan-out path. They are queued on ``outbox`` and written by ``pump()``,
    which runs as a per-connection writer task. Queuing never suspends, so
    a broadcast reaches every member's queue in one step of the event loop.
    """

    def __init__(
        self,
        connection_id: str,
        identity: Identity,
        transport: Any,
        queue_size: int = 256,
    ) -> None:
        self.id = connection_id
        self.identity = identity
        self.transport = transport
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.closed = False

    def deliver(self, payload: dict) -> bool:
        """
        Queue a frame for this connection.

        Returns False when the connection is closing or its queue is full;
        the frame is dropped in that case.
        """
        if self.closed:
            return False
        try:
            self.outbox.put_nowait(payload)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # Sentinel stops pump(); a full queue means the owner cancels the writer instead
        if not self.outbox.full():
            self.outbox.put_nowait(None)

    async def pump(self) -> None:
        """Write queued frames to the socket until closed or a send fails."""
        while True:
            payload = await self.outbox.get()
            if payload is None:
                return
            try:
                await self.transport.send_json(payload)
            except Exception as e:
                logger.warning("Send error on connection %s: %s", self.id, e)
                self.closed = True
                return

    def __repr__(self) -> str:
        return f"Connection(id={self.id!r}, user={self.identity.id!r})"


# ============================================================================
# CONNECTION REGISTRY
# ============================================================================

class ConnectionRegistry:
    """
    Tracks every live connection by id.

    Unregistering a connection cascades synchronously into the RoomManager,
    so once ``unregister`` returns no room lists the connection and no
    later fan-out can target it.

    Usage:
        registry = ConnectionRegistry(room_manager=RoomManager())
        conn = registry.register(websocket, Identity(id="u1", name="Ada"))
        registry.unregister(conn.id)
    """

    def __init__(self, room_manager: RoomManager, queue_size: int = 256) -> None:
        self._connections: Dict[str, Connection] = {}
        self.room_manager = room_manager
        self.queue_size = queue_size

    def register(
        self,
        transport: Any,
        identity: Identity,
        connection_id: Optional[str] = None,
    ) -> Connection:
        connection_id = connection_id or uuid.uuid4().hex
        if connection_id in self._connections:
            raise DuplicateConnection(f"Connection {connection_id} is already registered")

        connection = Connection(connection_id, identity, transport, self.queue_size)
        self._connections[connection_id] = connection
        logger.info(
            "✓ User %s connected as %s. Total: %d",
            identity.id, connection_id, len(self._connections),
        )
        return connection

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def identity_of(self, connection_id: str) -> Optional[Identity]:
        connection = self._connections.get(connection_id)
        return connection.identity if connection else None

    def unregister(self, connection_id: str) -> None:
        """Remove a connection and its room memberships. Safe to call twice."""
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return

        rooms = self.room_manager.leave_all(connection_id)
        connection.close()
        logger.info(
            "✗ User %s disconnected (%s), left %d rooms. Total: %d",
            connection.identity.id, connection_id, len(rooms), len(self._connections),
        )

    def close_all(self) -> None:
        for connection_id in list(self._connections):
            self.unregister(connection_id)

    def connections(self) -> List[Connection]:
        return list(self._connections.values())

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)
