# backend/services/room_manager.py

from __future__ import annotations

from typing import Dict, FrozenSet, List, Set
import logging

logger = logging.getLogger(__name__)

# ============================================================================
# ROOM MEMBERSHIP MANAGER
# ============================================================================

class RoomManager:
    """
    Owns room membership: which connections are subscribed to which course rooms.

    A room exists only while it has members. It is created on the first
    join and discarded when the last member leaves, since a room carries no
    state besides its member set.

    Data Structures:
        rooms: Maps room_id -> Set of connection ids in that room
               Example: {"course-1": {"c1", "c2"}}

        memberships: Maps connection id -> Set of room_ids it joined
                     Example: {"c1": {"course-1", "course-2"}}

    Every mutation goes through join/leave/leave_all. Other components read
    through members_of/rooms_of, which return snapshots.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Set[str]] = {}
        self._memberships: Dict[str, Set[str]] = {}

    def join(self, room_id: str, connection_id: str) -> int:
        """
        Add a connection to a room, creating the room if absent.

        Joining twice is a no-op. Returns the member count after the join.
        """
        members = self._rooms.setdefault(room_id, set())
        if connection_id not in members:
            members.add(connection_id)
            self._memberships.setdefault(connection_id, set()).add(room_id)
            logger.info("→ %s joined room %s (%d members)", connection_id, room_id, len(members))
        return len(members)

    def leave(self, room_id: str, connection_id: str) -> int:
        """
        Remove a connection from a room. Leaving a room the connection is
        not in is a no-op. Returns the member count after the leave.
        """
        members = self._rooms.get(room_id)
        if not members or connection_id not in members:
            return len(members) if members else 0

        members.discard(connection_id)
        joined = self._memberships.get(connection_id)
        if joined is not None:
            joined.discard(room_id)
            if not joined:
                del self._memberships[connection_id]

        remaining = len(members)
        if not members:
            del self._rooms[room_id]
        logger.info("← %s left room %s (%d members)", connection_id, room_id, remaining)
        return remaining

    def leave_all(self, connection_id: str) -> List[str]:
        """Remove a connection from every room it joined. Returns those room ids."""
        joined = sorted(self._memberships.get(connection_id, ()))
        for room_id in joined:
            self.leave(room_id, connection_id)
        return joined

    def members_of(self, room_id: str) -> FrozenSet[str]:
        """Current members of a room; empty for an unknown room."""
        return frozenset(self._rooms.get(room_id, ()))

    def rooms_of(self, connection_id: str) -> FrozenSet[str]:
        return frozenset(self._memberships.get(connection_id, ()))

    def rooms_info(self) -> Dict[str, int]:
        """
        Active rooms and their member counts.

        Used by the /rooms, /health and /metrics endpoints.
        """
        return {room_id: len(members) for room_id, members in self._rooms.items()}

    def __len__(self) -> int:
        return len(self._rooms)
