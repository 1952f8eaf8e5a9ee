# backend/client/buffer.py
from __future__ import annotations

from typing import Dict, List, Set

from models.models import ChatMessage


class MessageBuffer:
    """
    Per-room message history held by one client session.

    Append-only while the session lives and never persisted. A message
    whose id is already buffered for the room is ignored, which is how the
    optimistic copy of a sent message absorbs the server's echo.
    """

    def __init__(self) -> None:
        self._messages: Dict[str, List[ChatMessage]] = {}
        self._ids: Dict[str, Set[str]] = {}

    def append(self, message: ChatMessage) -> bool:
        """Append a message to its room. Returns False for a duplicate id."""
        seen = self._ids.setdefault(message.room_id, set())
        if message.id in seen:
            return False
        seen.add(message.id)
        self._messages.setdefault(message.room_id, []).append(message)
        return True

    def get(self, room_id: str) -> List[ChatMessage]:
        return list(self._messages.get(room_id, ()))

    def clear(self, room_id: str) -> None:
        self._messages.pop(room_id, None)
        self._ids.pop(room_id, None)
