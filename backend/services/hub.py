# backend/services/hub.py
from __future__ import annotations

from datetime import datetime, timezone

from core.config import Settings, settings as default_settings
from services.connection_registry import ConnectionRegistry
from services.fanout import FanoutEngine
from services.room_manager import RoomManager


class ChatHub:
    """
    The realtime chat state of one process: registry, rooms and fan-out.

    One hub is created per app and handed to the socket endpoint and the
    REST routes through ``app.state.hub``.
    """

    def __init__(
        self,
        room_manager: RoomManager,
        registry: ConnectionRegistry,
        fanout: FanoutEngine,
    ) -> None:
        self.room_manager = room_manager
        self.registry = registry
        self.fanout = fanout
        self.started_at = datetime.now(timezone.utc)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ChatHub":
        settings = settings or default_settings
        room_manager = RoomManager()
        registry = ConnectionRegistry(room_manager=room_manager, queue_size=settings.OUTBOUND_QUEUE_SIZE)
        fanout = FanoutEngine(
            registry=registry,
            room_manager=room_manager,
            include_sender=settings.BROADCAST_INCLUDE_SENDER,
            max_content_length=settings.MESSAGE_MAX_LENGTH,
            max_attachments=settings.MESSAGE_MAX_ATTACHMENTS,
        )
        return cls(room_manager=room_manager, registry=registry, fanout=fanout)

    def shutdown(self) -> None:
        self.registry.close_all()
