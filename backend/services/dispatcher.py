# backend/services/dispatcher.py

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict

from pydantic import ValidationError

from core.exceptions import ChatError, InvalidMessage, UnknownConnection
from models.models import ErrorPayload, RoomRequest, SendMessageRequest, frame
from services.hub import ChatHub

logger = logging.getLogger(__name__)

JOIN_ROOM = "join-room"
LEAVE_ROOM = "leave-room"
SEND_MESSAGE = "send-message"
ROOM_JOINED = "room-joined"
ROOM_LEFT = "room-left"
ERROR = "error"

Handler = Callable[[str, Any], None]


def _room_payload(data: Any) -> Any:
    # The course app emits the bare course id for join/leave
    if isinstance(data, str):
        return {"roomId": data}
    return data


class SocketDispatcher:
    """
    Routes inbound socket frames to the hub.

    Protocol:
    =========
    Every frame is a JSON object {"event": "<name>", "data": {...}}.

    Client -> Server Events:
    ------------------------
    Join Room:
        {"event": "join-room", "data": {"roomId": "course-1"}}
        Response: {"event": "room-joined", "data": {"roomId": "course-1", "memberCount": 2}}

    Leave Room:
        {"event": "leave-room", "data": {"roomId": "course-1"}}
        Response: {"event": "room-left", "data": {"roomId": "course-1", "memberCount": 1}}

    Send Message:
        {"event": "send-message", "data": {"roomId": "course-1", "content": "hi",
                                           "type": "text", "attachments": [], "id": "..."}}
        Fan-out: {"event": "receive-message", "data": {...ChatMessage...}}

    "join-course" / "leave-course" and "courseId" are accepted as aliases.

    Error:
        {"event": "error", "data": {"message": "..."}}
        Sent only to the connection whose frame failed.

    Handlers are synchronous; a frame is fully applied before the next one
    is read.
    """

    def __init__(self, hub: ChatHub) -> None:
        self.hub = hub
        self.handlers: Dict[str, Handler] = {
            JOIN_ROOM: self.on_join,
            "join-course": self.on_join,
            LEAVE_ROOM: self.on_leave,
            "leave-course": self.on_leave,
            SEND_MESSAGE: self.on_send_message,
        }

    def handle_text(self, connection_id: str, raw: str) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            self._error(connection_id, "Invalid JSON")
            return

        if not isinstance(message, dict):
            self.reject_frame(connection_id)
            return

        self.handle(connection_id, message.get("event"), message.get("data"))

    def reject_frame(self, connection_id: str) -> None:
        """Answer a frame that is not a JSON text envelope (binary, empty, ...)."""
        self._error(connection_id, "Invalid frame")

    def handle(self, connection_id: str, event: Any, data: Any) -> None:
        handler = self.handlers.get(event) if isinstance(event, str) else None
        if handler is None:
            self._error(connection_id, f"Unknown event: {event}")
            return

        logger.debug("Socket input: event=%s connection=%s", event, connection_id)
        try:
            handler(connection_id, data)
        except UnknownConnection as e:
            logger.info("Dropping %s from unknown connection: %s", event, e)
        except ChatError as e:
            self._error(connection_id, str(e))
        except Exception:
            logger.exception("Unhandled error processing %s from %s", event, connection_id)
            self._error(connection_id, f"Failed to process {event}")

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_join(self, connection_id: str, data: Any) -> None:
        room_id = self._room_id(data)
        self._require_connection(connection_id)
        member_count = self.hub.room_manager.join(room_id, connection_id)
        self._reply(connection_id, ROOM_JOINED, {"roomId": room_id, "memberCount": member_count})

    def on_leave(self, connection_id: str, data: Any) -> None:
        room_id = self._room_id(data)
        self._require_connection(connection_id)
        member_count = self.hub.room_manager.leave(room_id, connection_id)
        self._reply(connection_id, ROOM_LEFT, {"roomId": room_id, "memberCount": member_count})

    def on_send_message(self, connection_id: str, data: Any) -> None:
        try:
            request = SendMessageRequest.model_validate(data if isinstance(data, dict) else {})
        except ValidationError as e:
            self.hub.fanout.stats.rejected += 1
            raise InvalidMessage("Invalid message data") from e

        self.hub.fanout.publish(
            connection_id,
            request.room_id,
            request.content,
            type=request.type,
            attachments=request.attachments,
            message_id=request.id,
            client_timestamp=request.timestamp,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _room_id(self, data: Any) -> str:
        try:
            request = RoomRequest.model_validate(_room_payload(data))
        except ValidationError as e:
            raise InvalidMessage("roomId is required") from e
        room_id = request.room_id.strip()
        if not room_id:
            raise InvalidMessage("roomId is required")
        return room_id

    def _require_connection(self, connection_id: str) -> None:
        if connection_id not in self.hub.registry:
            raise UnknownConnection(f"Connection {connection_id} is not registered")

    def _reply(self, connection_id: str, event: str, data: dict) -> None:
        connection = self.hub.registry.get(connection_id)
        if connection is not None:
            connection.deliver(frame(event, data))

    def _error(self, connection_id: str, message: str) -> None:
        logger.info("Error for %s: %s", connection_id, message)
        self._reply(connection_id, ERROR, ErrorPayload(message=message).model_dump())
