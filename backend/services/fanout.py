# backend/services/fanout.py

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from core.exceptions import InvalidMessage, UnknownConnection
from models.models import MESSAGE_TYPES, Attachment, ChatMessage, frame
from services.connection_registry import ConnectionRegistry
from services.room_manager import RoomManager

logger = logging.getLogger(__name__)

RECEIVE_MESSAGE = "receive-message"


@dataclass
class FanoutStats:
    published: int = 0
    rejected: int = 0
    delivered: int = 0
    failed_deliveries: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


# ============================================================================
# MESSAGE FAN-OUT ENGINE
# ============================================================================

class FanoutEngine:
    """
    Validates published messages and delivers them to every room member.

    Flow:
        1. Resolve the sender's identity from the registry
        2. Validate room id and body (content or attachments)
        3. Stamp the message with the server clock
        4. Snapshot the room's members
        5. Queue a ``receive-message`` frame on each member's connection

    Step 5 never awaits, so the snapshot and all deliveries of one publish
    happen without interleaving with other handlers. Members of a room
    therefore observe messages in publish order.

    Delivery is best-effort. A closed connection or a full outbound queue
    is counted in ``stats.failed_deliveries`` and skipped.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        room_manager: RoomManager,
        include_sender: bool = True,
        max_content_length: int = 5000,
        max_attachments: int = 10,
    ) -> None:
        self.registry = registry
        self.room_manager = room_manager
        self.include_sender = include_sender
        self.max_content_length = max_content_length
        self.max_attachments = max_attachments
        self.stats = FanoutStats()

    def publish(
        self,
        sender_id: str,
        room_id: Optional[str],
        content: Optional[str],
        type: str = "text",
        attachments: Optional[Iterable[Attachment]] = None,
        message_id: Optional[str] = None,
        client_timestamp: Optional[str] = None,
    ) -> ChatMessage:
        """
        Publish a message from a registered connection to a room.

        Args:
            sender_id: Connection id of the publisher
            room_id: Target room (course id)
            content: Message text; may be empty when attachments are given
            type: "text", "file" or "image"
            attachments: Attachment descriptors
            message_id: Client-generated id, echoed so clients can deduplicate
            client_timestamp: Client clock value, echoed for display only

        Returns:
            ChatMessage: The message as delivered

        Raises:
            UnknownConnection: sender is not registered
            InvalidMessage: missing room id or body, bad type, or limits exceeded
        """
        identity = self.registry.identity_of(sender_id)
        if identity is None:
            raise UnknownConnection(f"Connection {sender_id} is not registered")

        try:
            message = self._build(identity, room_id, content, type, attachments, message_id, client_timestamp)
        except InvalidMessage:
            self.stats.rejected += 1
            raise

        recipients = self.room_manager.members_of(message.room_id)
        if not self.include_sender:
            recipients = recipients - {sender_id}

        delivered = self._deliver(recipients, frame(RECEIVE_MESSAGE, message.to_payload()))
        self.stats.published += 1
        logger.info(
            "📨 %s → room %s: delivered to %d/%d members",
            identity.id, message.room_id, delivered, len(recipients),
        )
        return message

    def _build(
        self,
        identity,
        room_id: Optional[str],
        content: Optional[str],
        type: str,
        attachments: Optional[Iterable[Attachment]],
        message_id: Optional[str],
        client_timestamp: Optional[str],
    ) -> ChatMessage:
        room_id = (room_id or "").strip()
        content = content or ""
        attachments = list(attachments or [])

        if not room_id:
            raise InvalidMessage("Invalid message data: roomId is required")
        if not content.strip() and not attachments:
            raise InvalidMessage("Invalid message data: content or attachments required")
        if type not in MESSAGE_TYPES:
            raise InvalidMessage(f"Invalid message type: {type}")
        if len(content) > self.max_content_length:
            raise InvalidMessage(f"Message exceeds {self.max_content_length} characters")
        if len(attachments) > self.max_attachments:
            raise InvalidMessage(f"At most {self.max_attachments} attachments allowed")

        return ChatMessage(
            id=message_id or uuid.uuid4().hex,
            room_id=room_id,
            sender=identity.model_copy(),
            content=content,
            type=type,
            attachments=attachments,
            timestamp=datetime.now(timezone.utc),
            client_timestamp=client_timestamp,
        )

    def _deliver(self, recipients: Iterable[str], payload: dict) -> int:
        delivered = 0
        failed: List[str] = []
        for connection_id in recipients:
            connection = self.registry.get(connection_id)
            if connection is not None and connection.deliver(payload):
                delivered += 1
            else:
                failed.append(connection_id)

        self.stats.delivered += delivered
        if failed:
            self.stats.failed_deliveries += len(failed)
            logger.warning("Dropped delivery to %d connection(s): %s", len(failed), ", ".join(failed))
        return delivered
