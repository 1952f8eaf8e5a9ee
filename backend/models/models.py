# backend/models/models.py
from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MessageType = Literal["text", "file", "image"]
MESSAGE_TYPES = ("text", "file", "image")

# Course pages send courseId; both keys name the room
ROOM_ID_ALIASES = AliasChoices("roomId", "courseId", "room_id")


class Identity(BaseModel):
    """Authenticated user attached to a connection."""

    id: str
    name: str
    role: str = "student"


class Attachment(BaseModel):
    name: Optional[str] = None
    url: Optional[str] = None
    type: Optional[str] = None


class ChatMessage(BaseModel):
    """
    A message as delivered in a ``receive-message`` event.

    Serialized with camelCase keys:
        {"id": "...", "roomId": "course-1", "sender": {...}, "content": "hi",
         "type": "text", "attachments": [], "timestamp": "...",
         "clientTimestamp": "..."}
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    room_id: str
    sender: Identity
    content: str = ""
    type: MessageType = "text"
    attachments: List[Attachment] = Field(default_factory=list)
    timestamp: datetime
    client_timestamp: Optional[str] = None

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class RoomRequest(BaseModel):
    """Payload of ``join-room`` / ``leave-room``."""

    room_id: str = Field(validation_alias=ROOM_ID_ALIASES)


class SendMessageRequest(BaseModel):
    """Payload of ``send-message``. Any ``sender`` field sent by the client is ignored."""

    room_id: Optional[str] = Field(default=None, validation_alias=ROOM_ID_ALIASES)
    content: Optional[str] = None
    type: str = "text"
    attachments: List[Attachment] = Field(default_factory=list)
    id: Optional[str] = Field(default=None, max_length=64)
    timestamp: Optional[str] = None


class ErrorPayload(BaseModel):
    """Payload of an ``error`` event, sent only to the offending connection."""

    message: str


def frame(event: str, data: Any) -> dict:
    """Wrap a payload in the socket envelope: {"event": ..., "data": ...}."""
    return {"event": event, "data": data}
