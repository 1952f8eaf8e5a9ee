# backend/api/routes/rooms.py

from typing import List

from fastapi import APIRouter, Request
from pydantic import BaseModel

router = APIRouter()


class RoomInfo(BaseModel):
    room_id: str
    member_count: int


# ============================================================================
# ACTIVE ROOM ENDPOINTS
# ============================================================================

@router.get("/rooms", response_model=List[RoomInfo])
async def list_rooms(request: Request):
    """
    List rooms that currently have members.

    Rooms exist only while connections are joined to them, so a course
    with nobody in its chat is not listed.
    """
    info = request.app.state.hub.room_manager.rooms_info()
    return [RoomInfo(room_id=room_id, member_count=count) for room_id, count in sorted(info.items())]


@router.get("/rooms/{room_id}", response_model=RoomInfo)
async def get_room(room_id: str, request: Request):
    """
    Member count of one room. An unknown room reports zero members.
    """
    members = request.app.state.hub.room_manager.members_of(room_id)
    return RoomInfo(room_id=room_id, member_count=len(members))
