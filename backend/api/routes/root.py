# backend/api/routes/root.py

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the realtime chat service and its socket events.
    """
    return {
        "message": "Course Chat - Realtime Rooms",
        "version": "1.0",
        "architecture": "single process, in-memory rooms, per-connection outbound queues",
        "events": {
            "client": ["join-room", "leave-room", "send-message"],
            "server": ["receive-message", "room-joined", "room-left", "error"],
        },
        "endpoints": {
            "websocket": "/ws",
            "rooms": "/rooms",
            "health": "/health",
            "metrics": "/metrics",
        },
    }
