# backend/api/routes/health.py

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    """
    Health check endpoint.

    Returns current system status with connection and active room counts.
    Used by container health checks and monitoring.
    """
    hub = request.app.state.hub
    return {
        "status": "healthy",
        "connections": len(hub.registry),
        "active_rooms": len(hub.room_manager),
    }
