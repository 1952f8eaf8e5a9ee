# backend/api/routes/metrics.py
from datetime import datetime, timezone

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/metrics")
async def get_metrics(request: Request):
    """
    Fan-out metrics endpoint.

    Example Response:
        {
            "uptime_hours": 1.5,
            "messages_published": 1200,
            "messages_rejected": 3,
            "deliveries": 5400,
            "failed_deliveries": 2,
            "messages_per_second": 0.22,
            "concurrent_connections": 40,
            "active_rooms": 6
        }

    Failed deliveries are frames dropped because the target connection was
    closing or its outbound queue was full. They are never retried.
    """
    hub = request.app.state.hub
    stats = hub.fanout.stats
    uptime_seconds = (datetime.now(timezone.utc) - hub.started_at).total_seconds()

    if uptime_seconds > 0:
        messages_per_second = stats.published / uptime_seconds
    else:
        messages_per_second = 0

    return {
        "uptime_hours": round(uptime_seconds / 3600, 2) if uptime_seconds > 0 else 0,
        "messages_published": stats.published,
        "messages_rejected": stats.rejected,
        "deliveries": stats.delivered,
        "failed_deliveries": stats.failed_deliveries,
        "messages_per_second": round(messages_per_second, 2),
        "concurrent_connections": len(hub.registry),
        "active_rooms": len(hub.room_manager),
    }
