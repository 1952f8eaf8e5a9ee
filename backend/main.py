# backend/main.py

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import Settings, settings as default_settings
from core.logging import setup_logging, get_logger
from api.routes import root, health, metrics, rooms
from api import websocket as websocket_module
from services.dispatcher import SocketDispatcher
from services.hub import ChatHub

# Configure logging first
setup_logging()
logger = get_logger(__name__)


def create_app(settings: Settings | None = None, hub: ChatHub | None = None) -> FastAPI:
    settings = settings or default_settings
    hub = hub or ChatHub.from_settings(settings)

    app = FastAPI(title="Course Chat - Realtime Rooms")
    app.state.settings = settings
    app.state.hub = hub
    app.state.dispatcher = SocketDispatcher(hub)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # REST routes
    app.include_router(root.router)
    app.include_router(health.router)
    app.include_router(metrics.router)
    app.include_router(rooms.router)

    # WebSocket routes
    app.include_router(websocket_module.router)

    @app.on_event("startup")
    async def startup_event():
        logger.info(
            "🚀 Application starting - broadcast_include_sender=%s",
            settings.BROADCAST_INCLUDE_SENDER,
        )

    @app.on_event("shutdown")
    async def on_shutdown():
        logger.info("Shutting down, closing %d connections", len(hub.registry))
        hub.shutdown()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=default_settings.HOST, port=default_settings.PORT)
