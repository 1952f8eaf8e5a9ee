# backend/core/config.py
import os
from typing import List

from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """
    Setup environment variables.
        - CLIENT_URL the frontend origin allowed by CORS
        - AUTH_JWT_SECRET secret used to verify handshake tokens (empty = dev mode)
        - BROADCAST_INCLUDE_SENDER whether the sender receives its own message
        - RECONNECT_* client reconnection policy
    """

    def __init__(self) -> None:
        # Load environment variables from the .env file
        load_dotenv()

        self.HOST: str = os.getenv("HOST", "0.0.0.0")
        self.PORT: int = int(os.getenv("PORT", "8000"))

        self.CLIENT_URL: str = os.getenv("CLIENT_URL", "http://localhost:3000")
        self.CORS_ORIGINS: List[str] = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", self.CLIENT_URL).split(",")
            if origin.strip()
        ]

        self.AUTH_JWT_SECRET: str = os.getenv("AUTH_JWT_SECRET", "")
        self.AUTH_JWT_ALGORITHM: str = os.getenv("AUTH_JWT_ALGORITHM", "HS256")

        # Fan-out
        self.BROADCAST_INCLUDE_SENDER: bool = _env_bool("BROADCAST_INCLUDE_SENDER", True)
        self.MESSAGE_MAX_LENGTH: int = int(os.getenv("MESSAGE_MAX_LENGTH", "5000"))
        self.MESSAGE_MAX_ATTACHMENTS: int = int(os.getenv("MESSAGE_MAX_ATTACHMENTS", "10"))
        self.OUTBOUND_QUEUE_SIZE: int = int(os.getenv("OUTBOUND_QUEUE_SIZE", "256"))

        # Client session
        self.SOCKET_URL: str = os.getenv("SOCKET_URL", "ws://localhost:8000/ws")
        self.RECONNECT_ATTEMPTS: int = int(os.getenv("RECONNECT_ATTEMPTS", "10"))
        self.RECONNECT_DELAY: float = float(os.getenv("RECONNECT_DELAY", "1.0"))
        self.RECONNECT_DELAY_MAX: float = float(os.getenv("RECONNECT_DELAY_MAX", "5.0"))
        self.CONNECT_TIMEOUT: float = float(os.getenv("CONNECT_TIMEOUT", "20.0"))


settings = Settings()
