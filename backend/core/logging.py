# backend/core/logging.py
"""
Logging for the chat hub and the client session.

Connection lifecycle (register, join, leave, unregister), fan-out results
and reconnect attempts are logged under the module's own logger name, so
``LOG_LEVEL=DEBUG`` shows per-frame dispatch while INFO keeps to lifecycle
events.
"""

import logging
import os
import sys


DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging() -> None:
    """
    Install one stdout handler on the root logger at ``LOG_LEVEL`` (INFO).

    When Uvicorn has already configured handlers only the level is applied.
    The websockets client library and per-request access lines are held at
    WARNING so chat lifecycle lines stay readable.
    """
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, log_level_name, logging.INFO)

    root_logger = logging.getLogger()
    if root_logger.handlers:
        root_logger.setLevel(level)
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))

    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    # Handshake and keepalive chatter from the client transport
    for name in ("websockets", "websockets.client"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    # One line per HTTP poll of /health or /metrics is noise
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> logging.Logger:
    """Logger for a hub module, e.g. ``get_logger(__name__)`` in services."""
    return logging.getLogger(name)
