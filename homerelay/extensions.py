"""Flask Extension Instances and Initialisation."""

import logging
import os

from flask import Flask
from flask_compress import Compress
from flask_socketio import SocketIO

# Flask-Compress instance, gzip/brotli for JSON responses
compress = Compress()


def _socketio_transports() -> list[str]:
    """Return allowed Engine.IO transports.

    Devices keep a long-lived session, so websocket is allowed by default.
    Override with `RELAY_SOCKETIO_TRANSPORTS`, e.g. `polling`.
    """
    raw = os.getenv("RELAY_SOCKETIO_TRANSPORTS")
    if raw:
        transports = [t.strip() for t in raw.split(",") if t.strip()]
        if transports:
            return transports

    return ["polling", "websocket"]


# Threading mode: hub state is guarded by locks, not by an event loop
socketio = SocketIO(
    async_mode="threading",
    cors_allowed_origins=[],
    logger=False,
    engineio_logger=False,
    # A dead device is only detected by transport disconnect
    ping_timeout=20,
    ping_interval=25,
    transports=_socketio_transports(),
)


def init_extensions(app: Flask, cors_origins: str) -> None:
    """Initialise Flask extension objects."""
    origins = cors_origins if isinstance(cors_origins, str) else "*"

    app.config.setdefault("COMPRESS_MIMETYPES", ["application/json"])
    app.config.setdefault("COMPRESS_MIN_SIZE", 256)  # Don't compress tiny responses
    compress.init_app(app)

    try:
        socketio.init_app(
            app, cors_allowed_origins=origins, logger=logging.getLogger("socketio"), engineio_logger=False
        )
        logging.info(f"✅ Socket.IO initialized with CORS origins: {origins}")
    except Exception as e:
        logging.error(f"Failed to initialize Socket.IO: {e}", exc_info=True)
        raise
