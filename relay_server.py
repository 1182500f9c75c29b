"""Server entry point for the HomeRelay hub.

Used both in development (``python relay_server.py``) and through the
``homerelay-server`` console script.
"""
from __future__ import annotations

import logging

from flask import Flask

from homerelay import create_app, socketio


def build_app() -> Flask:
    """Create the app with robot sessions, polling and signal handlers running."""
    return create_app(bootstrap_runtime=True)


def main() -> int:
    app = build_app()
    config = app.config["CONTAINER"].config

    logging.info("🚀 Relay server starting on %s:%s", config.host, config.port)
    logging.info("SocketIO async_mode: %s", socketio.async_mode)
    logging.info("Device namespaces: /esp32 (shutters), /irrigation, /robots; controllers: /app")

    try:
        socketio.run(
            app,
            host=config.host,
            port=config.port,
            debug=config.DEBUG,
            use_reloader=False,
            allow_unsafe_werkzeug=True,
        )
        logging.info("Server stopped.")
        return 0
    except KeyboardInterrupt:
        logging.info("Server stopped by user.")
        return 0
    except Exception as exc:  # pragma: no cover - top-level runtime errors
        logging.exception("ERROR: Failed to start server: %s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
