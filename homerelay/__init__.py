from __future__ import annotations

import atexit
import contextlib
import logging
import signal
import threading
from typing import Any, Callable

from flask import Flask, Response, request
from werkzeug.exceptions import HTTPException

from homerelay.blueprints.api import relay_api
from homerelay.blueprints.health import health_bp
from homerelay.config import install_exception_hooks, load_config, setup_logging
from homerelay.robots.drivers import RobotDriver
from homerelay.robots.models import RobotUnitConfig
from homerelay.socketio import register_handlers
from homerelay.socketio.gateway import SocketIOGateway
from homerelay.socketio.handlers import GATEWAY_EXTENSION_KEY

# Imported after the homerelay.socketio subpackage so the package attribute
# ``socketio`` names the SocketIO extension, not the subpackage.
from homerelay.extensions import init_extensions, socketio  # noqa: E402


def create_app(
    config_overrides: dict[str, Any] | None = None,
    *,
    bootstrap_runtime: bool = False,
    robot_driver_factory: Callable[[RobotUnitConfig], RobotDriver] | None = None,
) -> Flask:
    """Build the relay application.

    ``bootstrap_runtime`` starts robot sessions and polling and installs the
    process-level signal handlers; tests leave it off.
    """
    config = load_config()
    if config_overrides:
        config.apply_overrides(config_overrides)

    setup_logging(debug=config.DEBUG, log_file=config.log_file)
    install_exception_hooks()

    flask_app = Flask(__name__)
    flask_app.config.update(config.as_flask_config())
    flask_app.json.sort_keys = False

    # Handlers must exist before init_app() builds the Socket.IO server.
    register_handlers()
    init_extensions(flask_app, config.socketio_cors_origins)

    from homerelay.services.container import ServiceContainer

    container = ServiceContainer.build(config, driver_factory=robot_driver_factory)
    flask_app.config["CONTAINER"] = container

    flask_app.extensions[GATEWAY_EXTENSION_KEY] = SocketIOGateway(socketio, container.hub)

    # ── Graceful shutdown handlers ──────────────────────────────────
    _shutdown_lock = threading.Lock()
    _shutdown_done = False

    def _graceful_shutdown(reason: str = "unknown") -> None:
        nonlocal _shutdown_done
        with _shutdown_lock:
            if _shutdown_done:
                return
            _shutdown_done = True
        logging.info("Graceful shutdown initiated (%s)", reason)
        try:
            container.shutdown()
        except Exception as exc:
            logging.warning("Error during graceful shutdown: %s", exc)

    def _signal_handler(signum: int, _frame: object) -> None:
        sig_name = signal.Signals(signum).name
        logging.info("Received %s, shutting down", sig_name)
        _graceful_shutdown(sig_name)
        raise SystemExit(0)

    atexit.register(_graceful_shutdown, "atexit")
    flask_app.extensions["relay_shutdown"] = _graceful_shutdown

    if bootstrap_runtime:
        # SIGINT=Ctrl-C, SIGTERM=container/systemd stop
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(OSError, ValueError):
                signal.signal(sig, _signal_handler)
        container.start()

    cors_origins = config.socketio_cors_origins

    @flask_app.after_request
    def _cors_headers(response: Response) -> Response:
        if cors_origins:
            response.headers.setdefault("Access-Control-Allow-Origin", cors_origins)
            response.headers.setdefault("Access-Control-Allow-Headers", "Content-Type")
            response.headers.setdefault("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        return response

    # Global JSON error handler: domain exceptions carry their own
    # ``http_status``; anything else becomes a generic 500.
    @flask_app.errorhandler(Exception)
    def _handle_unhandled(exc):
        from homerelay.domain.exceptions import RelayError
        from homerelay.utils.http import error_response, safe_error

        if isinstance(exc, HTTPException):
            status = int(exc.code or 500)
            if status >= 500:
                return safe_error(exc, status, context="http-exception")
            return error_response(exc.description or "Request failed", status)

        if isinstance(exc, RelayError):
            status = exc.http_status
            if status >= 500 and status not in (502, 503):
                return safe_error(exc, status, context=type(exc).__name__)
            return error_response(str(exc) or "Request failed", status)

        return safe_error(exc, 500, context=f"unhandled {request.method} {request.path}")

    flask_app.register_blueprint(health_bp)
    flask_app.register_blueprint(relay_api)

    return flask_app


__all__ = ["create_app", "socketio"]
