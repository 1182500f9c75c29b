"""
Socket.IO Event Handlers
========================

Relay namespaces:
- /esp32 - shutters device
- /irrigation - irrigation device
- /robots - robot-bridge device
- /app - controllers

Usage:
    Import this module before socketio.init_app() so every server created
    by init_app() gets the handlers.

    from homerelay.socketio import register_handlers
    register_handlers()
"""

import logging

logger = logging.getLogger(__name__)


def register_handlers():
    """
    Register all Socket.IO event handlers.

    Handlers registered while ``socketio.server`` is still unset are kept on
    the extension and bound again on each ``init_app()``.
    """
    # Import handlers to trigger socketio.on_event() registration
    from . import handlers  # noqa: F401

    logger.info("✅ Socket.IO handlers registered (esp32, irrigation, robots, app)")
