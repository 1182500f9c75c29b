"""Socket.IO relay namespace handlers.

Namespaces: /esp32, /irrigation, /robots (devices) and /app (controllers).
Events: connect, message, disconnect.
"""

import logging

from flask import current_app, request

from homerelay.extensions import socketio
from homerelay.socketio.gateway import ALL_NAMESPACES, MESSAGE_EVENT, SocketIOGateway

logger = logging.getLogger(__name__)

GATEWAY_EXTENSION_KEY = "relay_gateway"


def _gateway() -> SocketIOGateway:
    """Get the gateway registered by create_app."""
    return current_app.extensions[GATEWAY_EXTENSION_KEY]


def handle_connect(auth=None):
    try:
        return _gateway().on_connect(request.namespace, request.sid)
    except Exception as e:
        logger.error("Error in connect handler (%s): %s", request.namespace, e, exc_info=True)
        return False  # Reject connection on error


def handle_message(data=None):
    try:
        _gateway().on_message(request.namespace, request.sid, data)
    except Exception as e:
        logger.error("Error handling message on %s: %s", request.namespace, e, exc_info=True)


def handle_disconnect(reason=None):
    try:
        _gateway().on_disconnect(request.namespace, request.sid, reason)
    except Exception as e:
        logger.error("Error in disconnect handler (%s): %s", request.namespace, e, exc_info=True)


for _namespace in ALL_NAMESPACES:
    socketio.on_event("connect", handle_connect, namespace=_namespace)
    socketio.on_event(MESSAGE_EVENT, handle_message, namespace=_namespace)
    socketio.on_event("disconnect", handle_disconnect, namespace=_namespace)
