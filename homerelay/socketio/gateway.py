"""
Socket.IO gateway
=================

Binds Flask-SocketIO namespace events to :class:`ConnectionHub` calls.

The namespace selects role and device class at connect time:

- ``/esp32``      shutters device
- ``/irrigation`` irrigation device
- ``/robots``     robot-bridge device
- ``/app``        controller

Every message travels on the ``message`` event.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from flask_socketio import SocketIO

from homerelay.domain.exceptions import TransportError
from homerelay.enums.devices import ConnectionRole, DeviceClass
from homerelay.hub.connection import Connection
from homerelay.hub.hub import ConnectionHub

logger = logging.getLogger(__name__)

MESSAGE_EVENT = "message"

SOCKETIO_NAMESPACE_SHUTTERS = "/esp32"
SOCKETIO_NAMESPACE_IRRIGATION = "/irrigation"
SOCKETIO_NAMESPACE_ROBOTS = "/robots"
SOCKETIO_NAMESPACE_APP = "/app"

DEVICE_NAMESPACES: dict[str, DeviceClass] = {
    SOCKETIO_NAMESPACE_SHUTTERS: DeviceClass.SHUTTERS,
    SOCKETIO_NAMESPACE_IRRIGATION: DeviceClass.IRRIGATION,
    SOCKETIO_NAMESPACE_ROBOTS: DeviceClass.ROBOTS,
}

ALL_NAMESPACES = (*DEVICE_NAMESPACES, SOCKETIO_NAMESPACE_APP)


class SocketIOConnection(Connection):
    """A Connection backed by one Socket.IO sid in one namespace."""

    def __init__(
        self,
        sio: SocketIO,
        sid: str,
        namespace: str,
        role: ConnectionRole,
        device_class: DeviceClass | None = None,
    ) -> None:
        super().__init__(role, device_class)
        self._sio = sio
        self.sid = sid
        self.namespace = namespace
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    def send(self, message: dict[str, Any]) -> None:
        if not self._open:
            raise TransportError(f"{self.describe()} is closed")
        self._sio.emit(MESSAGE_EVENT, message, to=self.sid, namespace=self.namespace)

    def close(self) -> None:
        if not self._open:
            return
        self._open = False
        # Triggers this namespace's disconnect handler, which reports the close to the hub.
        self._sio.server.disconnect(self.sid, namespace=self.namespace)

    def mark_closed(self) -> None:
        self._open = False


class SocketIOGateway:
    """Tracks sid -> Connection per namespace and forwards events to the hub."""

    def __init__(self, sio: SocketIO, hub: ConnectionHub) -> None:
        self._sio = sio
        self._hub = hub
        self._lock = threading.Lock()
        self._connections: dict[tuple[str, str], SocketIOConnection] = {}

    def connection_for(self, namespace: str, sid: str) -> SocketIOConnection | None:
        with self._lock:
            return self._connections.get((namespace, sid))

    def on_connect(self, namespace: str, sid: str) -> bool:
        if namespace in DEVICE_NAMESPACES:
            connection = SocketIOConnection(
                self._sio, sid, namespace, ConnectionRole.DEVICE, DEVICE_NAMESPACES[namespace]
            )
        elif namespace == SOCKETIO_NAMESPACE_APP:
            connection = SocketIOConnection(self._sio, sid, namespace, ConnectionRole.CONTROLLER)
        else:
            logger.warning("Rejecting connection to unknown namespace %s", namespace)
            return False

        with self._lock:
            self._connections[(namespace, sid)] = connection
        self._hub.open(connection)
        return True

    def on_message(self, namespace: str, sid: str, data: Any) -> None:
        connection = self.connection_for(namespace, sid)
        if connection is None:
            logger.warning("Message from unknown sid %s on %s", sid, namespace)
            return
        self._hub.handle_message(connection, data)

    def on_disconnect(self, namespace: str, sid: str, reason: Any = None) -> None:
        with self._lock:
            connection = self._connections.pop((namespace, sid), None)
        if connection is None:
            return
        connection.mark_closed()
        logger.debug("%s transport closed (%s)", connection.describe(), reason)
        self._hub.handle_close(connection)
