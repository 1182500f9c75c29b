"""
Connection abstraction
======================

A :class:`Connection` is one live, message-oriented channel to a remote peer.
The hub only ever talks to this interface; the Socket.IO gateway supplies the
concrete transport (see ``homerelay/socketio/gateway.py``).

Identity is an opaque ``uuid4`` hex string handed out at creation and compared
by value. It is deliberately unrelated to any transport handle (Socket.IO sid)
so that a recycled sid can never be mistaken for the registered owner.
"""

from __future__ import annotations

import abc
import uuid
from typing import Any

from homerelay.enums.devices import ConnectionRole, ConnectionState, DeviceClass


def new_connection_id() -> str:
    return uuid.uuid4().hex


class Connection(abc.ABC):
    """Transport-independent view of a connected peer."""

    def __init__(self, role: ConnectionRole, device_class: DeviceClass | None = None) -> None:
        if role == ConnectionRole.DEVICE and device_class is None:
            raise ValueError("device connections require a device class")
        self.id = new_connection_id()
        self.role = role
        self.device_class = device_class if role == ConnectionRole.DEVICE else None
        self.authenticated = False
        self.state = ConnectionState.CONNECTING

    @property
    def is_device(self) -> bool:
        return self.role == ConnectionRole.DEVICE

    @property
    def is_controller(self) -> bool:
        return self.role == ConnectionRole.CONTROLLER

    @property
    @abc.abstractmethod
    def is_open(self) -> bool:
        """True while the underlying transport can still deliver messages."""

    @abc.abstractmethod
    def send(self, message: dict[str, Any]) -> None:
        """Deliver one message. Raises on transport failure."""

    @abc.abstractmethod
    def close(self) -> None:
        """Force the transport closed. Must be idempotent."""

    def describe(self) -> str:
        if self.is_device and self.device_class is not None:
            return f"{self.device_class.value}-device:{self.id[:8]}"
        return f"controller:{self.id[:8]}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Connection):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.describe()} state={self.state.value}>"
