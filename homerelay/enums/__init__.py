"""
Enums Module
============

Enumeration types shared by the hub, the Socket.IO gateway and the HTTP API.
"""

from homerelay.enums.devices import ConnectionRole, ConnectionState, DeviceClass
from homerelay.enums.messages import (
    ControllerMessageType,
    DeviceMessageType,
    HubMessageType,
    RobotCommand,
    RobotEventKind,
)

__all__ = [
    "ConnectionRole",
    "ConnectionState",
    "ControllerMessageType",
    "DeviceClass",
    "DeviceMessageType",
    "HubMessageType",
    "RobotCommand",
    "RobotEventKind",
]
