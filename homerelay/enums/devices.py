from enum import Enum


class DeviceClass(str, Enum):
    """Physical subsystem a device connection or state blob belongs to."""

    SHUTTERS = "shutters"
    IRRIGATION = "irrigation"
    ROBOTS = "robots"


class ConnectionRole(str, Enum):
    """Role fixed by the namespace a connection was opened on."""

    DEVICE = "device"
    CONTROLLER = "controller"


class ConnectionState(str, Enum):
    """Lifecycle of a single connection.

    connecting -> device_unauthenticated -> device_registered -> closed
    connecting -> controller_active -> closed
    """

    CONNECTING = "connecting"
    DEVICE_UNAUTHENTICATED = "device_unauthenticated"
    DEVICE_REGISTERED = "device_registered"
    CONTROLLER_ACTIVE = "controller_active"
    CLOSED = "closed"
