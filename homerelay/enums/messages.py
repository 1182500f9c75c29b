from enum import Enum


class DeviceMessageType(str, Enum):
    """Tags a device may send to the hub."""

    AUTH = "AUTH"
    STATE = "STATE"
    ACK = "ACK"
    IRRIGATION_COMPLETE = "IRRIGATION_COMPLETE"
    ROBOT_RESPONSE = "ROBOT_RESPONSE"
    SCHEDULES = "SCHEDULES"


class ControllerMessageType(str, Enum):
    """Tags a controller may send to the hub."""

    COMMAND = "COMMAND"
    IRRIGATION_COMMAND = "IRRIGATION_COMMAND"
    ROBOT_COMMAND = "ROBOT_COMMAND"


class HubMessageType(str, Enum):
    """Tags the hub sends to devices and controllers."""

    # hub -> device
    AUTH_OK = "AUTH_OK"
    AUTH_FAILED = "AUTH_FAILED"
    REQUEST_STATE = "REQUEST_STATE"
    COMMAND = "COMMAND"
    GET_SCHEDULES = "GET_SCHEDULES"
    IRRIGATION_COMMAND = "IRRIGATION_COMMAND"
    ROBOT_COMMAND = "ROBOT_COMMAND"

    # hub -> controller
    STATE_UPDATE = "STATE_UPDATE"
    IRRIGATION_UPDATE = "IRRIGATION_UPDATE"
    ROBOTS_UPDATE = "ROBOTS_UPDATE"
    DEVICE_STATUS = "DEVICE_STATUS"
    COMMAND_RESPONSE = "COMMAND_RESPONSE"
    ROBOT_RESPONSE = "ROBOT_RESPONSE"


class RobotCommand(str, Enum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    STOP = "stop"
    DOCK = "dock"
    CLEAN_ROOM = "clean_room"


class RobotEventKind(str, Enum):
    """Kinds of events published by the robot subsystem."""

    CONNECTIVITY = "connectivity"
    STATUS = "status"
