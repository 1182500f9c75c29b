"""
Schemas Module
==============

Pydantic models for wire messages and device state.
"""

from homerelay.schemas.messages import (
    AckMessage,
    AuthMessage,
    ControllerMessage,
    DeviceMessage,
    IrrigationCommandMessage,
    IrrigationCompleteMessage,
    RobotCommandMessage,
    RobotResponseMessage,
    SchedulesMessage,
    ShutterCommandMessage,
    StateMessage,
    hub_message,
    parse_controller_message,
    parse_device_message,
)
from homerelay.schemas.state import (
    IrrigationState,
    RobotStatus,
    ShutterChannel,
    ShuttersState,
    initial_state,
)

__all__ = [
    "AckMessage",
    "AuthMessage",
    "ControllerMessage",
    "DeviceMessage",
    "IrrigationCommandMessage",
    "IrrigationCompleteMessage",
    "IrrigationState",
    "RobotCommandMessage",
    "RobotResponseMessage",
    "RobotStatus",
    "SchedulesMessage",
    "ShutterChannel",
    "ShutterCommandMessage",
    "ShuttersState",
    "StateMessage",
    "hub_message",
    "initial_state",
    "parse_controller_message",
    "parse_device_message",
]
