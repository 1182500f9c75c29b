from .drivers import RobotDriver, RoombaDriver, create_driver
from .models import MOP, VACUUM, RobotUnitConfig
from .subsystem import RobotEvent, RobotSubsystem

__all__ = [
    "MOP",
    "VACUUM",
    "RobotDriver",
    "RobotEvent",
    "RobotSubsystem",
    "RobotUnitConfig",
    "RoombaDriver",
    "create_driver",
]
