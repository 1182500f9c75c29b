"""
Relay hub
=========

**registry**
  Per-class state blob and single-owner bookkeeping (DeviceRegistry).

**hub**
  Connection state machine and command routing (ConnectionHub).

**auth / broadcaster / connection**
  Secret checks, controller fan-out and the transport-neutral Connection.
"""

from .auth import AuthGate
from .broadcaster import Broadcaster
from .connection import Connection, new_connection_id
from .hub import ConnectionHub
from .registry import DeviceRegistry, irrigation_transition, robot_entries

__all__ = [
    "AuthGate",
    "Broadcaster",
    "Connection",
    "ConnectionHub",
    "DeviceRegistry",
    "irrigation_transition",
    "new_connection_id",
    "robot_entries",
]
