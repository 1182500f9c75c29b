"""
Relay API Blueprint
===================

Routes:
- GET  /api/state - shutters snapshot
- POST /api/command - shutter command
- GET  /api/schedules - ask the shutters device for its schedules
- GET  /api/irrigation - irrigation snapshot
- POST /api/irrigation/command - irrigation command
- GET  /api/robots - all robot statuses
- GET  /api/robots/units - robot units managed directly
- GET  /api/robots/<robot_id> - one robot status
- POST /api/robots/<robot_id>/command - robot command
- GET  /api/history/irrigation - irrigation history
- GET  /api/history/robots - robot mission history
"""

from __future__ import annotations

import logging

from flask import Blueprint

logger = logging.getLogger("relay_api")

relay_api = Blueprint("relay_api", __name__, url_prefix="/api")

from homerelay.blueprints.api.history import register_history_routes  # noqa: E402
from homerelay.blueprints.api.relay import register_relay_routes  # noqa: E402
from homerelay.blueprints.api.robots import register_robot_routes  # noqa: E402

register_relay_routes(relay_api)
register_robot_routes(relay_api)
register_history_routes(relay_api)

__all__ = ["relay_api"]
