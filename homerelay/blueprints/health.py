"""
Health Blueprint
================

Routes:
- GET /health - liveness plus per-class device connectivity
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response

from homerelay.blueprints.api._common import get_hub
from homerelay.utils.http import json_response, safe_route

logger = logging.getLogger("health_api")

health_bp = Blueprint("health", __name__)


@health_bp.get("/health")
@safe_route("Failed to get health")
def health() -> Response:
    """
    Returns:
        {"status": "ok", "shuttersConnected": bool, "irrigationConnected": bool,
         "robotsConnected": bool, "lastUpdate": "..."}
    """
    return json_response(get_hub().health())
