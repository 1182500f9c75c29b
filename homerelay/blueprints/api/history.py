"""
History Endpoints
=================
"""

from __future__ import annotations

from flask import Blueprint, Response, request

from homerelay.blueprints.api._common import get_history, get_limit
from homerelay.utils.http import json_response, safe_route


def register_history_routes(relay_api: Blueprint):
    """Register history routes on the blueprint."""

    @relay_api.get("/history/irrigation")
    @safe_route("Failed to get irrigation history")
    def irrigation_history() -> Response:
        return json_response(get_history().irrigation_history(get_limit()))

    @relay_api.get("/history/robots")
    @safe_route("Failed to get robot history")
    def robot_history() -> Response:
        return json_response(get_history().robot_history(get_limit(), request.args.get("robot")))
