"""
Robot Endpoints
===============
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError

from flask import Blueprint, Response

from homerelay.blueprints.api._common import get_container, get_hub, get_json, require_controller_token
from homerelay.domain.exceptions import ExternalServiceError, ValidationError
from homerelay.utils.http import json_response, safe_route

logger = logging.getLogger("robots_api")


def register_robot_routes(relay_api: Blueprint):
    """Register robot routes on the blueprint."""

    @relay_api.get("/robots")
    @safe_route("Failed to get robot status")
    def list_robot_status() -> Response:
        return json_response(get_hub().robot_statuses())

    @relay_api.get("/robots/units")
    @safe_route("Failed to list robot units")
    def list_robot_units() -> Response:
        robots = get_container().robots
        return json_response(robots.list_units() if robots is not None else [])

    @relay_api.get("/robots/<robot_id>")
    @safe_route("Failed to get robot status")
    def get_robot_status(robot_id: str) -> Response:
        return json_response(get_hub().robot_status(robot_id))

    @relay_api.post("/robots/<robot_id>/command")
    @safe_route("Failed to send robot command")
    def send_robot_command(robot_id: str) -> Response:
        """
        Body: {"token": "...", "command": "start|pause|resume|stop|dock|clean_room", "args": {...}}

        Returns:
            {"success": true, "robot": "...", "command": "...", "result": {...}}
        """
        body = get_json()
        require_controller_token(body)
        command = body.get("command")
        args = body.get("args") or {}
        if not isinstance(args, dict):
            raise ValidationError("args must be an object")

        outcome = get_hub().send_robot_command(robot_id, command, args)
        if isinstance(outcome, Future):
            timeout = get_container().config.robot_command_timeout
            try:
                result = outcome.result(timeout=timeout)
            except FutureTimeoutError:
                raise ExternalServiceError(f"Robot {robot_id} did not answer within {timeout}s") from None
        else:
            result = outcome

        return json_response({"success": True, "robot": robot_id, "command": command, "result": result})
