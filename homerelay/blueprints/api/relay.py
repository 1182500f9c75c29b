"""
Shutters and Irrigation Endpoints
=================================
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response

from homerelay.blueprints.api._common import get_hub, get_json, require_controller_token
from homerelay.enums.devices import DeviceClass
from homerelay.utils.http import json_response, safe_route

logger = logging.getLogger("relay_api")


def register_relay_routes(relay_api: Blueprint):
    """Register shutters / irrigation routes on the blueprint."""

    @relay_api.get("/state")
    @safe_route("Failed to get state")
    def get_state() -> Response:
        return json_response(get_hub().snapshot(DeviceClass.SHUTTERS))

    @relay_api.post("/command")
    @safe_route("Failed to send command")
    def send_command() -> Response:
        """
        Body: {"token": "...", "action": "...", "channel": ..., "value": ...}

        Returns:
            {"success": true, "command": {...}}
        """
        body = get_json()
        require_controller_token(body)
        command = get_hub().send_shutter_command(body.get("action"), body.get("channel"), body.get("value"))
        logger.info("📤 Shutter command sent: %s", command.get("action"))
        return json_response({"success": True, "command": command})

    @relay_api.get("/schedules")
    @safe_route("Failed to request schedules")
    def get_schedules() -> Response:
        # The answer arrives later as a SCHEDULES message on the controller namespace.
        get_hub().request_schedules()
        return json_response({"message": "Schedules request sent to device"})

    @relay_api.get("/irrigation")
    @safe_route("Failed to get irrigation state")
    def get_irrigation() -> Response:
        return json_response(get_hub().snapshot(DeviceClass.IRRIGATION))

    @relay_api.post("/irrigation/command")
    @safe_route("Failed to send irrigation command")
    def send_irrigation_command() -> Response:
        """
        Body: {"token": "...", "action": "START|STOP", "duration": seconds}
        """
        body = get_json()
        require_controller_token(body)
        command = get_hub().send_irrigation_command(body.get("action"), body.get("duration"))
        logger.info("💧 Irrigation command sent: %s", command.get("action"))
        return json_response({"success": True, "command": command})
