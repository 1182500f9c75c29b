"""
MQTT client construction for robot units.

Roomba / Braava robots expose a local MQTT broker on port 8883 with a
self-signed certificate. The robot's BLID is both client id and username.

paho-mqtt 2.x adds a callback API version flag; the legacy v3.1.1 callback
signatures are requested so the same handlers run on 1.x and 2.x.
"""
from __future__ import annotations

import ssl
from contextlib import suppress
from typing import Any

import paho.mqtt.client as mqtt

from homerelay.robots.models import RobotUnitConfig

ROBOT_MQTT_PORT = 8883


def _legacy_callback_api() -> Any:
    callback_api_version = getattr(mqtt, "CallbackAPIVersion", None)
    if callback_api_version is None:
        return None
    for attr in ("VERSION1", "V1", "V311"):
        if hasattr(callback_api_version, attr):
            return getattr(callback_api_version, attr)
    return None


def robot_tls_context() -> ssl.SSLContext:
    """TLS context accepting the robot's self-signed certificate."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    # Older firmware only offers ciphers below OpenSSL's default security level.
    with suppress(ssl.SSLError):
        context.set_ciphers("DEFAULT@SECLEVEL=1")
    return context


def create_robot_client(unit: RobotUnitConfig) -> mqtt.Client:
    """Build an unconnected MQTT client with credentials and TLS set for ``unit``."""
    client_kwargs: dict[str, Any] = {
        "client_id": unit.blid or "",
        "protocol": mqtt.MQTTv311,
    }
    callback_api = _legacy_callback_api()
    if callback_api is not None:
        client_kwargs["callback_api_version"] = callback_api

    try:
        client = mqtt.Client(**client_kwargs)
    except TypeError:
        # paho-mqtt 1.x has no callback_api_version argument.
        client_kwargs.pop("callback_api_version", None)
        client = mqtt.Client(**client_kwargs)

    client.username_pw_set(unit.blid, unit.password)
    client.tls_set_context(robot_tls_context())
    client.tls_insecure_set(True)
    return client
