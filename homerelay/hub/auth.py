"""Shared-secret checks for device connections and controller commands."""

from __future__ import annotations

import hmac
from typing import Any, Mapping

from homerelay.enums.devices import DeviceClass


def _matches(presented: Any, expected: str | None) -> bool:
    if not expected or not isinstance(presented, str):
        return False
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


class AuthGate:
    """Validates device secrets (one per class) and the controller token.

    Stateless: no retry accounting, lockout or rate limiting. Callers decide
    what a rejection means (close a device, ignore a controller command,
    answer 401 over HTTP).
    """

    def __init__(self, device_secrets: Mapping[DeviceClass, str], controller_secret: str) -> None:
        self._device_secrets = dict(device_secrets)
        self._controller_secret = controller_secret

    def validate_device_auth(self, device_class: DeviceClass, presented_secret: Any) -> bool:
        return _matches(presented_secret, self._device_secrets.get(device_class))

    def validate_controller_token(self, presented_token: Any) -> bool:
        return _matches(presented_token, self._controller_secret)
