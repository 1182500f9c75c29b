"""
Blueprint Common Utilities
==========================

Shared helper functions for the relay API blueprints.

Usage:
    from homerelay.blueprints.api._common import get_hub, get_json, require_controller_token
"""
from __future__ import annotations

import logging
from typing import Any

from flask import current_app, request

from homerelay.domain.exceptions import AuthRejectedError, ValidationError

logger = logging.getLogger("api._common")

# ============================================================================
# CONTAINER ACCESS
# ============================================================================


def get_container():
    """
    Get the service container from Flask app config.

    Raises:
        RuntimeError: If container is not configured
    """
    container = current_app.config.get("CONTAINER")
    if not container:
        raise RuntimeError("ServiceContainer not found in app config")
    return container


def get_hub():
    return get_container().hub


def get_history():
    return get_container().history


# ============================================================================
# REQUEST HELPERS
# ============================================================================


def get_json() -> dict:
    """Get JSON request body; empty dict if missing or not an object."""
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def require_controller_token(body: dict[str, Any]) -> None:
    """Raise AuthRejectedError unless the body carries the controller token."""
    if not get_container().auth.validate_controller_token(body.get("token")):
        logger.warning("Rejected %s %s: invalid token", request.method, request.path)
        raise AuthRejectedError("Unauthorized")


def get_limit(default: int = 10) -> int:
    raw = request.args.get("limit")
    if raw is None:
        return default
    try:
        limit = int(raw)
    except ValueError:
        raise ValidationError("limit must be an integer") from None
    if limit < 1:
        raise ValidationError("limit must be positive")
    return limit
