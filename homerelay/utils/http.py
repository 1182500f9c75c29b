from __future__ import annotations

import functools
import logging
from typing import Any, Callable

from flask import Response, jsonify

from homerelay.utils.time import iso_now

_log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Generic user-facing messages, never leak internals
# ---------------------------------------------------------------------------
_GENERIC_MESSAGES: dict[int, str] = {
    400: "Invalid request",
    401: "Unauthorized",
    404: "Resource not found",
    500: "Internal server error",
    502: "Upstream device error",
    503: "Device not connected",
}


def safe_error(
    exc: BaseException,
    status: int = 500,
    *,
    context: str = "",
) -> Response:
    """Return a generic error response while logging the real exception.

    The exception is logged server-side and never sent to the client; the
    body carries only the generic message for ``status``.
    """
    _log.error("API error [%s] %s: %s", status, context, exc, exc_info=exc)
    message = _GENERIC_MESSAGES.get(status, _GENERIC_MESSAGES[500])
    return error_response(message, status)


def json_response(payload: dict | list, status: int = 200) -> Response:
    response = jsonify(payload)
    response.status_code = status
    return response


def error_response(message: str, status: int = 500) -> Response:
    return json_response({"error": message, "timestamp": iso_now()}, status)


# ---------------------------------------------------------------------------
# Route decorator, eliminates per-route try/except boilerplate
# ---------------------------------------------------------------------------


def safe_route(
    error_message: str = "Internal server error",
    *,
    error_status: int = 500,
) -> Callable:
    """Decorator that wraps a Flask route handler with standardized error handling.

    Catches :class:`~homerelay.domain.exceptions.RelayError` subclasses and
    maps them to the correct HTTP status via ``exc.http_status``. 4xx errors
    keep their message, as do 502 and 503 (device offline, robot vendor
    failure). Other 5xx errors and any other ``Exception`` are logged and
    answered with a generic message.

    Usage::

        @relay_api.get("/state")
        @safe_route("Failed to get state")
        def get_state():
            ...
    """
    from homerelay.domain.exceptions import RelayError

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Response:
            try:
                return fn(*args, **kwargs)
            except RelayError as exc:
                status = exc.http_status
                if status >= 500:
                    if status in (502, 503):
                        # Expected operational failures: keep the message, skip the traceback.
                        _log.warning("API error [%s] %s: %s", status, error_message, exc)
                        return error_response(str(exc) or _GENERIC_MESSAGES[status], status)
                    return safe_error(exc, status, context=error_message)
                return error_response(str(exc) or error_message, status)
            except Exception as exc:
                return safe_error(exc, error_status, context=error_message)

        return wrapper

    return decorator
