"""Centralized exception hierarchy for the relay hub.

All domain and service exceptions inherit from :class:`RelayError` so that
callers can catch a single base class when they need a broad safety net, yet
still match on specific subclasses where narrower handling is appropriate.

Blueprint-level error handling (see ``homerelay/utils/http.safe_route``) maps
these to the correct HTTP status codes automatically.

Hierarchy
---------
::

    RelayError (base: maps to 500)
    ├── AuthRejectedError        (401: bad or missing secret / token)
    ├── ValidationError          (400: bad input from caller)
    │   └── MalformedMessageError (400: unparseable or unknown message)
    ├── NotFoundError            (404: unknown robot identifier)
    ├── NotConnectedError        (503: no live device for the class)
    ├── TransportError           (500: send to a peer failed)
    └── ExternalServiceError     (502: robot vendor call failed)
"""

from __future__ import annotations


class RelayError(Exception):
    """Base exception for all relay hub errors.

    Parameters
    ----------
    message:
        Human-readable description (logged server-side, **not** leaked to
        the HTTP client unless the status is 4xx, 502 or 503).
    detail:
        Optional machine-readable context dict attached to the error for
        structured logging.
    """

    http_status: int = 500

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


# ── Client errors (4xx) ──────────────────────────────────────────────


class AuthRejectedError(RelayError):
    """Presented secret or controller token did not match (HTTP 401)."""

    http_status: int = 401


class ValidationError(RelayError):
    """Caller supplied invalid or incomplete input (HTTP 400)."""

    http_status: int = 400


class MalformedMessageError(ValidationError):
    """Payload could not be parsed or carried an unknown ``type`` tag."""


class NotFoundError(RelayError):
    """Requested robot does not exist (HTTP 404)."""

    http_status: int = 404


# ── Server errors (5xx) ──────────────────────────────────────────────


class NotConnectedError(RelayError):
    """The addressed device class has no live registered connection (HTTP 503)."""

    http_status: int = 503


class TransportError(RelayError):
    """Delivering a message to a peer failed (HTTP 500)."""

    http_status: int = 500


class ExternalServiceError(RelayError):
    """Robot vendor call failed or timed out (HTTP 502)."""

    http_status: int = 502

