"""Library exceptions."""

from __future__ import annotations


class PyParkingSpotError(Exception):
    """Base exception for the library."""

    error_type = "unknown"
    default_code: str | None = None

    def __init__(
        self,
        message: str | None = None,
        *,
        error_code: str | None = None,
        detail: str | None = None,
        user_message: str | None = None,
    ) -> None:
        text = message if message is not None else (detail or "")
        super().__init__(text)
        self.error_code = error_code if error_code is not None else self.default_code
        self.detail = detail if detail is not None else text
        self.user_message = user_message


class ValidationError(PyParkingSpotError):
    """Raised when inputs fail validation."""

    error_type = "validation"
    default_code = "validation_error"


class CapacityExhaustedError(PyParkingSpotError):
    """Raised when a parking lot has no spot left to book."""

    error_type = "capacity"
    default_code = "capacity_exhausted"


class InvalidStateError(PyParkingSpotError):
    """Raised when a lot or reservation is in the wrong state for an action."""

    error_type = "state"
    default_code = "invalid_state"


class NotFoundError(PyParkingSpotError):
    """Raised when a lot or reservation does not exist."""

    error_type = "not_found"
    default_code = "not_found"


class AuthError(PyParkingSpotError):
    """Raised when authentication fails or a role is not allowed."""

    error_type = "auth"
    default_code = "auth_error"


class RemoteError(PyParkingSpotError):
    """Raised when the parking service reports an error."""

    error_type = "remote"
    default_code = "remote_error"


class NetworkError(PyParkingSpotError):
    """Raised when network communication fails."""

    error_type = "network"
    default_code = "network_error"


class BackendError(PyParkingSpotError):
    """Raised when a backend is misconfigured or returns malformed data."""

    error_type = "backend"
    default_code = "backend_error"


class ConfigError(PyParkingSpotError):
    """Raised when the library is configured incorrectly."""

    error_type = "config"
    default_code = "config_error"
