from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum


class PortalError(Exception):
    """Base class for errors that map onto the portal's error envelope."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthRejectionReason(StrEnum):
    NO_TOKEN = "no_token"
    INVALID_FORMAT = "invalid_format"
    EXPIRED = "expired"
    REVOKED = "revoked"
    INVALID = "invalid"


_AUTH_CODES: dict[AuthRejectionReason, tuple[str, str]] = {
    AuthRejectionReason.NO_TOKEN: ("unauthorized", "No token provided"),
    AuthRejectionReason.INVALID_FORMAT: ("unauthorized", "Invalid token format"),
    AuthRejectionReason.EXPIRED: ("token_expired", "Your session has expired. Please login again."),
    AuthRejectionReason.REVOKED: ("token_revoked", "Your session has been revoked. Please login again."),
    AuthRejectionReason.INVALID: ("invalid_token", "Authentication failed"),
}


class AuthRejected(PortalError):
    status_code = 401

    def __init__(self, reason: AuthRejectionReason) -> None:
        self.reason = reason
        self.code, message = _AUTH_CODES[reason]
        super().__init__(message)


class ValidationFailed(PortalError):
    status_code = 400
    code = "validation_failed"

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"'{field}' is required")


class InvalidStatus(PortalError):
    status_code = 400
    code = "invalid_status"

    def __init__(self, resource_type: str, value: object, allowed: Iterable[str]) -> None:
        self.resource_type = resource_type
        self.value = value
        self.allowed = tuple(allowed)
        super().__init__(f"Status must be one of: {', '.join(self.allowed)}")


class NotFound(PortalError):
    status_code = 404
    code = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"The specified {resource_type.replace('_', ' ')} does not exist")


class Forbidden(PortalError):
    status_code = 403
    code = "forbidden"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"You do not have permission to access this {resource_type.replace('_', ' ')}")


class NoFile(PortalError):
    status_code = 404
    code = "file_not_available"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"No file has been uploaded for this {resource_type.replace('_', ' ')}")


class UpstreamFailure(PortalError):
    status_code = 500
    code = "upstream_failure"

    def __init__(self, adapter: str, message: str) -> None:
        self.adapter = adapter
        super().__init__(message)
