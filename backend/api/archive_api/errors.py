from __future__ import annotations

from typing import Any, Optional


# Stable, kind-keyed messages shown to end users. Internal causes are logged,
# never returned.
MESSAGES: dict[str, str] = {
    "validation_error": "Please check your input and try again.",
    "size_exceeded": "This file is larger than the allowed size.",
    "permission_denied": "You do not have permission to perform this action.",
    "auth_required": "Please sign in to continue.",
    "invalid_status": "This action cannot be performed on items with this status.",
    "not_found": "The requested item could not be found.",
    "server_error": "Something went wrong on our end. Please try again later.",
}

HTTP_STATUS: dict[str, int] = {
    "validation_error": 422,
    "size_exceeded": 413,
    "permission_denied": 403,
    "auth_required": 401,
    "invalid_status": 409,
    "not_found": 404,
    "server_error": 500,
}


class GovernanceError(Exception):
    """Base for every error the service reports to callers."""

    kind = "server_error"

    def __init__(self, detail: str = "", *, internal: Optional[str] = None, fields: Optional[dict[str, Any]] = None):
        super().__init__(detail or MESSAGES[self.kind])
        self.detail = detail or MESSAGES[self.kind]
        # true cause, for logs only
        self.internal = internal
        self.fields = fields or {}

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.kind]

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "error": self.kind, "detail": self.detail}
        if self.fields:
            body["fields"] = self.fields
        return body


class ValidationFailed(GovernanceError):
    kind = "validation_error"


class SizeExceeded(GovernanceError):
    kind = "size_exceeded"


class PermissionDenied(GovernanceError):
    kind = "permission_denied"


class AuthRequired(GovernanceError):
    kind = "auth_required"


class InvalidStatus(GovernanceError):
    kind = "invalid_status"


class NotFound(GovernanceError):
    kind = "not_found"
