from __future__ import annotations

from typing import Any, Optional


# Shown to the person using the client; keyed by the server's error kind.
ERROR_MESSAGES: dict[str, str] = {
    "validation_error": "Please check your input and try again.",
    "size_exceeded": "This file is larger than the allowed size.",
    "permission_denied": "You do not have permission to perform this action.",
    "auth_required": "Please sign in to continue.",
    "invalid_status": "This action cannot be performed on items with this status.",
    "not_found": "The requested item could not be found.",
    "server_error": "Something went wrong on our end. Please try again later.",
    "network_error": "You appear to be offline. Your submission will be sent when you reconnect.",
}


class ApiError(Exception):
    """An answer from the server that is final: retrying it unchanged will not help."""

    def __init__(
        self,
        kind: str,
        detail: Optional[str] = None,
        status_code: Optional[int] = None,
        fields: Optional[dict[str, Any]] = None,
    ):
        self.kind = kind if kind in ERROR_MESSAGES else "server_error"
        self.detail = detail or ERROR_MESSAGES[self.kind]
        self.status_code = status_code
        self.fields = fields or {}
        super().__init__(self.detail)

    @property
    def message(self) -> str:
        return self.detail


class TransientNetworkError(ApiError):
    """The request may not have reached the server; safe to queue and retry."""

    def __init__(self, detail: Optional[str] = None, status_code: Optional[int] = None, cause: Optional[str] = None):
        super().__init__("network_error", detail, status_code=status_code)
        # what actually went wrong, for logs and the queue record
        self.cause = cause or self.detail
