"""
Error taxonomy for the storefront API

Every error carries the HTTP status it maps to and renders as
``{"error": message}`` plus ``details`` for validation failures.
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid body"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Invalid token"


class Forbidden(AppError):
    status_code = 403
    default_message = "Admin access required"


class Conflict(AppError):
    # duplicates are reported as a plain client error
    status_code = 400
    default_message = "Already exists"


class InternalError(AppError):
    pass
