"""
Error codes and exception types.

Store exceptions describe what went wrong with a paste; APIError carries an
HTTP status and a stable error code and is rendered into the response
envelope by the handlers registered in main.py.
"""
from typing import Any, Dict, Optional


class ErrorCodes:
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    PASTE_EXPIRED = "PASTE_EXPIRED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    CONTENT_TOO_LARGE = "CONTENT_TOO_LARGE"
    UNAUTHORIZED = "UNAUTHORIZED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Store-level exceptions


class StorageError(Exception):
    """Raised when the backing store fails."""


class PasteNotFoundError(Exception):
    def __init__(self, paste_id: str):
        super().__init__(f"Paste {paste_id} not found")
        self.paste_id = paste_id


class PasteExpiredError(Exception):
    def __init__(self, paste_id: str, reason: str):
        super().__init__(reason)
        self.paste_id = paste_id
        self.reason = reason


class PasteConflictError(Exception):
    """Raised when a paste ID is already taken."""

    def __init__(self, paste_id: str):
        super().__init__(f"Paste {paste_id} already exists")
        self.paste_id = paste_id


# HTTP-level exceptions


class APIError(Exception):
    """An error that maps directly onto the JSON error envelope."""

    status_code = 500
    code = ErrorCodes.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        details: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.headers = headers

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return {"success": False, "error": error}


class ValidationFailed(APIError):
    status_code = 400
    code = ErrorCodes.VALIDATION_ERROR


class NotFound(APIError):
    status_code = 404
    code = ErrorCodes.NOT_FOUND


class Expired(APIError):
    status_code = 410
    code = ErrorCodes.PASTE_EXPIRED


class Unauthorized(APIError):
    status_code = 401
    code = ErrorCodes.UNAUTHORIZED


class RateLimitExceeded(APIError):
    status_code = 429
    code = ErrorCodes.RATE_LIMIT_EXCEEDED


class PayloadTooLarge(APIError):
    status_code = 413
    code = ErrorCodes.CONTENT_TOO_LARGE


class InternalError(APIError):
    status_code = 500
    code = ErrorCodes.INTERNAL_ERROR
