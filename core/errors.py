import logging
from typing import Dict, Optional

from fastapi import HTTPException

logger = logging.getLogger(__name__)


class BaseError(HTTPException):
    """Base class for custom HTTP exceptions.

    Args:
        status_code (int): HTTP status code for the error.
        detail (str): Detailed message describing the error.
        details (Optional[Dict[str, str]]): Optional field-level reasons rendered next to the message.
    """

    def __init__(self, status_code: int, detail: str, details: Optional[Dict[str, str]] = None):
        super().__init__(status_code=status_code, detail=detail)
        self.details = details
        logger.error(f"Error occurred: {detail} (Status: {status_code})")

    def to_response(self) -> dict:
        """Render the error envelope returned to clients."""
        body = {"error": self.detail, "status": self.status_code}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(BaseError):
    """Exception raised for resources that cannot be found.

    Args:
        detail (str, optional): Specific detail about what was not found. Defaults to "Item not found".
    """

    def __init__(self, detail: Optional[str] = "Item not found"):
        super().__init__(status_code=404, detail=detail)


class ValidationError(BaseError):
    """Exception raised for invalid input data.

    Args:
        detail (str, optional): Specific detail about the validation failure. Defaults to "Invalid input".
        details (Optional[Dict[str, str]]): Field name to reason mapping.
    """

    def __init__(self, detail: Optional[str] = "Invalid input", details: Optional[Dict[str, str]] = None):
        super().__init__(status_code=400, detail=detail, details=details)


class ConflictError(BaseError):
    """Exception raised when a natural key (e.g. email) is already taken."""

    def __init__(self, detail: Optional[str] = "Resource already exists"):
        super().__init__(status_code=400, detail=detail)


class UnauthorizedError(BaseError):
    """Exception raised for unauthorized access attempts.

    Args:
        detail (str, optional): Specific detail about the authorization failure. Defaults to "Unauthorized".
    """

    def __init__(self, detail: Optional[str] = "Unauthorized"):
        super().__init__(status_code=401, detail=detail)


class ForbiddenError(BaseError):
    """Exception raised when an authenticated caller does not own the resource."""

    def __init__(self, detail: Optional[str] = "Forbidden"):
        super().__init__(status_code=403, detail=detail)


class UploadError(BaseError):
    """Exception raised when a file cannot be validated or stored.

    The HTTP status depends on the reason: client mistakes are 400, a failing
    storage backend is 502 and an expired upload window is 504.
    """

    OVERSIZE = "oversize"
    BAD_EXTENSION = "bad-extension"
    BAD_SNIFFED_TYPE = "bad-sniffed-type"
    MISSING_FILE = "missing-file"
    STORAGE_FAILURE = "storage-failure"
    TIMEOUT = "timeout"

    _STATUS_BY_REASON = {
        OVERSIZE: 400,
        BAD_EXTENSION: 400,
        BAD_SNIFFED_TYPE: 400,
        MISSING_FILE: 400,
        STORAGE_FAILURE: 502,
        TIMEOUT: 504,
    }

    def __init__(self, reason: str, detail: Optional[str] = None):
        self.reason = reason
        super().__init__(
            status_code=self._STATUS_BY_REASON.get(reason, 400),
            detail=detail or f"Upload failed: {reason}",
            details={"reason": reason},
        )


class InternalServerError(BaseError):
    """Exception raised for unexpected server-side errors.

    Args:
        detail (str, optional): Specific detail about the server error. Defaults to "Internal server error".
    """

    def __init__(self, detail: Optional[str] = "Internal server error"):
        super().__init__(status_code=500, detail=detail)
