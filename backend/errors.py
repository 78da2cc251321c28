"""
API error taxonomy.

Every error leaving the service is rendered as
{"statusCode": int, "message": str, "error": str}.
"""
from fastapi import HTTPException, status


class ApiError(HTTPException):
    """HTTPException carrying the reason phrase used in the error body."""

    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "Internal Server Error"
    default_message = "Internal Server Error"

    def __init__(self, message: str = None):
        super().__init__(
            status_code=self.status_code_default,
            detail=message or self.default_message,
        )

    @property
    def message(self) -> str:
        return self.detail


class BadRequestError(ApiError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    error = "Bad Request"
    default_message = "Validation failed"


class UnauthorizedError(ApiError):
    status_code_default = status.HTTP_401_UNAUTHORIZED
    error = "Unauthorized"
    default_message = "Unauthorized"


class ForbiddenError(ApiError):
    status_code_default = status.HTTP_403_FORBIDDEN
    error = "Forbidden"
    default_message = "Forbidden"


class NotFoundError(ApiError):
    status_code_default = status.HTTP_404_NOT_FOUND
    error = "Not Found"
    default_message = "Not Found"


class InternalServerError(ApiError):
    pass


class InvalidStateError(BadRequestError):
    """Transition precondition failed (entity not in the expected status)."""


class DuplicateError(BadRequestError):
    """Unique constraint surfaced as a domain condition."""


class DuplicateReportError(DuplicateError):
    default_message = "You already reported this content"


REASON_PHRASES = {
    status.HTTP_400_BAD_REQUEST: "Bad Request",
    status.HTTP_401_UNAUTHORIZED: "Unauthorized",
    status.HTTP_403_FORBIDDEN: "Forbidden",
    status.HTTP_404_NOT_FOUND: "Not Found",
    status.HTTP_405_METHOD_NOT_ALLOWED: "Method Not Allowed",
    status.HTTP_500_INTERNAL_SERVER_ERROR: "Internal Server Error",
}


def error_body(status_code: int, message: str, error: str = None) -> dict:
    return {
        "statusCode": status_code,
        "message": message,
        "error": error or REASON_PHRASES.get(status_code, "Error"),
    }


def parse_positive_int(raw: str) -> int:
    """Parse a path id; anything but a positive integer is a 400."""
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise BadRequestError("Validation failed")
    if value <= 0:
        raise BadRequestError("Validation failed")
    return value
