"""
stone/schemas/errors.py - Error code definitions
"""

from enum import Enum

from fastapi import status


class ErrorCode(str, Enum):
    # Request (REQ_XXX)
    BAD_REQUEST = "REQ_001"
    VALIDATION_ERROR = "REQ_002"
    NOT_FOUND = "REQ_003"

    # CSRF (CSRF_XXX)
    CSRF_TOKEN_MISSING = "CSRF_001"
    CSRF_TOKEN_INVALID = "CSRF_002"

    # Users (USER_XXX)
    MOBILE_TAKEN = "USER_001"

    # System (SYS_XXX)
    INTERNAL_ERROR = "SYS_001"
    DATABASE_ERROR = "SYS_002"


ERROR_MESSAGES = {
    ErrorCode.BAD_REQUEST: "Bad request",
    ErrorCode.VALIDATION_ERROR: "Validation error",
    ErrorCode.NOT_FOUND: "Not found",
    ErrorCode.CSRF_TOKEN_MISSING: "CSRF token missing",
    ErrorCode.CSRF_TOKEN_INVALID: "csrf token is invalid",
    ErrorCode.MOBILE_TAKEN: "mobile number is already registered",
    ErrorCode.INTERNAL_ERROR: "An unexpected error occurred",
    ErrorCode.DATABASE_ERROR: "Database error occurred",
}


class APIError(Exception):
    """Business error raised inside a request, rendered as an error envelope"""

    def __init__(
        self,
        code: ErrorCode,
        message: str = None,
        status_code: int = status.HTTP_400_BAD_REQUEST,
    ):
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, code.value)
        self.status_code = status_code
        super().__init__(self.message)


def bad_request(detail: str) -> APIError:
    return APIError(ErrorCode.BAD_REQUEST, f"request failed: {detail}")
