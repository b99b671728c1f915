"""Error taxonomy shared by services and the HTTP layer."""

from enum import StrEnum


class ErrorCode(StrEnum):
    """Machine-readable codes carried in every error envelope."""

    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    FORBIDDEN = "FORBIDDEN"
    INVALID_CSRF = "INVALID_CSRF"

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_CONFIG_ID = "INVALID_CONFIG_ID"
    INVALID_CONFIG_DATA = "INVALID_CONFIG_DATA"
    INVALID_VERSION_NUMBER = "INVALID_VERSION_NUMBER"
    INVALID_IMPORT_FILE = "INVALID_IMPORT_FILE"
    MISSING_FIELD = "MISSING_FIELD"

    CONFIG_NOT_FOUND = "CONFIG_NOT_FOUND"
    VERSION_NOT_FOUND = "VERSION_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    TOKEN_NOT_FOUND = "TOKEN_NOT_FOUND"
    NOT_FOUND = "NOT_FOUND"

    CONFIG_ALREADY_EXISTS = "CONFIG_ALREADY_EXISTS"
    USERNAME_TAKEN = "USERNAME_TAKEN"
    STALE_DATA = "STALE_DATA"

    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppError(Exception):
    """Raised for failures that map to a specific HTTP status and error code."""

    status_code: int = 400
    code: ErrorCode = ErrorCode.VALIDATION_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        status_code: int | None = None,
        details: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        self.headers = headers
        super().__init__(message)


class UnauthorizedError(AppError):
    status_code = 401
    code = ErrorCode.UNAUTHORIZED


class CsrfError(AppError):
    status_code = 403
    code = ErrorCode.INVALID_CSRF

    def __init__(self, message: str = "Invalid or missing CSRF token") -> None:
        super().__init__(message)


class RateLimitExceededError(AppError):
    status_code = 429
    code = ErrorCode.RATE_LIMIT_EXCEEDED

