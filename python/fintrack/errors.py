"""Error definitions.

API errors are defined here with their corresponding HTTP status codes.
Startup errors (configuration, bind failures) abort the process before the
server starts accepting connections and never reach a client.
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    """Standardized error codes for the API.

    Format: E_CATEGORY_NAME
    """

    # Not found errors (404)
    E_NOT_FOUND = "E_NOT_FOUND"

    # Routing errors (405)
    E_METHOD_NOT_ALLOWED = "E_METHOD_NOT_ALLOWED"

    # Validation errors (400)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"

    # Server errors
    E_INTERNAL = "E_INTERNAL"  # 500


# Error code to HTTP status mapping
ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_METHOD_NOT_ALLOWED: 405,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_INTERNAL: 500,
}


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        status_code: HTTP status code (derived from code)
    """

    def __init__(self, code: ApiErrorCode, message: str):
        self.code = code
        self.message = message
        self.status_code = ERROR_CODE_TO_STATUS.get(code, 500)
        super().__init__(message)


class NotFoundError(ApiError):
    """Resource not found error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_NOT_FOUND, message: str = "Not found"):
        super().__init__(code, message)


class ConfigurationError(Exception):
    """Invalid service or pipeline configuration detected at startup."""


class StartupError(Exception):
    """The host could not start serving (e.g. a listener failed to bind)."""
