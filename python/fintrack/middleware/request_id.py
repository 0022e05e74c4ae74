"""X-Request-ID middleware for request correlation and access logging.

This middleware:
- Extracts or generates a unique request ID for each request
- Validates and normalizes incoming request IDs
- Attaches the ID to request state for downstream use
- Echoes the ID in response headers
- Logs one access entry per request, including the pipeline phase it ended in

Middleware Ordering (Critical):
- Wraps the composed pipeline from the outside (added after Pipeline.install)
- Short-circuited responses (redirects, docs) still carry X-Request-ID
"""

import re
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from fintrack.logging import clear_request_context, get_logger, set_request_context
from fintrack.middleware.phase import RequestPhase, advance_phase, get_phase

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128

# Allows alphanumeric, dots, hyphens, underscores
VALID_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,128}$")

UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)

logger = get_logger(__name__)


def is_valid_uuid(value: str) -> bool:
    """Check if value is a valid UUID string."""
    return bool(UUID_PATTERN.match(value))


def is_valid_request_id(value: str) -> bool:
    """Check if value is a valid request ID.

    A request ID is valid if:
    - Length is <= 128 bytes
    - It's a valid UUID string, OR
    - It matches the alphanumeric pattern
    """
    if len(value.encode("utf-8")) > MAX_REQUEST_ID_LENGTH:
        return False

    return is_valid_uuid(value) or bool(VALID_REQUEST_ID_PATTERN.match(value))


def normalize_request_id(value: str) -> str:
    """Normalize a valid request ID.

    UUIDs are converted to lowercase hyphenated canonical form.
    Non-UUID strings are preserved as-is.
    """
    if is_valid_uuid(value):
        return value.lower()
    return value


def generate_request_id() -> str:
    """Generate a new UUID v4 request ID."""
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware for X-Request-ID handling and access logging.

    Args:
        app: The ASGI application.
        log_requests: If True, log access entries for each request.
    """

    def __init__(self, app, log_requests: bool = True):
        super().__init__(app)
        self.log_requests = log_requests

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start_time = time.monotonic()

        incoming_id = request.headers.get(REQUEST_ID_HEADER)
        if incoming_id and is_valid_request_id(incoming_id):
            request_id = normalize_request_id(incoming_id)
        else:
            request_id = generate_request_id()

        request.state.request_id = request_id
        set_request_context(request_id, path=request.url.path, method=request.method)

        try:
            response = await call_next(request)

            response.headers[REQUEST_ID_HEADER] = request_id

            # "pending" here means no stage answered and no route matched
            outcome = get_phase(request.scope)
            advance_phase(request.scope, RequestPhase.COMPLETED)

            if self.log_requests:
                duration_ms = (time.monotonic() - start_time) * 1000
                logger.info(
                    "request_completed",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    outcome=outcome.value,
                    duration_ms=round(duration_ms, 2),
                )

            return response

        except Exception:
            # Log and re-raise - unhandled_exception_handler will catch this
            logger.exception("request_failed", method=request.method, path=request.url.path)
            raise

        finally:
            clear_request_context()
