"""Pure ASGI middleware that upgrades plain HTTP requests to HTTPS.

- Requests that arrived over plain http are answered with a redirect to the
  https URL: same host, path and query string, with the secure port
  substituted (omitted when it is 443).
- The redirect status defaults to 308 so clients replay the original method
  and body.
- Requests that already arrived over https pass through untouched.
- If no secure port is configured, every request passes through; the
  condition is logged once when the stage is built.

Starlette's HTTPSRedirectMiddleware is not used: it always answers 307 and
cannot target a port other than 443.
"""

from starlette.datastructures import URL
from starlette.responses import RedirectResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from fintrack.logging import get_logger
from fintrack.middleware.phase import mark_short_circuited

logger = get_logger(__name__)

DEFAULT_HTTPS_PORT = 443


def secure_url(url: URL, https_port: int) -> URL:
    """Return the https equivalent of ``url`` on ``https_port``."""
    host = url.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    netloc = host if https_port == DEFAULT_HTTPS_PORT else f"{host}:{https_port}"
    return url.replace(scheme="https", netloc=netloc)


class HTTPSRedirectMiddleware:
    """Redirect insecure requests to the configured secure endpoint."""

    def __init__(self, app: ASGIApp, https_port: int | None = None, status_code: int = 308):
        self.app = app
        self.https_port = https_port
        self.status_code = status_code

        if https_port is None:
            logger.warning("https_port_unknown", detail="HTTPS redirection passes requests through")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            self.https_port is None
            or scope["type"] != "http"
            or scope.get("scheme", "http") != "http"
        ):
            await self.app(scope, receive, send)
            return

        url = URL(scope=scope)
        raw_path = scope.get("raw_path")
        if raw_path:
            # scope["path"] is percent-decoded; keep the path as the client sent it
            url = url.replace(path=raw_path.decode("latin-1"))
        target = secure_url(url, self.https_port)
        mark_short_circuited(scope)
        response = RedirectResponse(str(target), status_code=self.status_code)
        await response(scope, receive, send)
