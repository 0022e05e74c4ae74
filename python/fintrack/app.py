"""FastAPI application creation and configuration.

create_app() composes the host from explicit inputs:

1. Settings (environment flag, listener and redirect configuration)
2. Service registry: controllers, API description, docs UI -> ServiceContainer
3. Request pipeline: composed from the flag and the container, then installed

FastAPI's built-in /docs, /redoc and /openapi.json are disabled; the
documentation surfaces are pipeline stages so that production never exposes
them.

Middleware Ordering (Critical):
- Pipeline.install() adds the composed stages (first stage outermost)
- add_request_id_middleware() must be called AFTER, so it wraps the whole
  pipeline and every response (including redirects) gets X-Request-ID

Actual execution order per request (development):
1. RequestIDMiddleware (sets request_id, starts timer)
2. ApiDescriptionMiddleware (answers /swagger/v1/swagger.json)
3. DocsUIMiddleware (answers /swagger, /swagger/index.html)
4. HTTPSRedirectMiddleware (redirects plain http when HTTPS_PORT is set)
5. Router (controller handler, or 404)
"""

from collections.abc import Sequence
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI

from fintrack.api.routes import default_controllers
from fintrack.config import Settings, get_settings
from fintrack.logging import get_logger
from fintrack.middleware.request_id import RequestIDMiddleware
from fintrack.pipeline import compose_pipeline
from fintrack.responses import register_exception_handlers
from fintrack.services.registry import default_services

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log application start and stop."""
    settings: Settings = app.state.settings
    logger.info(
        "application_starting",
        env=settings.fintrack_env.value,
        stages=list(app.state.pipeline.names),
    )
    yield
    logger.info("application_stopped")


def create_app(
    settings: Settings | None = None,
    controllers: Sequence[APIRouter] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Explicit settings; loaded from the environment if None.
        controllers: Controller routers to dispatch to; defaults to the health check.

    Returns:
        Configured FastAPI application instance.

    Raises:
        ConfigurationError: If services or pipeline stages are misconfigured.
    """
    if settings is None:
        settings = get_settings()
    if controllers is None:
        controllers = default_controllers()

    services = default_services(
        controllers, title=settings.api_title, version=settings.api_version
    )
    pipeline = compose_pipeline(settings, services)

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.services = services
    app.state.pipeline = pipeline

    register_exception_handlers(app)
    pipeline.install(app, services)

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Add request-id middleware to the app.

    This should be called AFTER create_app(), so it wraps every pipeline stage.

    Args:
        app: The FastAPI application.
        log_requests: Whether to log access entries for each request.
    """
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
    logger.info("request_id_middleware_enabled")
