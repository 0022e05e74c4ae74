"""Pure ASGI middleware for the API documentation surfaces.

ApiDescriptionMiddleware serves the OpenAPI document at
``/swagger/{document}/swagger.json``. DocsUIMiddleware serves the Swagger UI
page under ``/swagger`` that renders that document.

Both stages answer their own paths and pass everything else through. The
description is generated per request from the routes the application holds
at that moment, so routes added after startup still appear. It lists every
Route Table entry except those a controller declared with
``include_in_schema=False``, which stay dispatchable but undocumented.
"""

import json
from collections.abc import Sequence
from typing import Any

from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from starlette.responses import RedirectResponse, Response
from starlette.routing import BaseRoute
from starlette.types import ASGIApp, Receive, Scope, Send

from fintrack.middleware.phase import mark_short_circuited
from fintrack.routing import RouteTable
from fintrack.services.registry import ApiDescriptionOptions, DocsUIOptions

DOCS_PREFIX = "/swagger"
DOCS_UI_INDEX_PATH = f"{DOCS_PREFIX}/index.html"
READ_METHODS = ("GET", "HEAD")


def api_description_path(document: str) -> str:
    """Well-known path of the API description for ``document``."""
    return f"{DOCS_PREFIX}/{document}/swagger.json"


def describe_routes(routes: Sequence[BaseRoute], options: ApiDescriptionOptions) -> dict[str, Any]:
    """Build the OpenAPI description of ``routes``.

    Operations are grouped by path, one entry per method, with parameter
    and body schemas as FastAPI derives them from handler signatures.
    """
    return get_openapi(
        title=options.title,
        version=options.version,
        description=options.description,
        routes=routes,
    )


def _current_routes(scope: Scope, route_table: RouteTable) -> Sequence[BaseRoute]:
    app = scope.get("app")
    routes = getattr(app, "routes", None)
    if routes is None:
        return route_table.router.routes
    return routes


class ApiDescriptionMiddleware:
    """Serve the machine-readable API description."""

    def __init__(self, app: ASGIApp, route_table: RouteTable, options: ApiDescriptionOptions):
        self.app = app
        self.route_table = route_table
        self.options = options
        self.path = api_description_path(options.document)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            scope["type"] != "http"
            or scope["path"] != self.path
            or scope["method"] not in READ_METHODS
        ):
            await self.app(scope, receive, send)
            return

        mark_short_circuited(scope)
        document = describe_routes(_current_routes(scope, self.route_table), self.options)
        response = Response(
            content=json.dumps(document, separators=(",", ":")),
            media_type="application/json",
        )
        await response(scope, receive, send)


class DocsUIMiddleware:
    """Serve the interactive documentation page.

    ``/swagger`` and ``/swagger/`` redirect to ``/swagger/index.html``.
    """

    def __init__(self, app: ASGIApp, openapi_url: str, options: DocsUIOptions):
        self.app = app
        self.openapi_url = openapi_url
        self.options = options

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] not in READ_METHODS:
            await self.app(scope, receive, send)
            return

        path = scope["path"]
        if path in (DOCS_PREFIX, f"{DOCS_PREFIX}/"):
            mark_short_circuited(scope)
            root_path = scope.get("root_path", "")
            response: Response = RedirectResponse(
                f"{root_path}{DOCS_UI_INDEX_PATH}", status_code=301
            )
        elif path == DOCS_UI_INDEX_PATH:
            mark_short_circuited(scope)
            root_path = scope.get("root_path", "")
            response = get_swagger_ui_html(
                openapi_url=f"{root_path}{self.openapi_url}",
                title=self.options.title,
            )
        else:
            await self.app(scope, receive, send)
            return

        await response(scope, receive, send)
