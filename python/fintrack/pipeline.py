"""Request pipeline composition.

The pipeline is an explicit, ordered list of stages built once at startup.
``compose_pipeline`` branches on the environment flag a single time and
produces this fixed order:

1. api_description    (development only) OpenAPI document
2. docs_ui            (development only) Swagger UI page
3. https_redirection  plain HTTP -> HTTPS redirect
4. route_dispatch     controller routes; unmatched paths get 404

Middleware Ordering (Critical):
- Starlette runs middleware in reverse order of registration
- Pipeline.install() therefore registers stages last-to-first, so stage 1 is
  the outermost and sees every request first
- route_dispatch is not a middleware: it is the application's router, which
  is always innermost

The resulting Pipeline is frozen and shared by every request.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from fastapi import FastAPI

from fintrack.config import Settings
from fintrack.errors import ConfigurationError
from fintrack.logging import get_logger
from fintrack.middleware.docs import (
    ApiDescriptionMiddleware,
    DocsUIMiddleware,
    api_description_path,
)
from fintrack.middleware.https_redirect import HTTPSRedirectMiddleware
from fintrack.services.registry import Capability, ServiceContainer

logger = get_logger(__name__)


class StageName(str, Enum):
    API_DESCRIPTION = "api_description"
    DOCS_UI = "docs_ui"
    HTTPS_REDIRECTION = "https_redirection"
    ROUTE_DISPATCH = "route_dispatch"


@dataclass(frozen=True)
class Stage:
    """One pipeline stage.

    ``middleware`` is None for route_dispatch, which is served by the router.
    """

    name: StageName
    middleware: type | None = None
    options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class Pipeline:
    """Immutable, ordered stage list."""

    stages: tuple[Stage, ...]

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(stage.name.value for stage in self.stages)

    def __contains__(self, name: object) -> bool:
        return any(stage.name == name for stage in self.stages)

    def install(self, app: FastAPI, services: ServiceContainer) -> None:
        """Register the stages on ``app``.

        Mounts the route table for route_dispatch, then adds middleware in
        reverse so the first stage ends up outermost.
        """
        if StageName.ROUTE_DISPATCH in self:
            app.include_router(services.route_table.router)

        for stage in reversed(self.stages):
            if stage.middleware is not None:
                app.add_middleware(stage.middleware, **stage.options)


class PipelineBuilder:
    """Ordered-list builder that validates stages against registered services.

    Raises ConfigurationError when:
    - a stage is added twice
    - a stage's capability was not registered
    - docs_ui is added without api_description before it
    - anything is added after route_dispatch (or route_dispatch is missing)
    """

    def __init__(self, services: ServiceContainer):
        self._services = services
        self._stages: list[Stage] = []

    def _names(self) -> set[StageName]:
        return {stage.name for stage in self._stages}

    def _append(self, stage: Stage) -> "PipelineBuilder":
        names = self._names()
        if StageName.ROUTE_DISPATCH in names:
            raise ConfigurationError(
                f"Stage '{stage.name.value}' added after route_dispatch, which must be last"
            )
        if stage.name in names:
            raise ConfigurationError(f"Stage '{stage.name.value}' is already in the pipeline")
        self._stages.append(stage)
        return self

    def use_api_description(self) -> "PipelineBuilder":
        options = self._services.api_description
        return self._append(
            Stage(
                StageName.API_DESCRIPTION,
                ApiDescriptionMiddleware,
                MappingProxyType(
                    {"route_table": self._services.route_table, "options": options}
                ),
            )
        )

    def use_docs_ui(self) -> "PipelineBuilder":
        if StageName.API_DESCRIPTION not in self._names():
            raise ConfigurationError("Stage 'docs_ui' requires 'api_description' before it")
        options = self._services.docs_ui
        openapi_url = api_description_path(self._services.api_description.document)
        return self._append(
            Stage(
                StageName.DOCS_UI,
                DocsUIMiddleware,
                MappingProxyType({"openapi_url": openapi_url, "options": options}),
            )
        )

    def use_https_redirection(
        self, https_port: int | None, status_code: int = 308
    ) -> "PipelineBuilder":
        return self._append(
            Stage(
                StageName.HTTPS_REDIRECTION,
                HTTPSRedirectMiddleware,
                MappingProxyType({"https_port": https_port, "status_code": status_code}),
            )
        )

    def use_route_dispatch(self) -> "PipelineBuilder":
        self._services.require(Capability.ROUTE_DISPATCH)
        return self._append(Stage(StageName.ROUTE_DISPATCH))

    def build(self) -> Pipeline:
        if StageName.ROUTE_DISPATCH not in self._names():
            raise ConfigurationError("Pipeline must end with route_dispatch")
        return Pipeline(stages=tuple(self._stages))


def compose_pipeline(settings: Settings, services: ServiceContainer) -> Pipeline:
    """Build the host's pipeline for the configured environment."""
    builder = PipelineBuilder(services)

    if settings.is_development:
        builder.use_api_description()
        builder.use_docs_ui()

    builder.use_https_redirection(settings.https_port, settings.https_redirect_status)
    builder.use_route_dispatch()
    pipeline = builder.build()

    logger.info(
        "pipeline_composed",
        env=settings.fintrack_env.value,
        stages=list(pipeline.names),
    )
    return pipeline
