"""Service registry for the API host.

Registration calls declare which capabilities the process needs; ``build()``
validates them and returns an immutable ``ServiceContainer`` that pipeline
construction reads from. Every configuration problem surfaces here, at
startup, as a ``ConfigurationError``.

Capability dependencies:
- API_DESCRIPTION requires ROUTE_DISPATCH (it describes the route table)
- DOCS_UI requires API_DESCRIPTION (the UI renders that description)
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from fastapi import APIRouter

from fintrack.errors import ConfigurationError
from fintrack.logging import get_logger
from fintrack.routing import RouteTable

logger = get_logger(__name__)


class Capability(str, Enum):
    """Capabilities a process can register."""

    ROUTE_DISPATCH = "route_dispatch"
    API_DESCRIPTION = "api_description"
    DOCS_UI = "docs_ui"


CAPABILITY_REQUIRES: dict[Capability, Capability] = {
    Capability.API_DESCRIPTION: Capability.ROUTE_DISPATCH,
    Capability.DOCS_UI: Capability.API_DESCRIPTION,
}


@dataclass(frozen=True)
class ApiDescriptionOptions:
    """Metadata for the generated API description."""

    title: str = "FinTrack API"
    version: str = "v1"
    document: str = "v1"
    description: str | None = None


@dataclass(frozen=True)
class DocsUIOptions:
    """Options for the documentation UI page."""

    title: str = "FinTrack API - Swagger UI"


@dataclass(frozen=True)
class ServiceContainer:
    """Immutable result of service registration.

    Shared by reference across all requests; nothing here changes after startup.
    """

    route_table: RouteTable
    options: Mapping[Capability, Any] = field(default_factory=dict)

    def has(self, capability: Capability) -> bool:
        return capability in self.options

    def require(self, capability: Capability) -> Any:
        """Return a capability's options, or fail if it was never registered."""
        if capability not in self.options:
            raise ConfigurationError(
                f"Capability '{capability.value}' is not registered with the service registry"
            )
        return self.options[capability]

    @property
    def api_description(self) -> ApiDescriptionOptions:
        return self.require(Capability.API_DESCRIPTION)

    @property
    def docs_ui(self) -> DocsUIOptions:
        return self.require(Capability.DOCS_UI)


class ServiceRegistry:
    """Collects capability registrations before the host starts."""

    def __init__(self) -> None:
        self._options: dict[Capability, Any] = {}
        self._built = False

    def _register(self, capability: Capability, options: Any) -> "ServiceRegistry":
        if self._built:
            raise ConfigurationError(
                f"Cannot register '{capability.value}' after the service registry was built"
            )
        if capability in self._options:
            raise ConfigurationError(f"Capability '{capability.value}' is already registered")
        self._options[capability] = options
        return self

    def add_controllers(self, *routers: APIRouter) -> "ServiceRegistry":
        """Register route-dispatch support for the given controller routers."""
        seen: set[int] = set()
        for router in routers:
            if id(router) in seen:
                raise ConfigurationError("The same controller router was registered twice")
            seen.add(id(router))
        return self._register(Capability.ROUTE_DISPATCH, tuple(routers))

    def add_api_description(
        self,
        title: str = "FinTrack API",
        version: str = "v1",
        document: str = "v1",
        description: str | None = None,
    ) -> "ServiceRegistry":
        """Register API-description generation."""
        return self._register(
            Capability.API_DESCRIPTION,
            ApiDescriptionOptions(
                title=title, version=version, document=document, description=description
            ),
        )

    def add_docs_ui(self, title: str | None = None) -> "ServiceRegistry":
        """Register documentation-UI generation."""
        options = DocsUIOptions(title=title) if title else DocsUIOptions()
        return self._register(Capability.DOCS_UI, options)

    def build(self) -> ServiceContainer:
        """Validate registrations and freeze them into a container.

        Raises:
            ConfigurationError: On missing prerequisites or conflicting routes.
        """
        for capability, prerequisite in CAPABILITY_REQUIRES.items():
            if capability in self._options and prerequisite not in self._options:
                raise ConfigurationError(
                    f"Capability '{capability.value}' requires '{prerequisite.value}'"
                )

        routers = self._options.get(Capability.ROUTE_DISPATCH, ())
        route_table = RouteTable.from_routers(routers)

        self._built = True
        container = ServiceContainer(
            route_table=route_table,
            options=MappingProxyType(dict(self._options)),
        )

        logger.info(
            "service_registry_built",
            capabilities=[c.value for c in self._options],
            route_count=len(route_table),
        )
        return container


def default_services(
    controllers: Iterable[APIRouter],
    title: str = "FinTrack API",
    version: str = "v1",
) -> ServiceContainer:
    """Register controllers, API description and docs UI, then build.

    Documentation services are registered in every environment; whether they
    are reachable is decided by the pipeline.
    """
    registry = ServiceRegistry()
    registry.add_controllers(*controllers)
    registry.add_api_description(title=title, version=version)
    registry.add_docs_ui(title=f"{title} - Swagger UI")
    return registry.build()
