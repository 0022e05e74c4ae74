"""Route table built from controller routers.

Controllers are plain FastAPI ``APIRouter`` instances supplied by external
collaborators. The route table flattens them into (method, path pattern)
entries, rejects conflicting bindings, and merges them into the single router
that the route-dispatch stage mounts. Matching itself is left to Starlette.
"""

import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.routing import APIRoute
from starlette.routing import BaseRoute

from fintrack.errors import ConfigurationError
from fintrack.middleware.phase import mark_dispatched

# "{id}" and "{id:int}" both become "{}" so differently named parameters collide
PATH_PARAM_PATTERN = re.compile(r"\{[^}]+\}")


def normalize_path_pattern(path: str) -> str:
    """Erase parameter names from a path template."""
    return PATH_PARAM_PATTERN.sub("{}", path)


def _walk_routes(
    routes: Iterable[BaseRoute], prefix: str = ""
) -> Iterator[tuple[str, APIRoute]]:
    """Yield every APIRoute of a controller with the prefix it is mounted under.

    Older FastAPI releases copy included routers into the parent with the
    prefix already applied. Newer ones keep the included router as a single
    entry whose include context carries the prefix, so those are walked here.
    """
    for route in routes:
        if isinstance(route, APIRoute):
            yield prefix, route
            continue
        included = getattr(route, "original_router", None)
        context = getattr(route, "include_context", None)
        if included is not None and context is not None:
            yield from _walk_routes(included.routes, prefix + context.prefix)


@dataclass(frozen=True)
class RouteEntry:
    """A single (method, path) binding to a controller handler."""

    method: str
    path: str
    name: str
    endpoint: Callable[..., Any]
    include_in_schema: bool = True

    @property
    def key(self) -> tuple[str, str]:
        return (self.method, normalize_path_pattern(self.path))


class RouteTable:
    """Immutable mapping from (method, path pattern) to handler.

    Built once from the registered controllers. Iteration order is
    registration order, which is also the order Starlette tries routes in,
    so a given (method, path) always dispatches to the same handler.
    """

    def __init__(self, entries: Iterable[RouteEntry], router: APIRouter):
        index: dict[tuple[str, str], RouteEntry] = {}
        for entry in entries:
            existing = index.get(entry.key)
            if existing is not None:
                raise ConfigurationError(
                    f"Conflicting route {entry.method} {entry.path}: "
                    f"'{entry.name}' and '{existing.name}' bind the same pattern"
                )
            index[entry.key] = entry

        self._index = MappingProxyType(index)
        self._router = router

    @classmethod
    def from_routers(cls, routers: Iterable[APIRouter]) -> "RouteTable":
        """Merge controller routers into one table.

        Raises:
            ConfigurationError: If two routes bind the same method and path pattern.
        """
        merged = APIRouter(dependencies=[Depends(mark_dispatched)])
        entries: list[RouteEntry] = []
        for router in routers:
            for prefix, route in _walk_routes(router.routes):
                for method in sorted(route.methods):
                    entries.append(
                        RouteEntry(
                            method,
                            prefix + route.path,
                            route.name,
                            route.endpoint,
                            route.include_in_schema,
                        )
                    )
            merged.include_router(router)

        return cls(entries, merged)

    @property
    def router(self) -> APIRouter:
        """The merged router mounted by the route-dispatch stage."""
        return self._router

    def get(self, method: str, path: str) -> RouteEntry | None:
        """Look up the entry bound to a method and path template."""
        return self._index.get((method.upper(), normalize_path_pattern(path)))

    def paths(self) -> set[str]:
        """All registered path templates."""
        return {entry.path for entry in self._index.values()}

    def __iter__(self) -> Iterator[RouteEntry]:
        return iter(self._index.values())

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        method, path = key
        return self.get(method, path) is not None
