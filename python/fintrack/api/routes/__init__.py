"""Controller routers shipped with the host.

Business controllers are supplied by other packages and passed to
create_app(); the host itself only contributes the liveness check.
"""

from fastapi import APIRouter

from fintrack.api.routes.health import router as health_router


def default_controllers() -> list[APIRouter]:
    """Return the controllers registered when none are supplied."""
    return [health_router]


__all__ = ["default_controllers"]
