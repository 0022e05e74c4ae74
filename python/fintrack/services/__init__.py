"""Host services: capability registration and the immutable service container."""

from fintrack.services.registry import (
    Capability,
    ServiceContainer,
    ServiceRegistry,
    default_services,
)

__all__ = ["Capability", "ServiceContainer", "ServiceRegistry", "default_services"]
