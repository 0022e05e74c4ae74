"""Test helper functions."""

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

from fintrack.config import Settings


def make_settings(**overrides) -> Settings:
    """Build a Settings instance with test defaults + overrides."""
    defaults = {
        "FINTRACK_ENV": "development",
        "HTTP_HOST": "127.0.0.1",
        "HTTP_PORT": 5000,
        "HTTPS_PORT": None,
        "SSL_CERTFILE": None,
        "SSL_KEYFILE": None,
        "LOG_JSON": True,
    }
    defaults.update(overrides)
    return Settings(**defaults)


def health_router() -> APIRouter:
    """A fresh controller exposing GET /health -> 200 "ok"."""
    router = APIRouter()

    @router.get("/health", response_class=PlainTextResponse)
    async def health() -> str:
        return "ok"

    return router


def items_router() -> APIRouter:
    """A controller with path and query parameters."""
    router = APIRouter(prefix="/items")

    @router.get("/{item_id}")
    async def get_item(item_id: int, q: str | None = None) -> dict:
        return {"item_id": item_id, "q": q}

    @router.delete("/{item_id}", status_code=204)
    async def delete_item(item_id: int) -> None:
        return None

    return router


def probe_router() -> APIRouter:
    """A controller that reports the pipeline phase and can fail on demand."""
    router = APIRouter()

    @router.get("/probe/phase")
    async def phase(request: Request) -> dict:
        return {"phase": request.state.pipeline_phase}

    @router.get("/probe/crash")
    async def crash() -> dict:
        raise RuntimeError("SECRET_INTERNAL_DETAIL")

    return router
