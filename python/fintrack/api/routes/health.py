"""Health check endpoints."""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter()


@router.get("/health", response_class=PlainTextResponse)
async def health_check() -> str:
    """Liveness check endpoint.

    Returns 200 with body "ok" if the process is running.
    Does not check any downstream dependencies.
    """
    return "ok"
