"""Per-request pipeline phase tracking.

Each request moves strictly forward through:

    pending -> short_circuited -> completed
    pending -> dispatched      -> completed

The phase lives in the ASGI scope's ``state`` dict, which Starlette exposes
as ``request.state``. Stages that answer a request themselves mark it
short-circuited; the route-dispatch stage marks it dispatched.
"""

from enum import Enum

from fastapi import Request
from starlette.types import Scope

PHASE_STATE_KEY = "pipeline_phase"


class RequestPhase(str, Enum):
    PENDING = "pending"
    SHORT_CIRCUITED = "short_circuited"
    DISPATCHED = "dispatched"
    COMPLETED = "completed"


_RANK = {
    RequestPhase.PENDING: 0,
    RequestPhase.SHORT_CIRCUITED: 1,
    RequestPhase.DISPATCHED: 1,
    RequestPhase.COMPLETED: 2,
}


def get_phase(scope: Scope) -> RequestPhase:
    """Return the current phase of the request in ``scope``."""
    state = scope.get("state") or {}
    return state.get(PHASE_STATE_KEY, RequestPhase.PENDING)


def advance_phase(scope: Scope, phase: RequestPhase) -> None:
    """Move the request to ``phase``.

    Raises:
        ValueError: If the move is not strictly forward.
    """
    current = get_phase(scope)
    if _RANK[phase] <= _RANK[current]:
        raise ValueError(f"Illegal request phase transition {current.value} -> {phase.value}")
    scope.setdefault("state", {})[PHASE_STATE_KEY] = phase


def mark_short_circuited(scope: Scope) -> None:
    advance_phase(scope, RequestPhase.SHORT_CIRCUITED)


async def mark_dispatched(request: Request) -> None:
    """Router-level dependency run when a route matched."""
    advance_phase(request.scope, RequestPhase.DISPATCHED)
