"""Shared API dependencies — single import point for all routers.

Re-exports database session and authentication dependencies and exposes the
process-wide orchestrator built in the application lifespan::

    from hotelbook.api.deps import get_orchestrator, require_admin
"""

from fastapi import Request

from hotelbook.auth.dependencies import get_current_user, require_admin
from hotelbook.database import get_db
from hotelbook.services import BookingOrchestrator, ExpirySweeper


def get_orchestrator(request: Request) -> BookingOrchestrator:
    """Return the orchestrator stored on ``app.state`` at startup."""
    return request.app.state.orchestrator


def get_sweeper(request: Request) -> ExpirySweeper:
    return request.app.state.sweeper


__all__ = [
    "get_db",
    "get_current_user",
    "require_admin",
    "get_orchestrator",
    "get_sweeper",
]
