"""Hotelbook booking engine — FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hotelbook.api.deps import get_sweeper
from hotelbook.api.v1.auth import router as auth_router
from hotelbook.api.v1.bookings import router as bookings_router
from hotelbook.api.v1.payments import router as payments_router
from hotelbook.config import settings
from hotelbook.database import async_session_factory, engine
from hotelbook.errors import register_exception_handlers
from hotelbook.ratelimit import setup_rate_limiting
from hotelbook.services import ExpirySweeper, build_orchestrator

# Configure root logger so all hotelbook.* loggers output to stderr.
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the orchestrator once, run the expiry sweeper, dispose the engine on exit."""
    orchestrator, sweeper = build_orchestrator(async_session_factory, settings)
    app.state.orchestrator = orchestrator
    app.state.sweeper = sweeper
    if settings.sweeper_enabled:
        sweeper.start(settings.sweeper_interval_seconds)
    else:
        logger.info("Expiry sweeper disabled by configuration")

    yield

    sweeper.stop()
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Hotel booking backend: room holds, payment initiation, provider callbacks and hold expiry.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
setup_rate_limiting(app)

# Routers
app.include_router(auth_router)
app.include_router(bookings_router)
app.include_router(payments_router)


@app.get("/health", tags=["health"])
async def health_check(sweeper: ExpirySweeper = Depends(get_sweeper)) -> dict:
    """Health check endpoint, including the expiry sweeper's last run."""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "environment": settings.environment,
        "sweeper": sweeper.status(),
    }


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
