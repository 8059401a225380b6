"""Rate limiting for the public booking and callback endpoints (slowapi)."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from hotelbook.config import settings
from hotelbook.errors import error_response

logger = logging.getLogger(__name__)

# In-process fixed windows, keyed by client address. Counters live as long
# as the process and are dropped when it restarts.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit_default],
    storage_uri="memory://",
    strategy="fixed-window",
    enabled=settings.rate_limit_enabled,
)


async def _rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit exceeded for %s on %s", get_remote_address(request), request.url.path)
    return error_response(
        status.HTTP_429_TOO_MANY_REQUESTS,
        "RATE_LIMITED",
        f"Too many requests: {exc.detail}",
    )


def setup_rate_limiting(app: FastAPI) -> Limiter:
    """Attach the limiter to the app and install the 429 envelope handler."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]
    return limiter
