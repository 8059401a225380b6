"""Error taxonomy for the booking engine and the JSON error envelope.

Every error reaching a client has the shape::

    {"success": false, "message": "...", "error": "<KIND>"}
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from hotelbook.config import settings

logger = logging.getLogger(__name__)


class BookingEngineError(Exception):
    """Base class for expected, client-visible failures."""

    kind: str = "INTERNAL_SERVER_ERROR"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequestError(BookingEngineError):
    kind = "BAD_REQUEST"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request"


class NotFoundError(BookingEngineError):
    kind = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class PaymentNotFoundError(NotFoundError):
    kind = "PAYMENT_NOT_FOUND"
    default_message = "Payment not found"


class RoomAlreadyReservedError(BookingEngineError):
    kind = "ROOM_ALREADY_RESERVED"
    status_code = 422
    default_message = "Room is already reserved for the selected dates"


class DuplicateBookingError(BookingEngineError):
    kind = "DUPLICATE_BOOKING"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Duplicate booking detected"


class InvalidBookingStatusError(BookingEngineError):
    kind = "INVALID_BOOKING_STATUS"
    status_code = 422
    default_message = "Operation not allowed for the booking's current status"


class InvalidStatusTransitionError(BookingEngineError):
    kind = "INVALID_STATUS_TRANSITION"
    status_code = 422
    default_message = "Invalid status transition"


class InvalidOperationError(BookingEngineError):
    kind = "INVALID_OPERATION"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Operation not permitted"


class PaymentMismatchError(BookingEngineError):
    kind = "PAYMENT_MISMATCH"
    status_code = 422
    default_message = "Payment amount mismatch"


class InvalidSignatureError(BookingEngineError):
    kind = "INVALID_SIGNATURE"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid callback signature"


class UnauthorizedError(BookingEngineError):
    kind = "UNAUTHORIZED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Could not validate credentials"


class ForbiddenError(BookingEngineError):
    kind = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


_KIND_BY_STATUS = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    status.HTTP_409_CONFLICT: "CONFLICT",
    status.HTTP_429_TOO_MANY_REQUESTS: "RATE_LIMITED",
}


def error_response(status_code: int, kind: str, message: str, headers: dict | None = None) -> JSONResponse:
    """Build the standard error envelope."""
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "error": kind},
        headers=headers,
    )


async def _engine_error_handler(request: Request, exc: BookingEngineError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    return error_response(exc.status_code, exc.kind, exc.message, headers)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    detail = first.get("msg", "Invalid request")
    message = f"{location}: {detail}" if location else detail
    return error_response(status.HTTP_400_BAD_REQUEST, "BAD_REQUEST", message)


async def _http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    kind = _KIND_BY_STATUS.get(exc.status_code, "ERROR")
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return error_response(exc.status_code, kind, message, getattr(exc, "headers", None))


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = "Internal server error"
    if settings.debug:
        message = f"{message}: {exc}"
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_SERVER_ERROR", message)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the envelope-producing handlers on the application."""
    app.add_exception_handler(BookingEngineError, _engine_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)
