"""Bookings API router — guest booking creation, lookup and cancellation.

Guests book without an account: the orchestrator identifies them by phone
number. Creation holds the room until the payment callback confirms the
booking or the expiry sweeper releases it.
"""

import uuid

from fastapi import APIRouter, Depends, Request, status

from hotelbook.api.deps import get_orchestrator
from hotelbook.config import settings
from hotelbook.ratelimit import limiter
from hotelbook.schemas.booking import (
    BookingCreate,
    BookingCreatedData,
    BookingDetailResponse,
    CreatedBooking,
    GuestSummary,
    HotelSummary,
    NextStep,
    PaymentBrief,
    RoomSummary,
)
from hotelbook.schemas.common import ApiResponse
from hotelbook.services.orchestrator import SUPPORTED_PROVIDERS_TEXT, BookingCreated, BookingOrchestrator

router = APIRouter(prefix="/api/v1/bookings", tags=["bookings"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _created_payload(result: BookingCreated, user_name: str) -> BookingCreatedData:
    booking = result.booking
    return BookingCreatedData(
        booking=CreatedBooking(
            id=booking.id,
            user=GuestSummary(name=user_name, phone=result.guest.phone),
            hotel=HotelSummary.model_validate(result.hotel),
            room=RoomSummary.model_validate(result.room),
            checkin_date=booking.checkin_date,
            checkout_date=booking.checkout_date,
            nights=booking.nights,
            total_amount=booking.total_amount,
            status=booking.status,
            created_at=booking.created_at,
        ),
        payment=PaymentBrief.model_validate(result.payment),
        next_step=NextStep(
            action="initiate_payment",
            endpoint="/api/v1/payments/initiate",
            required_data={"bookingId": str(booking.id), "provider": SUPPORTED_PROVIDERS_TEXT},
        ),
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=ApiResponse[BookingCreatedData],
    status_code=status.HTTP_201_CREATED,
    summary="Create a booking and hold the room",
)
@limiter.limit(settings.rate_limit_default)
async def create_booking(
    request: Request,
    body: BookingCreate,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Create a ``pending_payment`` booking for a guest.

    The room is marked occupied until the booking is paid, cancelled or
    expires. The response tells the client to call payment initiation next.
    """
    result = await orchestrator.create_booking(
        user_name=body.user_name,
        phone=body.phone,
        hotel_id=body.hotel_id,
        room_id=body.room_id,
        check_in=body.check_in,
        check_out=body.check_out,
    )
    return {
        "success": True,
        "message": "Booking created successfully. Room is temporarily locked pending payment.",
        "data": _created_payload(result, body.user_name.strip()),
    }


@router.get(
    "/{booking_id}",
    response_model=ApiResponse[BookingDetailResponse],
    summary="Get a booking with guest, hotel, room and payments",
)
async def get_booking(
    booking_id: uuid.UUID,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> dict:
    booking = await orchestrator.get_booking(booking_id)
    return {"success": True, "data": BookingDetailResponse.model_validate(booking)}


@router.post(
    "/{booking_id}/cancel",
    response_model=ApiResponse[BookingDetailResponse],
    summary="Cancel an unpaid booking",
)
async def cancel_booking(
    booking_id: uuid.UUID,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Cancel a booking that is still awaiting payment and release its room.

    Confirmed (paid) bookings cannot be cancelled here.
    """
    booking = await orchestrator.cancel_booking(booking_id)
    return {
        "success": True,
        "message": "Booking cancelled and room released.",
        "data": BookingDetailResponse.model_validate(booking),
    }
