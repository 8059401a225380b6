"""Payments API router — initiation, provider callbacks and admin overrides.

The callback endpoint is the trust boundary with the payment providers: it
reads the raw body so the HMAC signature can be checked before anything
is parsed, and it is safe to deliver the same callback more than once.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from hotelbook.api.deps import get_orchestrator, require_admin
from hotelbook.config import settings
from hotelbook.errors import BadRequestError
from hotelbook.models.payment import Payment
from hotelbook.models.user import User
from hotelbook.payments.signatures import SIGNATURE_HEADER, verify_callback_signature
from hotelbook.ratelimit import limiter
from hotelbook.schemas.common import ApiResponse
from hotelbook.schemas.payment import (
    BookingStatusSummary,
    CallbackBooking,
    CallbackPayment,
    InitiatedBooking,
    PayerSummary,
    PaymentBookingSummary,
    PaymentCallback,
    PaymentCallbackData,
    PaymentDeletedData,
    PaymentDetailData,
    PaymentInitiate,
    PaymentInitiatedData,
    PaymentInstructions,
    PaymentLogEntry,
    PaymentRecord,
    PaymentUpdate,
    PaymentUpdatedData,
    Receipt,
)
from hotelbook.services.orchestrator import BookingOrchestrator, CallbackResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _callback_payload(result: CallbackResult) -> PaymentCallbackData:
    payment, booking = result.payment, result.booking
    if result.outcome in ("confirmed", "already_processed"):
        return PaymentCallbackData(
            payment=CallbackPayment(
                id=payment.id,
                status=payment.status,
                amount=payment.amount,
                provider=payment.provider,
                transaction_id=result.transaction_id or payment.provider_reference,
            ),
            booking=CallbackBooking(
                id=booking.id,
                status=booking.status,
                confirmation_number=booking.confirmation_number,
            ),
            receipt=Receipt(
                guest_name=booking.user.full_name,
                guest_phone=booking.user.phone,
                hotel=booking.hotel.name,
                room=booking.room.room_number,
                checkin=booking.checkin_date,
                checkout=booking.checkout_date,
                nights=booking.nights,
                amount_paid=payment.amount,
                payment_method=payment.provider,
            ),
            already_processed=result.already_processed,
        )
    return PaymentCallbackData(
        payment=CallbackPayment(id=payment.id, status=payment.status, error=result.error_message),
        booking=CallbackBooking(id=booking.id, status=booking.status),
        room_released=result.outcome == "failed",
        already_processed=result.already_processed,
    )


_CALLBACK_MESSAGES = {
    "confirmed": "Payment processed successfully. Booking confirmed.",
    "already_processed": "Payment already processed. Booking confirmed.",
    "failed": "Payment failed. Booking cancelled and room released.",
    "ignored": "Payment already settled. Callback ignored.",
}


def _detail_payload(payment: Payment) -> PaymentDetailData:
    booking = payment.booking
    return PaymentDetailData(
        payment=PaymentRecord.model_validate(payment),
        booking=PaymentBookingSummary(
            id=booking.id,
            status=booking.status,
            user=booking.user.full_name,
            hotel=booking.hotel.name,
            room=booking.room.room_number,
        ),
        logs=[PaymentLogEntry.model_validate(entry) for entry in payment.logs],
    )


# ---------------------------------------------------------------------------
# POST /initiate
# ---------------------------------------------------------------------------


@router.post("/initiate", response_model=ApiResponse[PaymentInitiatedData])
async def initiate_payment(
    body: PaymentInitiate,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Choose a provider for a pending booking and get checkout instructions."""
    result = await orchestrator.initiate_payment(booking_id=body.booking_id, provider=body.provider)
    payment, booking = result.payment, result.booking
    return {
        "success": True,
        "message": "Payment initiated successfully",
        "data": PaymentInitiatedData(
            payment=PaymentRecord.model_validate(payment),
            booking=InitiatedBooking(
                id=booking.id,
                user=PayerSummary(name=booking.user.full_name, phone=booking.user.phone),
                hotel=booking.hotel.name,
                room=booking.room.room_number,
                total_amount=booking.total_amount,
            ),
            payment_instructions=PaymentInstructions(
                provider=payment.provider,
                reference=payment.provider_reference,
                amount=payment.amount,
                callback_url=result.callback_url,
                payment_url=result.payment_url,
            ),
        ),
    }


# ---------------------------------------------------------------------------
# POST /callback
# ---------------------------------------------------------------------------


@router.post(
    "/callback",
    response_model=ApiResponse[PaymentCallbackData],
    response_model_exclude_none=True,
)
@limiter.limit(settings.rate_limit_callback)
async def payment_callback(
    request: Request,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Receive a provider's payment result.

    When ``PAYMENT_WEBHOOK_SECRET`` is configured the request must carry an
    ``X-Payment-Signature: sha256=<hex>`` HMAC of the raw body.
    """
    raw_body = await request.body()
    verify_callback_signature(raw_body, request.headers.get(SIGNATURE_HEADER))

    try:
        body = PaymentCallback.model_validate_json(raw_body or b"{}")
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        raise BadRequestError(f"Invalid callback payload: {first.get('msg', 'malformed body')}") from None

    result = await orchestrator.handle_payment_callback(
        status=body.status,
        provider_reference=body.provider_reference,
        booking_id=body.booking_id,
        transaction_id=body.transaction_id,
        amount=body.amount,
        error_message=body.error_message,
    )
    return {
        "success": True,
        "message": _CALLBACK_MESSAGES[result.outcome],
        "data": _callback_payload(result),
    }


# ---------------------------------------------------------------------------
# GET /{payment_id}
# ---------------------------------------------------------------------------


@router.get("/{payment_id}", response_model=ApiResponse[PaymentDetailData])
async def get_payment(
    payment_id: uuid.UUID,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Payment status with its booking summary and audit log."""
    payment = await orchestrator.get_payment(payment_id)
    return {"success": True, "data": _detail_payload(payment)}


# ---------------------------------------------------------------------------
# PUT /{payment_id}  (admin)
# ---------------------------------------------------------------------------


@router.put("/{payment_id}", response_model=ApiResponse[PaymentUpdatedData])
async def update_payment(
    payment_id: uuid.UUID,
    body: PaymentUpdate,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
    admin: User = Depends(require_admin),
) -> dict:
    """Override a payment's status, provider or reference."""
    result = await orchestrator.update_payment(
        payment_id,
        status=body.status,
        provider=body.provider,
        provider_reference=body.provider_reference,
        actor_id=admin.id,
    )
    return {
        "success": True,
        "message": "Payment updated successfully",
        "data": PaymentUpdatedData(
            payment=PaymentRecord.model_validate(result.payment),
            booking=BookingStatusSummary(id=result.booking.id, status=result.booking.status),
            changes=result.changes,
        ),
    }


# ---------------------------------------------------------------------------
# DELETE /{payment_id}  (admin)
# ---------------------------------------------------------------------------


@router.delete("/{payment_id}", response_model=ApiResponse[PaymentDeletedData])
async def delete_payment(
    payment_id: uuid.UUID,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
    admin: User = Depends(require_admin),
) -> dict:
    """Delete a payment that has not succeeded; its booking is cancelled."""
    result = await orchestrator.delete_payment(payment_id)
    logger.info("Admin %s deleted payment %s", admin.id, payment_id)
    return {
        "success": True,
        "message": "Payment deleted successfully",
        "data": PaymentDeletedData(
            payment_id=result.payment_id,
            booking=BookingStatusSummary(id=result.booking.id, status=result.booking.status),
            room_released=result.room_released,
        ),
    }
