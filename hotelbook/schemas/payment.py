"""Pydantic v2 request/response schemas for payment endpoints."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class PaymentInitiate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    booking_id: str | None = Field(None, alias="bookingId")
    provider: str | None = None


class PaymentCallback(BaseModel):
    """Provider webhook body. Unknown keys are ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: str | None = None
    provider_reference: str | None = None
    booking_id: str | None = Field(None, alias="bookingId")
    transaction_id: str | None = None
    amount: Decimal | None = None
    error_message: str | None = None


class PaymentUpdate(BaseModel):
    """Administrative override. All fields optional."""

    status: str | None = Field(None, pattern="^(pending|success|failed|cancelled)$")
    provider: str | None = None
    provider_reference: str | None = Field(None, max_length=255)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class PaymentRecord(BaseModel):
    id: uuid.UUID
    booking_id: uuid.UUID
    amount: float
    provider: str
    provider_reference: str | None = None
    transaction_id: str | None = None
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PayerSummary(BaseModel):
    name: str
    phone: str


class InitiatedBooking(BaseModel):
    id: uuid.UUID
    user: PayerSummary
    hotel: str
    room: str
    total_amount: float


class PaymentInstructions(BaseModel):
    provider: str
    reference: str
    amount: float
    callback_url: str
    payment_url: str


class PaymentInitiatedData(BaseModel):
    payment: PaymentRecord
    booking: InitiatedBooking
    payment_instructions: PaymentInstructions


class CallbackPayment(BaseModel):
    id: uuid.UUID
    status: str
    amount: float | None = None
    provider: str | None = None
    transaction_id: str | None = None
    error: str | None = None


class CallbackBooking(BaseModel):
    id: uuid.UUID
    status: str
    confirmation_number: str | None = None


class Receipt(BaseModel):
    guest_name: str
    guest_phone: str
    hotel: str
    room: str
    checkin: date
    checkout: date
    nights: int
    amount_paid: float
    payment_method: str


class PaymentCallbackData(BaseModel):
    payment: CallbackPayment
    booking: CallbackBooking
    receipt: Receipt | None = None
    room_released: bool | None = None
    already_processed: bool = False


class PaymentLogEntry(BaseModel):
    action: str
    details: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentBookingSummary(BaseModel):
    id: uuid.UUID
    status: str
    user: str
    hotel: str
    room: str


class PaymentDetailData(BaseModel):
    payment: PaymentRecord
    booking: PaymentBookingSummary
    logs: list[PaymentLogEntry]


class BookingStatusSummary(BaseModel):
    id: uuid.UUID
    status: str


class PaymentUpdatedData(BaseModel):
    payment: PaymentRecord
    booking: BookingStatusSummary
    changes: dict[str, str]


class PaymentDeletedData(BaseModel):
    payment_id: uuid.UUID
    booking: BookingStatusSummary
    room_released: bool
