"""Pydantic v2 request/response schemas for booking endpoints."""

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class BookingCreate(BaseModel):
    """Guest booking request.

    Fields are optional strings on purpose: presence, blank values and date
    formats are checked by the orchestrator so each failure gets its own
    ``BAD_REQUEST`` message.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_name: str | None = Field(None, alias="userName")
    phone: str | None = None
    hotel_id: str | None = Field(None, alias="hotelId")
    room_id: str | None = Field(None, alias="roomId")
    check_in: str | None = Field(None, alias="checkIn")
    check_out: str | None = Field(None, alias="checkOut")


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class GuestSummary(BaseModel):
    name: str
    phone: str


class HotelSummary(BaseModel):
    id: uuid.UUID
    name: str
    location: str

    model_config = ConfigDict(from_attributes=True)


class RoomSummary(BaseModel):
    id: uuid.UUID
    room_number: str
    room_type: str
    price_per_night: float

    model_config = ConfigDict(from_attributes=True)


class CreatedBooking(BaseModel):
    id: uuid.UUID
    user: GuestSummary
    hotel: HotelSummary
    room: RoomSummary
    checkin_date: date
    checkout_date: date
    nights: int
    total_amount: float
    status: str
    created_at: datetime


class PaymentBrief(BaseModel):
    id: uuid.UUID
    amount: float
    provider: str
    status: str

    model_config = ConfigDict(from_attributes=True)


class NextStep(BaseModel):
    """Tells the client which call completes the reservation."""

    action: str
    endpoint: str
    required_data: dict[str, str]


class BookingCreatedData(BaseModel):
    booking: CreatedBooking
    payment: PaymentBrief
    next_step: NextStep


class BookingUser(BaseModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    phone: str
    email: str

    model_config = ConfigDict(from_attributes=True)


class BookingPayment(BaseModel):
    id: uuid.UUID
    amount: float
    provider: str
    provider_reference: str | None = None
    transaction_id: str | None = None
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingDetailResponse(BaseModel):
    """A booking with its guest, hotel, room and payment attempts."""

    id: uuid.UUID
    status: str
    checkin_date: date
    checkout_date: date
    nights: int
    total_amount: float
    confirmation_number: str
    created_at: datetime
    updated_at: datetime
    user: BookingUser
    hotel: HotelSummary
    room: RoomSummary
    payments: list[BookingPayment] = []

    model_config = ConfigDict(from_attributes=True)
