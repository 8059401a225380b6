"""Booking orchestrator — the transactional workflows of the booking engine.

Every public coroutine opens exactly one session and one transaction::

    async with self._session_factory() as db, db.begin():
        ...

so a raised error rolls back everything written so far and a normal exit
commits. Rows are locked in a fixed order (room, then booking, then
payment) to keep concurrent workflows and the expiry sweeper from
deadlocking each other.
"""

import logging
import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hotelbook.config import Settings
from hotelbook.database import utcnow
from hotelbook.errors import (
    BadRequestError,
    DuplicateBookingError,
    InvalidBookingStatusError,
    InvalidStatusTransitionError,
    NotFoundError,
    PaymentMismatchError,
    PaymentNotFoundError,
    RoomAlreadyReservedError,
)
from hotelbook.ledgers.bookings import BookingLedger, compute_nights
from hotelbook.ledgers.guests import GuestDirectory
from hotelbook.ledgers.inventory import InventoryStore
from hotelbook.ledgers.payments import PaymentLedger, check_transition
from hotelbook.models.booking import Booking
from hotelbook.models.enums import (
    ACTIVE_BOOKING_STATUSES,
    BookingStatus,
    PaymentLogAction,
    PaymentProvider,
    PaymentStatus,
    RoomStatus,
)
from hotelbook.models.hotel import Hotel, Room
from hotelbook.models.payment import Payment
from hotelbook.models.user import User
from hotelbook.payments.providers import (
    VALID_PROVIDER_NAMES,
    build_payment_url,
    generate_provider_reference,
    get_provider,
)

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")
_PHONE_SEPARATORS = re.compile(r"[\s\-()]")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_CENT = Decimal("0.01")

SUPPORTED_PROVIDERS_TEXT = "|".join(p.value for p in PaymentProvider)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class BookingCreated:
    booking: Booking
    payment: Payment
    guest: User
    hotel: Hotel
    room: Room


@dataclass
class PaymentInitiated:
    payment: Payment
    booking: Booking
    payment_url: str
    callback_url: str


@dataclass
class CallbackResult:
    """Outcome of a provider callback.

    ``outcome`` is one of ``confirmed``, ``failed``, ``already_processed``
    (success replayed) or ``ignored`` (late failure for a settled payment).
    """

    outcome: str
    payment: Payment
    booking: Booking
    transaction_id: str | None = None
    error_message: str | None = None

    @property
    def already_processed(self) -> bool:
        return self.outcome in ("already_processed", "ignored")


@dataclass
class PaymentUpdated:
    payment: Payment
    booking: Booking
    changes: dict[str, str]


@dataclass
class PaymentDeleted:
    payment_id: uuid.UUID
    booking: Booking
    room_released: bool


# ---------------------------------------------------------------------------
# Input helpers
# ---------------------------------------------------------------------------


def _clean(value: str | None) -> str:
    return value.strip() if isinstance(value, str) else ""


def normalize_phone(phone: str) -> str:
    """Drop spaces, dashes and parentheses: ``+251 (91) 123-4567`` -> ``+251911234567``."""
    return _PHONE_SEPARATORS.sub("", phone)


def parse_iso_date(value: str, field: str) -> date:
    """Parse a strict ``YYYY-MM-DD`` date, raising ``BadRequestError`` otherwise."""
    if not _ISO_DATE.match(value):
        raise BadRequestError(f"{field} must be a date in YYYY-MM-DD format")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise BadRequestError(f"{field} is not a valid calendar date") from None


def parse_uuid(value: str | uuid.UUID, field: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(value)
    except (TypeError, ValueError):
        raise BadRequestError(f"{field} must be a valid UUID") from None


def to_amount(value: Decimal | float | int | str) -> Decimal:
    try:
        return Decimal(str(value)).quantize(_CENT)
    except (InvalidOperation, ValueError):
        raise BadRequestError("amount must be a number") from None


@dataclass(frozen=True)
class _StayRequest:
    user_name: str
    phone: str
    hotel_id: uuid.UUID
    room_id: uuid.UUID
    checkin: date
    checkout: date


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class BookingOrchestrator:
    """Coordinates inventory, bookings and payments inside one transaction per call."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        inventory: InventoryStore,
        bookings: BookingLedger,
        payments: PaymentLedger,
        guests: GuestDirectory,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self.inventory = inventory
        self.bookings = bookings
        self.payments = payments
        self.guests = guests
        self.settings = settings
        self._clock = clock

    # -- booking creation ----------------------------------------------------

    def _validate_stay(
        self,
        user_name: str | None,
        phone: str | None,
        hotel_id: str | None,
        room_id: str | None,
        check_in: str | None,
        check_out: str | None,
    ) -> _StayRequest:
        fields = {
            "userName": _clean(user_name),
            "phone": _clean(phone),
            "hotelId": _clean(hotel_id),
            "roomId": _clean(room_id),
            "checkIn": _clean(check_in),
            "checkOut": _clean(check_out),
        }
        if not all(fields.values()):
            raise BadRequestError(
                "All fields are required and cannot be empty: userName, phone, hotelId, roomId, checkIn, checkOut"
            )

        normalized_phone = normalize_phone(fields["phone"])
        if not PHONE_PATTERN.match(normalized_phone):
            raise BadRequestError("phone must be a valid international phone number")

        checkin = parse_iso_date(fields["checkIn"], "checkIn")
        checkout = parse_iso_date(fields["checkOut"], "checkOut")
        if checkin >= checkout:
            raise BadRequestError("checkOut must be after checkIn")

        if compute_nights(checkin, checkout) > self.settings.max_booking_nights:
            raise BadRequestError(f"Bookings are limited to {self.settings.max_booking_nights} nights")

        today = self._clock().date()
        if checkin < today:
            raise BadRequestError("checkIn cannot be in the past")
        if checkin > today + timedelta(days=self.settings.max_advance_booking_days):
            raise BadRequestError(
                f"checkIn cannot be more than {self.settings.max_advance_booking_days} days in advance"
            )

        return _StayRequest(
            user_name=fields["userName"],
            phone=normalized_phone,
            hotel_id=parse_uuid(fields["hotelId"], "hotelId"),
            room_id=parse_uuid(fields["roomId"], "roomId"),
            checkin=checkin,
            checkout=checkout,
        )

    async def create_booking(
        self,
        *,
        user_name: str | None,
        phone: str | None,
        hotel_id: str | None,
        room_id: str | None,
        check_in: str | None,
        check_out: str | None,
    ) -> BookingCreated:
        """Hold a room for a guest: booking ``pending_payment``, payment ``pending``, room ``occupied``."""
        stay = self._validate_stay(user_name, phone, hotel_id, room_id, check_in, check_out)

        async with self._session_factory() as db, db.begin():
            hotel = await self.inventory.find_active_hotel(db, stay.hotel_id)
            if hotel is None:
                raise NotFoundError("Hotel not found or not active")

            room = await self.inventory.lock_room(db, stay.room_id, stay.hotel_id)
            if room is None:
                raise NotFoundError("Room not found in this hotel")

            guest = await self.guests.find_by_phone(db, stay.phone)
            conflict = await self.bookings.find_overlapping(
                db, room.id, stay.checkin, stay.checkout, ACTIVE_BOOKING_STATUSES
            )
            if conflict is not None:
                if guest is not None:
                    duplicate = await self.bookings.find_duplicate(
                        db,
                        guest.id,
                        hotel.id,
                        room.id,
                        stay.checkin,
                        stay.checkout,
                        ACTIVE_BOOKING_STATUSES,
                    )
                    if duplicate is not None:
                        raise DuplicateBookingError(
                            f"A booking for these dates already exists (booking {duplicate.id})"
                        )
                raise RoomAlreadyReservedError()

            if await self.inventory.find_available_room(db, room.id, hotel.id) is None:
                raise NotFoundError("Room not found or not available")

            if guest is None:
                guest = await self.guests.get_or_create(db, stay.user_name, stay.phone)

            booking = await self.bookings.create(
                db,
                user_id=guest.id,
                hotel_id=hotel.id,
                room_id=room.id,
                checkin=stay.checkin,
                checkout=stay.checkout,
                price_per_night=room.price_per_night,
            )
            payment = await self.payments.create(db, booking_id=booking.id, amount=booking.total_amount)
            await self.payments.append_log(
                db,
                payment,
                PaymentLogAction.BOOKING_CREATED,
                f"Booking created for {stay.user_name} ({stay.phone})",
            )
            await self.inventory.set_room_status(db, room.id, RoomStatus.OCCUPIED)

        logger.info(
            "Booking %s created: room %s, %s -> %s, %s nights, total %s",
            booking.id,
            room.id,
            stay.checkin,
            stay.checkout,
            booking.nights,
            booking.total_amount,
        )
        return BookingCreated(booking=booking, payment=payment, guest=guest, hotel=hotel, room=room)

    # -- payment initiation --------------------------------------------------

    async def initiate_payment(self, *, booking_id: str | None, provider: str | None) -> PaymentInitiated:
        """Record the guest's provider choice and issue a fresh provider reference."""
        booking_id_text = _clean(booking_id)
        provider = _clean(provider).lower()
        if not booking_id_text or not provider:
            raise BadRequestError("bookingId and provider are required")
        if get_provider(provider) is None:
            raise BadRequestError(
                f"Invalid payment provider. Supported: {', '.join(p.value for p in PaymentProvider)}"
            )
        booking_uuid = parse_uuid(booking_id_text, "bookingId")

        async with self._session_factory() as db, db.begin():
            booking = await self.bookings.get(db, booking_uuid, lock=True)
            if booking is None:
                raise NotFoundError("Booking not found")
            if booking.status != BookingStatus.PENDING_PAYMENT:
                raise InvalidBookingStatusError(f"Cannot initiate payment for booking with status: {booking.status}")

            reference = generate_provider_reference(provider)
            payment = await self.payments.find_by_booking(db, booking.id, lock=True)
            if payment is None:
                payment = await self.payments.create(
                    db,
                    booking_id=booking.id,
                    amount=booking.total_amount,
                    provider=provider,
                    provider_reference=reference,
                )
            else:
                if payment.status != PaymentStatus.PENDING:
                    check_transition(payment.status, PaymentStatus.PENDING)
                    payment.status = PaymentStatus.PENDING
                payment.provider = provider
                payment.provider_reference = reference
                await self.payments.save(db, payment)

            await self.payments.append_log(
                db,
                payment,
                PaymentLogAction.PAYMENT_INITIATED,
                f"Payment initiated with {provider}, reference {reference}",
            )

        logger.info("Payment %s initiated for booking %s via %s", payment.id, booking.id, provider)
        return PaymentInitiated(
            payment=payment,
            booking=booking,
            payment_url=build_payment_url(provider, reference, payment.amount),
            callback_url=self.settings.payment_callback_url,
        )

    # -- provider callbacks --------------------------------------------------

    async def handle_payment_callback(
        self,
        *,
        status: str | None,
        provider_reference: str | None = None,
        booking_id: str | None = None,
        transaction_id: str | None = None,
        amount: Decimal | float | str | None = None,
        error_message: str | None = None,
    ) -> CallbackResult:
        """Apply a provider's verdict on a payment.

        Replays are answered without side effects: a repeated success reports
        ``already_processed`` and a failure arriving after the payment settled
        is ignored.
        """
        reported = _clean(status).lower()
        reference = _clean(provider_reference)
        booking_id_text = _clean(booking_id)
        if not reported:
            raise BadRequestError("status is required")
        if not reference and not booking_id_text:
            raise BadRequestError("provider_reference or bookingId is required")
        reported_amount = to_amount(amount) if amount is not None else None
        succeeded = reported == PaymentStatus.SUCCESS

        mismatch: str | None = None
        async with self._session_factory() as db, db.begin():
            payment = await self._find_callback_payment(db, reference, booking_id_text)
            booking = await self.bookings.get(db, payment.booking_id, lock=True)
            payment = await self.payments.get(db, payment.id, lock=True)

            if reported_amount is not None and reported_amount != payment.amount:
                mismatch = f"Callback amount {reported_amount} does not match payment amount {payment.amount}"
                await self.payments.append_log(db, payment, PaymentLogAction.PAYMENT_MISMATCH, mismatch)
            elif succeeded:
                result = await self._apply_success(db, payment, booking, transaction_id)
            else:
                result = await self._apply_failure(db, payment, booking, error_message)

        if mismatch is not None:
            logger.warning("Payment %s callback rejected: %s", payment.id, mismatch)
            raise PaymentMismatchError()
        return result

    async def _find_callback_payment(self, db: AsyncSession, reference: str, booking_id: str) -> Payment:
        if reference:
            payment = await self.payments.find_by_provider_reference(db, reference)
        else:
            try:
                booking_uuid = uuid.UUID(booking_id)
            except ValueError:
                payment = None
            else:
                payment = await self.payments.find_by_booking(db, booking_uuid)
        if payment is None:
            logger.warning("Payment callback for unknown payment (reference=%r, booking=%r)", reference, booking_id)
            raise PaymentNotFoundError()
        return payment

    async def _apply_success(
        self, db: AsyncSession, payment: Payment, booking: Booking, transaction_id: str | None
    ) -> CallbackResult:
        if payment.status == PaymentStatus.SUCCESS:
            logger.info("Payment %s success callback replayed; already processed", payment.id)
            return CallbackResult("already_processed", payment, booking, payment.transaction_id)

        check_transition(payment.status, PaymentStatus.SUCCESS)
        if booking.status != BookingStatus.PENDING_PAYMENT:
            raise InvalidBookingStatusError(f"Cannot confirm booking with status: {booking.status}")

        payment.status = PaymentStatus.SUCCESS
        if transaction_id:
            payment.transaction_id = transaction_id
        await self.payments.save(db, payment)
        await self.bookings.update_status(db, booking, BookingStatus.CONFIRMED)
        await self.payments.append_log(
            db,
            payment,
            PaymentLogAction.PAYMENT_SUCCESS,
            f"Payment successful - Transaction ID: {transaction_id or payment.provider_reference}",
        )
        logger.info("Payment %s succeeded; booking %s confirmed", payment.id, booking.id)
        return CallbackResult("confirmed", payment, booking, transaction_id or payment.provider_reference)

    async def _apply_failure(
        self, db: AsyncSession, payment: Payment, booking: Booking, error_message: str | None
    ) -> CallbackResult:
        if payment.status in (PaymentStatus.SUCCESS, PaymentStatus.FAILED, PaymentStatus.CANCELLED):
            logger.warning(
                "Ignoring failure callback for payment %s already in status %s", payment.id, payment.status
            )
            return CallbackResult("ignored", payment, booking, error_message=error_message)

        check_transition(payment.status, PaymentStatus.FAILED)
        if booking.status != BookingStatus.PENDING_PAYMENT:
            raise InvalidBookingStatusError(f"Cannot cancel booking with status: {booking.status}")

        payment.status = PaymentStatus.FAILED
        await self.payments.save(db, payment)
        await self.bookings.update_status(db, booking, BookingStatus.CANCELLED)
        await self.inventory.set_room_status(db, booking.room_id, RoomStatus.AVAILABLE)
        await self.payments.append_log(
            db,
            payment,
            PaymentLogAction.PAYMENT_FAILED,
            f"Payment failed - Error: {error_message or 'Unknown error'}",
        )
        logger.info("Payment %s failed; booking %s cancelled and room %s released", payment.id, booking.id, booking.room_id)
        return CallbackResult("failed", payment, booking, error_message=error_message or "Payment failed")

    # -- reads ---------------------------------------------------------------

    async def get_booking(self, booking_id: uuid.UUID) -> Booking:
        async with self._session_factory() as db, db.begin():
            booking = await self.bookings.get(db, booking_id)
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    async def get_payment(self, payment_id: uuid.UUID) -> Payment:
        async with self._session_factory() as db, db.begin():
            payment = await self.payments.get(db, payment_id)
        if payment is None:
            raise NotFoundError("Payment not found")
        return payment

    # -- administrative overrides -------------------------------------------

    async def _lock_payment_and_booking(self, db: AsyncSession, payment_id: uuid.UUID) -> tuple[Payment, Booking]:
        payment = await self.payments.get(db, payment_id)
        if payment is None:
            raise NotFoundError("Payment not found")
        booking = await self.bookings.get(db, payment.booking_id, lock=True)
        payment = await self.payments.get(db, payment_id, lock=True)
        return payment, booking

    async def update_payment(
        self,
        payment_id: uuid.UUID,
        *,
        status: str | None = None,
        provider: str | None = None,
        provider_reference: str | None = None,
        actor_id: uuid.UUID | None = None,
    ) -> PaymentUpdated:
        """Administrative edit of a payment, with the same side effects as a callback."""
        target = _clean(status).lower() or None
        provider = _clean(provider).lower() or None
        reference = _clean(provider_reference) or None
        if target is None and provider is None and reference is None:
            raise BadRequestError("Nothing to update: provide status, provider or provider_reference")
        if target is not None and target not in {s.value for s in PaymentStatus}:
            raise BadRequestError(f"Unknown payment status: {target}")
        if provider is not None and provider not in VALID_PROVIDER_NAMES:
            raise BadRequestError(
                f"Invalid payment provider. Supported: {', '.join(p.value for p in PaymentProvider)}"
            )

        async with self._session_factory() as db, db.begin():
            payment, booking = await self._lock_payment_and_booking(db, payment_id)
            if payment.status == PaymentStatus.SUCCESS:
                raise InvalidStatusTransitionError("A successful payment cannot be modified")

            changes: dict[str, str] = {}
            if provider is not None and provider != payment.provider:
                changes["provider"] = f"{payment.provider} -> {provider}"
                payment.provider = provider
            if reference is not None and reference != payment.provider_reference:
                taken = await self.payments.find_by_provider_reference(db, reference)
                if taken is not None and taken.id != payment.id:
                    raise BadRequestError("provider_reference is already used by another payment")
                changes["provider_reference"] = f"{payment.provider_reference} -> {reference}"
                payment.provider_reference = reference

            outcome: PaymentLogAction | None = None
            if target is not None and target != payment.status:
                check_transition(payment.status, target)
                if booking.status != BookingStatus.PENDING_PAYMENT:
                    raise InvalidBookingStatusError(
                        f"Cannot move payment to {target} while booking is {booking.status}"
                    )
                changes["status"] = f"{payment.status} -> {target}"
                payment.status = target
                if target == PaymentStatus.SUCCESS:
                    await self.bookings.update_status(db, booking, BookingStatus.CONFIRMED)
                    outcome = PaymentLogAction.PAYMENT_SUCCESS
                elif target in (PaymentStatus.FAILED, PaymentStatus.CANCELLED):
                    await self.bookings.update_status(db, booking, BookingStatus.CANCELLED)
                    await self.inventory.set_room_status(db, booking.room_id, RoomStatus.AVAILABLE)
                    outcome = (
                        PaymentLogAction.PAYMENT_FAILED
                        if target == PaymentStatus.FAILED
                        else PaymentLogAction.PAYMENT_CANCELLED
                    )

            await self.payments.save(db, payment)
            summary = ", ".join(f"{field}: {change}" for field, change in changes.items()) or "no changes"
            actor = f" by {actor_id}" if actor_id else ""
            await self.payments.append_log(db, payment, PaymentLogAction.PAYMENT_UPDATED, f"Updated{actor}: {summary}")
            if outcome is not None:
                await self.payments.append_log(db, payment, outcome, f"Administrative update{actor}")

        logger.info("Payment %s updated%s: %s", payment.id, actor, summary)
        return PaymentUpdated(payment=payment, booking=booking, changes=changes)

    async def delete_payment(self, payment_id: uuid.UUID) -> PaymentDeleted:
        """Delete a non-successful payment, cancelling its booking and releasing the room."""
        async with self._session_factory() as db, db.begin():
            payment, booking = await self._lock_payment_and_booking(db, payment_id)
            room_released = False
            if payment.status != PaymentStatus.SUCCESS and booking.status == BookingStatus.PENDING_PAYMENT:
                await self.bookings.update_status(db, booking, BookingStatus.CANCELLED)
                await self.inventory.set_room_status(db, booking.room_id, RoomStatus.AVAILABLE)
                room_released = True
            await self.payments.delete(db, payment)

        logger.info("Payment %s deleted; booking %s is %s", payment_id, booking.id, booking.status)
        return PaymentDeleted(payment_id=payment_id, booking=booking, room_released=room_released)

    # -- booking cancellation ------------------------------------------------

    async def cancel_booking(self, booking_id: uuid.UUID) -> Booking:
        """Cancel an unpaid booking and release its room."""
        async with self._session_factory() as db, db.begin():
            booking = await self.bookings.get(db, booking_id, lock=True)
            if booking is None:
                raise NotFoundError("Booking not found")
            if booking.status != BookingStatus.PENDING_PAYMENT:
                raise InvalidBookingStatusError(f"Cannot cancel booking with status: {booking.status}")

            await self.bookings.update_status(db, booking, BookingStatus.CANCELLED)
            await self.inventory.set_room_status(db, booking.room_id, RoomStatus.AVAILABLE)
            payment = await self.payments.find_by_booking(db, booking.id, lock=True)
            if payment is not None:
                if payment.status == PaymentStatus.PENDING:
                    await self.payments.set_status(db, payment, PaymentStatus.CANCELLED)
                await self.payments.append_log(
                    db, payment, PaymentLogAction.BOOKING_CANCELLED, "Booking cancelled by guest"
                )

        logger.info("Booking %s cancelled; room %s released", booking.id, booking.room_id)
        return booking
