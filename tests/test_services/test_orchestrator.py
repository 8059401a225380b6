"""Tests for the booking orchestrator workflows against a real database."""

import uuid
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from hotelbook.config import settings
from hotelbook.database import utcnow
from hotelbook.errors import (
    BadRequestError,
    DuplicateBookingError,
    InvalidBookingStatusError,
    InvalidOperationError,
    InvalidStatusTransitionError,
    NotFoundError,
    PaymentMismatchError,
    PaymentNotFoundError,
    RoomAlreadyReservedError,
)
from hotelbook.ledgers.bookings import BookingLedger
from hotelbook.ledgers.guests import GuestDirectory
from hotelbook.ledgers.inventory import InventoryStore
from hotelbook.ledgers.payments import PaymentLedger
from hotelbook.models import Booking, Hotel, Payment, PaymentLog, Room, User
from hotelbook.models.enums import HotelStatus, RoomStatus
from hotelbook.services.orchestrator import BookingOrchestrator


async def _log_actions(session_factory, payment_id) -> list[str]:
    async with session_factory() as session:
        result = await session.execute(
            select(PaymentLog.action).where(PaymentLog.payment_id == payment_id).order_by(PaymentLog.created_at)
        )
        return list(result.scalars().all())


# ---------------------------------------------------------------------------
# create_booking
# ---------------------------------------------------------------------------


class TestCreateBooking:
    """Holding a room for a guest."""

    async def test_creates_pending_booking_payment_and_occupies_room(self, orchestrator, booking_request, reload):
        result = await orchestrator.create_booking(**booking_request)

        booking = await reload(Booking, result.booking.id)
        assert booking.status == "pending_payment"
        assert booking.nights == 2
        assert booking.total_amount == Decimal("3600.00")

        payment = await reload(Payment, result.payment.id)
        assert payment.status == "pending"
        assert payment.provider == "telebirr"
        assert payment.amount == Decimal("3600.00")

        room = await reload(Room, booking.room_id)
        assert room.status == RoomStatus.OCCUPIED

    async def test_guest_user_created_from_name_and_phone(self, orchestrator, booking_request, reload):
        booking_request["user_name"] = "Abebe Kebede Tesfaye"
        result = await orchestrator.create_booking(**booking_request)

        guest = await reload(User, result.guest.id)
        assert guest.first_name == "Abebe"
        assert guest.last_name == "Kebede Tesfaye"
        assert guest.phone == "+251911123456"
        assert guest.email == f"+251911123456@{settings.guest_email_domain}"
        assert guest.hashed_password is None

    async def test_single_token_name_fills_both_parts(self, orchestrator, booking_request):
        booking_request["user_name"] = "Selam"
        result = await orchestrator.create_booking(**booking_request)
        assert result.guest.first_name == "Selam"
        assert result.guest.last_name == "Selam"

    async def test_existing_guest_reused_by_phone(self, orchestrator, booking_request, second_room):
        first = await orchestrator.create_booking(**booking_request)
        booking_request["room_id"] = str(second_room.id)
        second = await orchestrator.create_booking(**booking_request)
        assert first.guest.id == second.guest.id

    async def test_booking_created_log_written(self, orchestrator, booking_request, session_factory):
        result = await orchestrator.create_booking(**booking_request)
        assert await _log_actions(session_factory, result.payment.id) == ["BOOKING_CREATED"]

    async def test_pricing_example(self, session_factory, hotel, room):
        """1800.00 per night from 2025-10-01 to 2025-10-03 costs 3600.00."""
        frozen = BookingOrchestrator(
            session_factory,
            inventory=InventoryStore(),
            bookings=BookingLedger(),
            payments=PaymentLedger(),
            guests=GuestDirectory(settings.guest_email_domain),
            settings=settings,
            clock=lambda: datetime(2025, 9, 1, 12, 0),
        )
        result = await frozen.create_booking(
            user_name="Abebe Kebede",
            phone="+251911123456",
            hotel_id=str(hotel.id),
            room_id=str(room.id),
            check_in="2025-10-01",
            check_out="2025-10-03",
        )
        assert result.booking.nights == 2
        assert result.booking.total_amount == Decimal("3600.00")

    @pytest.mark.parametrize("field", ["user_name", "phone", "hotel_id", "room_id", "check_in", "check_out"])
    async def test_missing_field_rejected(self, orchestrator, booking_request, field):
        booking_request[field] = None
        with pytest.raises(BadRequestError, match="All fields are required"):
            await orchestrator.create_booking(**booking_request)

    async def test_blank_field_rejected(self, orchestrator, booking_request):
        booking_request["user_name"] = "   "
        with pytest.raises(BadRequestError):
            await orchestrator.create_booking(**booking_request)

    async def test_invalid_phone_rejected(self, orchestrator, booking_request):
        booking_request["phone"] = "call-me-maybe"
        with pytest.raises(BadRequestError, match="phone"):
            await orchestrator.create_booking(**booking_request)

    async def test_phone_separators_normalized(self, orchestrator, booking_request):
        booking_request["phone"] = "+251 (91) 112-3456"
        result = await orchestrator.create_booking(**booking_request)
        assert result.guest.phone == "+251911123456"

    @pytest.mark.parametrize("value", ["2025/10/01", "01-10-2025", "tomorrow", "2025-02-30"])
    async def test_malformed_date_rejected(self, orchestrator, booking_request, value):
        booking_request["check_in"] = value
        with pytest.raises(BadRequestError):
            await orchestrator.create_booking(**booking_request)

    async def test_checkout_must_follow_checkin(self, orchestrator, booking_request):
        booking_request["check_out"] = booking_request["check_in"]
        with pytest.raises(BadRequestError, match="after checkIn"):
            await orchestrator.create_booking(**booking_request)

    async def test_past_checkin_rejected(self, orchestrator, booking_request):
        yesterday = utcnow().date() - timedelta(days=1)
        booking_request["check_in"] = yesterday.isoformat()
        booking_request["check_out"] = (yesterday + timedelta(days=2)).isoformat()
        with pytest.raises(BadRequestError, match="past"):
            await orchestrator.create_booking(**booking_request)

    async def test_stay_longer_than_limit_rejected(self, orchestrator, booking_request):
        check_in = utcnow().date() + timedelta(days=1)
        booking_request["check_in"] = check_in.isoformat()
        booking_request["check_out"] = (check_in + timedelta(days=settings.max_booking_nights + 1)).isoformat()
        with pytest.raises(BadRequestError, match="nights"):
            await orchestrator.create_booking(**booking_request)

    async def test_checkin_too_far_ahead_rejected(self, orchestrator, booking_request):
        check_in = utcnow().date() + timedelta(days=settings.max_advance_booking_days + 1)
        booking_request["check_in"] = check_in.isoformat()
        booking_request["check_out"] = (check_in + timedelta(days=1)).isoformat()
        with pytest.raises(BadRequestError, match="advance"):
            await orchestrator.create_booking(**booking_request)

    async def test_unknown_hotel_not_found(self, orchestrator, booking_request):
        booking_request["hotel_id"] = "00000000-0000-0000-0000-000000000000"
        with pytest.raises(NotFoundError, match="Hotel"):
            await orchestrator.create_booking(**booking_request)

    async def test_inactive_hotel_not_found(self, orchestrator, booking_request, db_session, hotel):
        hotel.status = HotelStatus.INACTIVE
        await db_session.commit()
        with pytest.raises(NotFoundError):
            await orchestrator.create_booking(**booking_request)

    async def test_room_of_other_hotel_not_found(self, orchestrator, booking_request, db_session):
        other = Hotel(name="Blue Nile Resort", location="Bahir Dar")
        db_session.add(other)
        await db_session.commit()
        booking_request["hotel_id"] = str(other.id)
        with pytest.raises(NotFoundError, match="Room"):
            await orchestrator.create_booking(**booking_request)

    async def test_room_under_maintenance_not_found(self, orchestrator, booking_request, db_session, room):
        room.status = RoomStatus.MAINTENANCE
        await db_session.commit()
        with pytest.raises(NotFoundError):
            await orchestrator.create_booking(**booking_request)

    async def test_overlapping_booking_rejected(self, orchestrator, booking_request):
        await orchestrator.create_booking(**booking_request)
        booking_request["phone"] = "+251911999999"
        with pytest.raises(RoomAlreadyReservedError):
            await orchestrator.create_booking(**booking_request)

    async def test_enclosing_range_counts_as_overlap(self, orchestrator, booking_request):
        """A new stay that starts before and ends after an existing one still conflicts."""
        await orchestrator.create_booking(**booking_request)
        check_in = datetime.fromisoformat(booking_request["check_in"]).date()
        booking_request["phone"] = "+251911999999"
        booking_request["check_in"] = (check_in - timedelta(days=1)).isoformat()
        booking_request["check_out"] = (check_in + timedelta(days=5)).isoformat()
        with pytest.raises(RoomAlreadyReservedError):
            await orchestrator.create_booking(**booking_request)

    async def test_same_guest_same_request_is_duplicate(self, orchestrator, booking_request):
        await orchestrator.create_booking(**booking_request)
        with pytest.raises(DuplicateBookingError):
            await orchestrator.create_booking(**booking_request)

    async def test_rejection_writes_nothing(self, orchestrator, booking_request, session_factory):
        await orchestrator.create_booking(**booking_request)
        booking_request["phone"] = "+251911999999"
        with pytest.raises(RoomAlreadyReservedError):
            await orchestrator.create_booking(**booking_request)

        async with session_factory() as session:
            bookings = (await session.execute(select(Booking))).scalars().all()
            users = (await session.execute(select(User).where(User.phone == "+251911999999"))).scalars().all()
        assert len(bookings) == 1
        assert users == []

    async def test_room_free_again_after_cancellation(self, orchestrator, booking_request):
        first = await orchestrator.create_booking(**booking_request)
        await orchestrator.cancel_booking(first.booking.id)
        booking_request["phone"] = "+251911999999"
        second = await orchestrator.create_booking(**booking_request)
        assert second.booking.status == "pending_payment"


# ---------------------------------------------------------------------------
# initiate_payment
# ---------------------------------------------------------------------------


class TestInitiatePayment:
    """Choosing a provider for a held booking."""

    async def test_reuses_booking_payment_row(self, orchestrator, booking_request, session_factory):
        created = await orchestrator.create_booking(**booking_request)
        result = await orchestrator.initiate_payment(booking_id=str(created.booking.id), provider="chappa")

        assert result.payment.id == created.payment.id
        assert result.payment.provider == "chappa"
        assert result.payment.status == "pending"
        assert result.payment.provider_reference.startswith("CHAPPA_")
        assert "ref=" + result.payment.provider_reference in result.payment_url
        async with session_factory() as session:
            count = len((await session.execute(select(Payment))).scalars().all())
        assert count == 1

    async def test_each_initiation_gets_fresh_reference(self, orchestrator, booking_request):
        created = await orchestrator.create_booking(**booking_request)
        first = await orchestrator.initiate_payment(booking_id=str(created.booking.id), provider="ebirr")
        first_reference = first.payment.provider_reference
        second = await orchestrator.initiate_payment(booking_id=str(created.booking.id), provider="kaafi")
        assert second.payment.provider_reference != first_reference
        assert second.payment.provider == "kaafi"

    async def test_does_not_confirm_booking(self, orchestrator, held_booking, reload):
        booking, _ = held_booking
        assert (await reload(Booking, booking.id)).status == "pending_payment"

    async def test_logs_initiation(self, orchestrator, held_booking, session_factory):
        _, payment = held_booking
        assert await _log_actions(session_factory, payment.id) == ["BOOKING_CREATED", "PAYMENT_INITIATED"]

    async def test_missing_fields_rejected(self, orchestrator):
        with pytest.raises(BadRequestError, match="required"):
            await orchestrator.initiate_payment(booking_id=None, provider="telebirr")

    async def test_unknown_provider_rejected(self, orchestrator, held_booking):
        booking, _ = held_booking
        with pytest.raises(BadRequestError, match="Supported"):
            await orchestrator.initiate_payment(booking_id=str(booking.id), provider="paypal")

    async def test_unknown_booking_not_found(self, orchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.initiate_payment(
                booking_id="00000000-0000-0000-0000-000000000000", provider="telebirr"
            )

    async def test_confirmed_booking_rejected(self, orchestrator, held_booking):
        booking, payment = held_booking
        await orchestrator.handle_payment_callback(status="success", provider_reference=payment.provider_reference)
        with pytest.raises(InvalidBookingStatusError):
            await orchestrator.initiate_payment(booking_id=str(booking.id), provider="telebirr")


# ---------------------------------------------------------------------------
# handle_payment_callback
# ---------------------------------------------------------------------------


class TestPaymentCallback:
    """Provider verdicts, replays and tampering."""

    async def test_success_confirms_booking_and_keeps_room_occupied(self, orchestrator, held_booking, reload):
        booking, payment = held_booking
        result = await orchestrator.handle_payment_callback(
            status="success",
            provider_reference=payment.provider_reference,
            transaction_id="TXN-001",
            amount=Decimal("3600.00"),
        )

        assert result.outcome == "confirmed"
        assert (await reload(Booking, booking.id)).status == "confirmed"
        stored = await reload(Payment, payment.id)
        assert stored.status == "success"
        assert stored.transaction_id == "TXN-001"
        assert stored.provider_reference == payment.provider_reference
        assert (await reload(Room, booking.room_id)).status == "occupied"

    async def test_failure_cancels_booking_and_releases_room(self, orchestrator, held_booking, reload):
        booking, payment = held_booking
        result = await orchestrator.handle_payment_callback(
            status="failed", provider_reference=payment.provider_reference, error_message="Insufficient funds"
        )

        assert result.outcome == "failed"
        assert (await reload(Booking, booking.id)).status == "cancelled"
        assert (await reload(Payment, payment.id)).status == "failed"
        assert (await reload(Room, booking.room_id)).status == "available"

    async def test_success_replay_is_a_no_op(self, orchestrator, held_booking, session_factory):
        _, payment = held_booking
        first = await orchestrator.handle_payment_callback(
            status="success", provider_reference=payment.provider_reference, transaction_id="TXN-1"
        )
        replay = await orchestrator.handle_payment_callback(
            status="success", provider_reference=payment.provider_reference, transaction_id="TXN-1"
        )

        assert first.outcome == "confirmed"
        assert replay.outcome == "already_processed"
        assert replay.already_processed
        actions = await _log_actions(session_factory, payment.id)
        assert actions.count("PAYMENT_SUCCESS") == 1

    async def test_late_failure_after_success_ignored(self, orchestrator, held_booking, reload):
        booking, payment = held_booking
        await orchestrator.handle_payment_callback(status="success", provider_reference=payment.provider_reference)
        result = await orchestrator.handle_payment_callback(
            status="failed", provider_reference=payment.provider_reference
        )

        assert result.outcome == "ignored"
        assert (await reload(Booking, booking.id)).status == "confirmed"
        assert (await reload(Room, booking.room_id)).status == "occupied"

    async def test_success_after_failure_rejected(self, orchestrator, held_booking):
        _, payment = held_booking
        await orchestrator.handle_payment_callback(status="failed", provider_reference=payment.provider_reference)
        with pytest.raises(InvalidStatusTransitionError):
            await orchestrator.handle_payment_callback(status="success", provider_reference=payment.provider_reference)

    async def test_lookup_by_booking_id(self, orchestrator, held_booking, reload):
        booking, _ = held_booking
        result = await orchestrator.handle_payment_callback(status="success", booking_id=str(booking.id))
        assert result.outcome == "confirmed"
        assert (await reload(Booking, booking.id)).status == "confirmed"

    async def test_unknown_reference_not_found(self, orchestrator, held_booking):
        with pytest.raises(PaymentNotFoundError):
            await orchestrator.handle_payment_callback(status="success", provider_reference="TELEBIRR_UNKNOWN")

    async def test_missing_identifiers_rejected(self, orchestrator):
        with pytest.raises(BadRequestError):
            await orchestrator.handle_payment_callback(status="success")

    async def test_amount_mismatch_changes_nothing_but_is_logged(
        self, orchestrator, held_booking, reload, session_factory
    ):
        booking, payment = held_booking
        with pytest.raises(PaymentMismatchError):
            await orchestrator.handle_payment_callback(
                status="success", provider_reference=payment.provider_reference, amount="10.00"
            )

        assert (await reload(Booking, booking.id)).status == "pending_payment"
        assert (await reload(Payment, payment.id)).status == "pending"
        assert (await reload(Room, booking.room_id)).status == "occupied"
        assert (await _log_actions(session_factory, payment.id))[-1] == "PAYMENT_MISMATCH"

    async def test_success_for_expired_booking_rejected(self, orchestrator, sweeper, held_booking, reload):
        booking, payment = held_booking
        await sweeper.run_once(now=utcnow() + timedelta(minutes=settings.booking_hold_minutes + 5))
        assert (await reload(Booking, booking.id)).status == "expired"

        with pytest.raises(InvalidStatusTransitionError):
            await orchestrator.handle_payment_callback(status="success", provider_reference=payment.provider_reference)

    async def test_failure_after_expiry_ignored(self, orchestrator, sweeper, held_booking, reload):
        booking, payment = held_booking
        await sweeper.run_once(now=utcnow() + timedelta(minutes=settings.booking_hold_minutes + 5))

        result = await orchestrator.handle_payment_callback(
            status="failed", provider_reference=payment.provider_reference, error_message="Timeout"
        )

        assert result.outcome == "ignored"
        assert (await reload(Booking, booking.id)).status == "expired"
        assert (await reload(Payment, payment.id)).status == "cancelled"
        assert (await reload(Room, booking.room_id)).status == "available"

    async def test_failure_after_cancel_ignored(self, orchestrator, held_booking, reload, session_factory):
        booking, payment = held_booking
        await orchestrator.cancel_booking(booking.id)

        result = await orchestrator.handle_payment_callback(
            status="failed", provider_reference=payment.provider_reference
        )

        assert result.outcome == "ignored"
        assert (await reload(Booking, booking.id)).status == "cancelled"
        assert (await reload(Payment, payment.id)).status == "cancelled"
        assert "PAYMENT_FAILED" not in await _log_actions(session_factory, payment.id)


# ---------------------------------------------------------------------------
# get_booking / get_payment
# ---------------------------------------------------------------------------


class TestReads:
    async def test_get_booking_includes_relations(self, orchestrator, held_booking):
        booking, payment = held_booking
        loaded = await orchestrator.get_booking(booking.id)
        assert loaded.user.phone == "+251911123456"
        assert loaded.hotel.name == "Skylight Hotel Addis"
        assert loaded.room.room_number == "102"
        assert [p.id for p in loaded.payments] == [payment.id]

    async def test_get_payment_includes_logs(self, orchestrator, held_booking):
        _, payment = held_booking
        loaded = await orchestrator.get_payment(payment.id)
        assert loaded.booking.user.first_name == "Abebe"
        assert [log.action for log in loaded.logs] == ["BOOKING_CREATED", "PAYMENT_INITIATED"]

    async def test_missing_booking_not_found(self, orchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.get_booking(uuid.uuid4())


# ---------------------------------------------------------------------------
# update_payment / delete_payment
# ---------------------------------------------------------------------------


class TestAdminOverrides:
    async def test_update_to_success_confirms_booking(self, orchestrator, held_booking, reload, session_factory):
        booking, payment = held_booking
        result = await orchestrator.update_payment(payment.id, status="success")

        assert result.changes["status"] == "pending -> success"
        assert (await reload(Booking, booking.id)).status == "confirmed"
        actions = await _log_actions(session_factory, payment.id)
        assert set(actions[-2:]) == {"PAYMENT_UPDATED", "PAYMENT_SUCCESS"}

    async def test_update_to_cancelled_releases_room(self, orchestrator, held_booking, reload):
        booking, payment = held_booking
        await orchestrator.update_payment(payment.id, status="cancelled")
        assert (await reload(Booking, booking.id)).status == "cancelled"
        assert (await reload(Room, booking.room_id)).status == "available"

    async def test_successful_payment_is_immutable(self, orchestrator, held_booking):
        _, payment = held_booking
        await orchestrator.update_payment(payment.id, status="success")
        with pytest.raises(InvalidStatusTransitionError):
            await orchestrator.update_payment(payment.id, status="failed")
        with pytest.raises(InvalidStatusTransitionError):
            await orchestrator.update_payment(payment.id, provider="chappa")

    async def test_failed_back_to_pending_requires_open_booking(self, orchestrator, held_booking):
        _, payment = held_booking
        await orchestrator.update_payment(payment.id, status="failed")
        with pytest.raises(InvalidBookingStatusError):
            await orchestrator.update_payment(payment.id, status="pending")

    async def test_provider_change_only(self, orchestrator, held_booking, reload):
        _, payment = held_booking
        result = await orchestrator.update_payment(payment.id, provider="ebirr")
        assert result.changes == {"provider": "telebirr -> ebirr"}
        assert (await reload(Payment, payment.id)).provider == "ebirr"

    async def test_empty_update_rejected(self, orchestrator, held_booking):
        _, payment = held_booking
        with pytest.raises(BadRequestError):
            await orchestrator.update_payment(payment.id)

    async def test_delete_pending_payment_cancels_booking(self, orchestrator, held_booking, reload, session_factory):
        booking, payment = held_booking
        result = await orchestrator.delete_payment(payment.id)

        assert result.room_released
        assert await reload(Payment, payment.id) is None
        assert await _log_actions(session_factory, payment.id) == []
        assert (await reload(Booking, booking.id)).status == "cancelled"
        assert (await reload(Room, booking.room_id)).status == "available"

    async def test_delete_successful_payment_refused(self, orchestrator, held_booking, reload):
        booking, payment = held_booking
        await orchestrator.handle_payment_callback(status="success", provider_reference=payment.provider_reference)
        with pytest.raises(InvalidOperationError):
            await orchestrator.delete_payment(payment.id)
        assert (await reload(Payment, payment.id)).status == "success"
        assert (await reload(Booking, booking.id)).status == "confirmed"


# ---------------------------------------------------------------------------
# cancel_booking
# ---------------------------------------------------------------------------


class TestCancelBooking:
    async def test_cancel_releases_room_and_cancels_payment(self, orchestrator, held_booking, reload, session_factory):
        booking, payment = held_booking
        await orchestrator.cancel_booking(booking.id)

        assert (await reload(Booking, booking.id)).status == "cancelled"
        assert (await reload(Payment, payment.id)).status == "cancelled"
        assert (await reload(Room, booking.room_id)).status == "available"
        assert (await _log_actions(session_factory, payment.id))[-1] == "BOOKING_CANCELLED"

    async def test_paid_booking_cannot_be_cancelled(self, orchestrator, held_booking):
        booking, payment = held_booking
        await orchestrator.handle_payment_callback(status="success", provider_reference=payment.provider_reference)
        with pytest.raises(InvalidBookingStatusError):
            await orchestrator.cancel_booking(booking.id)
