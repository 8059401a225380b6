"""Booking ledger — booking persistence, conflict detection and stay pricing."""

import math
import uuid
from collections.abc import Iterable
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hotelbook.models.booking import Booking
from hotelbook.models.enums import BookingStatus

_CENT = Decimal("0.01")


def compute_nights(checkin: date, checkout: date) -> int:
    """Number of nights in ``[checkin, checkout)``, rounded up to whole days."""
    return math.ceil((checkout - checkin) / timedelta(days=1))


def compute_total(nights: int, price_per_night: Decimal) -> Decimal:
    """Total price for a stay, quantized to cents."""
    return (Decimal(price_per_night) * nights).quantize(_CENT, rounding=ROUND_HALF_UP)


class BookingLedger:
    """Booking persistence. Status changes are decided by the orchestrator."""

    async def get(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        *,
        lock: bool = False,
    ) -> Booking | None:
        """Fetch a booking; relations (user, hotel, room, payments) load eagerly.

        With ``lock=True`` the row is read ``FOR UPDATE`` and any stale copy
        in the session identity map is refreshed.
        """
        query = select(Booking).where(Booking.id == booking_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def find_overlapping(
        self,
        db: AsyncSession,
        room_id: uuid.UUID,
        checkin: date,
        checkout: date,
        statuses: Iterable[str],
        exclude_id: uuid.UUID | None = None,
    ) -> Booking | None:
        """Return one booking of *room_id* whose stay intersects ``[checkin, checkout)``."""
        query = select(Booking).where(
            Booking.room_id == room_id,
            Booking.status.in_(list(statuses)),
            Booking.checkin_date < checkout,
            Booking.checkout_date > checkin,
        )
        if exclude_id is not None:
            query = query.where(Booking.id != exclude_id)
        result = await db.execute(query.order_by(Booking.created_at).limit(1))
        return result.scalar_one_or_none()

    async def find_duplicate(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        hotel_id: uuid.UUID,
        room_id: uuid.UUID,
        checkin: date,
        checkout: date,
        statuses: Iterable[str],
    ) -> Booking | None:
        """Return a booking of the same guest for exactly the same room and dates."""
        result = await db.execute(
            select(Booking)
            .where(
                Booking.user_id == user_id,
                Booking.hotel_id == hotel_id,
                Booking.room_id == room_id,
                Booking.checkin_date == checkin,
                Booking.checkout_date == checkout,
                Booking.status.in_(list(statuses)),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        hotel_id: uuid.UUID,
        room_id: uuid.UUID,
        checkin: date,
        checkout: date,
        price_per_night: Decimal,
        status: BookingStatus = BookingStatus.PENDING_PAYMENT,
    ) -> Booking:
        nights = compute_nights(checkin, checkout)
        booking = Booking(
            user_id=user_id,
            hotel_id=hotel_id,
            room_id=room_id,
            checkin_date=checkin,
            checkout_date=checkout,
            nights=nights,
            total_amount=compute_total(nights, price_per_night),
            status=status,
        )
        db.add(booking)
        await db.flush()
        return booking

    async def update_status(self, db: AsyncSession, booking: Booking, status: BookingStatus) -> None:
        booking.status = status
        await db.flush()

    async def find_stale_pending(self, db: AsyncSession, older_than: datetime) -> list[uuid.UUID]:
        """Ids of ``pending_payment`` bookings created before *older_than*."""
        result = await db.execute(
            select(Booking.id)
            .where(
                Booking.status == BookingStatus.PENDING_PAYMENT,
                Booking.created_at < older_than,
            )
            .order_by(Booking.created_at)
        )
        return list(result.scalars().all())
