"""Expiry sweeper — releases rooms held by bookings that were never paid.

A booking in ``pending_payment`` keeps its room ``occupied``. After
``booking_hold_minutes`` without a successful payment the sweeper expires
the booking, cancels its pending payment and frees the room. Each booking
is handled in its own transaction so one failure never blocks the rest.
"""

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hotelbook.database import utcnow
from hotelbook.ledgers.bookings import BookingLedger
from hotelbook.ledgers.inventory import InventoryStore
from hotelbook.ledgers.payments import PaymentLedger
from hotelbook.models.enums import BookingStatus, PaymentLogAction, PaymentStatus, RoomStatus

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "expire-pending-bookings"


@dataclass
class SweepReport:
    """Summary of one sweeper pass."""

    started_at: datetime
    expired: list[uuid.UUID] = field(default_factory=list)
    errors: list[tuple[uuid.UUID, str]] = field(default_factory=list)
    skipped: bool = False
    duration_ms: float = 0.0


class ExpirySweeper:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        inventory: InventoryStore,
        bookings: BookingLedger,
        payments: PaymentLedger,
        hold_minutes: int,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self.inventory = inventory
        self.bookings = bookings
        self.payments = payments
        self.hold_minutes = hold_minutes
        self._clock = clock
        self._running = False
        self._scheduler: AsyncIOScheduler | None = None
        self.last_report: SweepReport | None = None

    async def run_once(self, now: datetime | None = None) -> SweepReport:
        """Expire every ``pending_payment`` booking older than the hold window."""
        now = now or self._clock()
        report = SweepReport(started_at=now)
        if self._running:
            logger.info("Expiry sweep already in progress; skipping")
            report.skipped = True
            return report

        self._running = True
        started = time.perf_counter()
        try:
            cutoff = now - timedelta(minutes=self.hold_minutes)
            async with self._session_factory() as db:
                stale_ids = await self.bookings.find_stale_pending(db, cutoff)

            for booking_id in stale_ids:
                try:
                    if await self._expire_one(booking_id):
                        report.expired.append(booking_id)
                except Exception as exc:
                    logger.exception("Failed to expire booking %s", booking_id)
                    report.errors.append((booking_id, str(exc)))
        finally:
            self._running = False
            report.duration_ms = round((time.perf_counter() - started) * 1000, 2)
            self.last_report = report

        if report.expired or report.errors:
            logger.info(
                "Expiry sweep: %d expired, %d errors in %.1f ms",
                len(report.expired),
                len(report.errors),
                report.duration_ms,
            )
        return report

    async def _expire_one(self, booking_id: uuid.UUID) -> bool:
        async with self._session_factory() as db, db.begin():
            booking = await self.bookings.get(db, booking_id, lock=True)
            if booking is None or booking.status != BookingStatus.PENDING_PAYMENT:
                # Paid or cancelled since the candidate list was read.
                return False

            await self.bookings.update_status(db, booking, BookingStatus.EXPIRED)
            await self.inventory.set_room_status(db, booking.room_id, RoomStatus.AVAILABLE)

            payment = await self.payments.find_by_booking(db, booking.id, lock=True)
            if payment is not None:
                if payment.status == PaymentStatus.PENDING:
                    await self.payments.set_status(db, payment, PaymentStatus.CANCELLED)
                await self.payments.append_log(
                    db,
                    payment,
                    PaymentLogAction.BOOKING_EXPIRED,
                    f"Booking expired after {self.hold_minutes} minutes without payment",
                )

        logger.info("Booking %s expired; room %s released", booking_id, booking.room_id)
        return True

    # -- scheduling ------------------------------------------------------------

    def start(self, interval_seconds: int) -> None:
        """Run :meth:`run_once` every *interval_seconds* on the running event loop."""
        if self._scheduler is not None and self._scheduler.running:
            return
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.run_once,
            trigger="interval",
            seconds=interval_seconds,
            id=SWEEP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info("Expiry sweeper started (every %ss, hold %s min)", interval_seconds, self.hold_minutes)

    def stop(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Expiry sweeper stopped")
        self._scheduler = None

    def status(self) -> dict:
        """Snapshot for the health endpoint."""
        report = self.last_report
        return {
            "scheduled": self._scheduler is not None and self._scheduler.running,
            "running": self._running,
            "hold_minutes": self.hold_minutes,
            "last_run": report.started_at.isoformat() if report else None,
            "last_expired": len(report.expired) if report else 0,
            "last_errors": len(report.errors) if report else 0,
        }
