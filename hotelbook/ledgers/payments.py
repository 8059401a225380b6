"""Payment ledger — payments, their audit log and the status transition table."""

import logging
import uuid
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from hotelbook.errors import InvalidOperationError, InvalidStatusTransitionError
from hotelbook.models.enums import PaymentLogAction, PaymentProvider, PaymentStatus
from hotelbook.models.payment import Payment, PaymentLog

logger = logging.getLogger(__name__)

# Allowed payment status transitions. ``success`` is final.
PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.SUCCESS, PaymentStatus.FAILED, PaymentStatus.CANCELLED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING}),
    PaymentStatus.SUCCESS: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return PaymentStatus(target) in PAYMENT_TRANSITIONS.get(PaymentStatus(current), frozenset())


def check_transition(current: str, target: str) -> None:
    """Raise ``InvalidStatusTransitionError`` if ``current -> target`` is not allowed."""
    if not can_transition(current, target):
        raise InvalidStatusTransitionError(f"Cannot change payment status from {current} to {target}")


class PaymentLedger:
    """Payment persistence plus the append-only ``payment_logs`` trail."""

    async def get(self, db: AsyncSession, payment_id: uuid.UUID, *, lock: bool = False) -> Payment | None:
        query = select(Payment).where(Payment.id == payment_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def find_by_booking(self, db: AsyncSession, booking_id: uuid.UUID, *, lock: bool = False) -> Payment | None:
        """Return the booking's current payment (the most recent row)."""
        query = (
            select(Payment)
            .where(Payment.booking_id == booking_id)
            .order_by(Payment.created_at.desc())
            .limit(1)
        )
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def find_by_provider_reference(
        self, db: AsyncSession, reference: str, *, lock: bool = False
    ) -> Payment | None:
        query = select(Payment).where(Payment.provider_reference == reference)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def create(
        self,
        db: AsyncSession,
        *,
        booking_id: uuid.UUID,
        amount: Decimal,
        provider: str = PaymentProvider.TELEBIRR,
        provider_reference: str | None = None,
    ) -> Payment:
        payment = Payment(
            booking_id=booking_id,
            amount=amount,
            provider=provider,
            provider_reference=provider_reference,
            status=PaymentStatus.PENDING,
        )
        db.add(payment)
        await db.flush()
        return payment

    async def save(self, db: AsyncSession, payment: Payment) -> Payment:
        db.add(payment)
        await db.flush()
        return payment

    async def set_status(self, db: AsyncSession, payment: Payment, status: PaymentStatus) -> None:
        """Apply a transition-checked status change."""
        check_transition(payment.status, status)
        payment.status = status
        await db.flush()

    async def append_log(
        self,
        db: AsyncSession,
        payment: Payment,
        action: PaymentLogAction,
        details: str | None = None,
    ) -> PaymentLog:
        entry = PaymentLog(
            payment_id=payment.id,
            booking_id=payment.booking_id,
            action=action,
            details=details,
        )
        db.add(entry)
        await db.flush()
        logger.debug("Payment %s log: %s", payment.id, action)
        return entry

    async def delete(self, db: AsyncSession, payment: Payment) -> None:
        """Remove a payment and its log entries. Successful payments are permanent."""
        if payment.status == PaymentStatus.SUCCESS:
            raise InvalidOperationError("Cannot delete a successful payment")
        await db.execute(delete(PaymentLog).where(PaymentLog.payment_id == payment.id))
        await db.execute(delete(Payment).where(Payment.id == payment.id))
        await db.flush()
