"""Payment and PaymentLog models — money intent and its audit trail."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Numeric, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hotelbook.database import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow
from hotelbook.models.enums import PaymentProvider, PaymentStatus


class Payment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A payment attempt for a booking.

    A booking has at most one ``pending`` payment (partial unique index); a
    new provider selection updates that row instead of adding another.
    """

    __tablename__ = "payments"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    provider: Mapped[str] = mapped_column(String(50), default=PaymentProvider.TELEBIRR, nullable=False)
    provider_reference: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(50),
        default=PaymentStatus.PENDING,
        nullable=False,
        index=True,
    )  # pending, success, failed, cancelled

    # Relationships
    booking: Mapped["Booking"] = relationship(back_populates="payments", lazy="selectin")  # type: ignore[name-defined]  # noqa: F821
    logs: Mapped[list["PaymentLog"]] = relationship(
        back_populates="payment",
        lazy="selectin",
        order_by="PaymentLog.created_at",
    )

    __table_args__ = (
        Index(
            "uq_payments_pending_booking",
            "booking_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, booking_id={self.booking_id}, status={self.status}, provider={self.provider})>"


class PaymentLog(UUIDPrimaryKeyMixin, Base):
    """Append-only audit entry written at every payment state change."""

    __tablename__ = "payment_logs"

    payment_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now())

    # Relationships
    payment: Mapped["Payment"] = relationship(back_populates="logs")

    def __repr__(self) -> str:
        return f"<PaymentLog(payment_id={self.payment_id}, action={self.action})>"
