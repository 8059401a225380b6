"""Booking model — a held or confirmed stay in one room."""

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hotelbook.database import Base, TimestampMixin, UUIDPrimaryKeyMixin
from hotelbook.models.enums import BookingStatus


class Booking(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A reservation of a room for ``[checkin_date, checkout_date)``.

    ``nights`` and ``total_amount`` are computed once at creation from the
    room's nightly price and never recalculated.
    """

    __tablename__ = "bookings"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    hotel_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("hotels.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    room_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("rooms.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    checkin_date: Mapped[date] = mapped_column(Date, nullable=False)
    checkout_date: Mapped[date] = mapped_column(Date, nullable=False)
    nights: Mapped[int] = mapped_column(Integer, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(50),
        default=BookingStatus.PENDING_PAYMENT,
        nullable=False,
        index=True,
    )  # pending, pending_payment, confirmed, cancelled, expired, refunded

    # Relationships
    user: Mapped["User"] = relationship(lazy="selectin")  # type: ignore[name-defined]  # noqa: F821
    hotel: Mapped["Hotel"] = relationship(lazy="selectin")  # type: ignore[name-defined]  # noqa: F821
    room: Mapped["Room"] = relationship(lazy="selectin")  # type: ignore[name-defined]  # noqa: F821
    payments: Mapped[list["Payment"]] = relationship(  # type: ignore[name-defined]  # noqa: F821
        back_populates="booking",
        lazy="selectin",
        order_by="Payment.created_at",
    )

    __table_args__ = (
        Index("ix_bookings_room_dates", "room_id", "checkin_date", "checkout_date"),
        Index("ix_bookings_status_created_at", "status", "created_at"),
        CheckConstraint("checkout_date > checkin_date", name="ck_bookings_dates_ordered"),
    )

    @property
    def confirmation_number(self) -> str:
        return str(self.id).replace("-", "")[-8:].upper()

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, room_id={self.room_id}, user_id={self.user_id}, status={self.status})>"
