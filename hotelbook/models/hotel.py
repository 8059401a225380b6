"""Hotel and Room models — the bookable inventory."""

import uuid
from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hotelbook.database import Base, TimestampMixin, UUIDPrimaryKeyMixin
from hotelbook.models.enums import HotelStatus, RoomStatus


class Hotel(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A hotel listed on the platform. Read-only for the booking engine."""

    __tablename__ = "hotels"

    owner_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    status: Mapped[str] = mapped_column(String(50), default=HotelStatus.ACTIVE, nullable=False)

    # Relationships
    rooms: Mapped[list["Room"]] = relationship(back_populates="hotel", lazy="raise")

    def __repr__(self) -> str:
        return f"<Hotel(id={self.id}, name={self.name!r}, status={self.status})>"


class Room(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A single room. Its status doubles as the booking hold.

    ``occupied`` is set when a booking is created and cleared when the
    booking is cancelled, expired or its payment fails.
    """

    __tablename__ = "rooms"

    hotel_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("hotels.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    room_number: Mapped[str] = mapped_column(String(50), nullable=False)
    room_type: Mapped[str] = mapped_column(String(100), nullable=False)
    price_per_night: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    status: Mapped[str] = mapped_column(
        String(50),
        default=RoomStatus.AVAILABLE,
        nullable=False,
        index=True,
    )  # available, occupied, maintenance, out_of_order

    # Relationships
    hotel: Mapped["Hotel"] = relationship(back_populates="rooms", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("hotel_id", "room_number", name="uq_rooms_hotel_room_number"),
        CheckConstraint("price_per_night > 0", name="ck_rooms_price_positive"),
    )

    def __repr__(self) -> str:
        return f"<Room(id={self.id}, number={self.room_number!r}, status={self.status})>"
