"""User model — guests, hotel owners and administrators."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from hotelbook.database import Base, TimestampMixin, UUIDPrimaryKeyMixin
from hotelbook.models.enums import UserRole


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A person who books rooms, owns hotels or administers the system.

    Guests created by the booking flow have no password; they are keyed by
    phone number and receive a synthesized placeholder email.
    """

    __tablename__ = "users"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    phone: Mapped[str] = mapped_column(String(20), unique=True, index=True, nullable=False)
    hashed_password: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(50), default=UserRole.CUSTOMER, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<User id={self.id} phone={self.phone!r} role={self.role!r}>"
