"""Guest directory — walk-in customers identified by phone number."""

import logging

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from hotelbook.errors import BadRequestError
from hotelbook.models.enums import UserRole
from hotelbook.models.user import User

logger = logging.getLogger(__name__)

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _dialect_insert(db: AsyncSession):
    return _INSERTS[db.get_bind().dialect.name]


def split_guest_name(user_name: str) -> tuple[str, str]:
    """Split ``"Abebe Kebede Tesfaye"`` into ``("Abebe", "Kebede Tesfaye")``.

    A single-token name is used for both parts.
    """
    first, _, rest = user_name.strip().partition(" ")
    last = rest.strip() or first
    return first, last


class GuestDirectory:
    """Find-or-create of guest users keyed by phone."""

    def __init__(self, email_domain: str) -> None:
        self.email_domain = email_domain

    async def find_by_phone(self, db: AsyncSession, phone: str) -> User | None:
        result = await db.execute(select(User).where(User.phone == phone))
        return result.scalar_one_or_none()

    async def get_or_create(self, db: AsyncSession, user_name: str, phone: str) -> User:
        """Return the guest for ``phone``, inserting one if none exists.

        The insert is ``ON CONFLICT DO NOTHING`` so two first-time bookings
        from the same phone both end up with the row whichever commits first.
        """
        user = await self.find_by_phone(db, phone)
        if user is not None:
            return user

        first_name, last_name = split_guest_name(user_name)
        stmt = (
            _dialect_insert(db)(User)
            .values(
                first_name=first_name,
                last_name=last_name,
                phone=phone,
                email=f"{phone}@{self.email_domain}",
                hashed_password=None,
                role=UserRole.CUSTOMER,
            )
            .on_conflict_do_nothing()
        )
        result = await db.execute(stmt)

        user = await self.find_by_phone(db, phone)
        if user is None:
            raise BadRequestError(f"A user with email {phone}@{self.email_domain} already exists")
        if result.rowcount:
            logger.info("Created guest user %s for phone %s", user.id, phone)
        else:
            logger.info("Guest user %s for phone %s was created concurrently", user.id, phone)
        return user
