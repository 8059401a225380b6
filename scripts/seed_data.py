"""Seed the database with demo hotels, rooms and staff accounts.

Creates an administrator (for the payment override endpoints), one hotel
owner and a handful of Ethiopian hotels with rooms. Guests are not seeded;
they are created by the booking flow.

Run from the repository root:
    python -m scripts.seed_data
"""

import asyncio
import os
import sys
from decimal import Decimal
from pathlib import Path

# Add the repository root to the path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import delete, select

from hotelbook.auth.passwords import hash_password
from hotelbook.database import async_session_factory, engine
from hotelbook.models import Hotel, Room, User
from hotelbook.models.enums import UserRole

# ---------------------------------------------------------------------------
# Seed data definitions
# ---------------------------------------------------------------------------

ADMIN_USER = {
    "first_name": "Admin",
    "last_name": "User",
    "phone": os.getenv("SEED_ADMIN_PHONE", "+251911567890"),
    "email": "admin@hotelbook.local",
    "password": os.getenv("SEED_ADMIN_PASSWORD", "admin12345"),
    "role": UserRole.ADMIN,
}

OWNER_USER = {
    "first_name": "Meron",
    "last_name": "Tadesse",
    "phone": "+251911456789",
    "email": "owner@hotelbook.local",
    "password": "owner12345",
    "role": UserRole.HOTEL_OWNER,
}

HOTELS = [
    {
        "name": "Skylight Hotel Addis",
        "location": "Bole, Addis Ababa",
        "description": "Airport-side business hotel with conference floors.",
        "rooms": [
            ("101", "Standard Single", Decimal("1200.00")),
            ("102", "Standard Double", Decimal("1800.00")),
            ("201", "Deluxe Suite", Decimal("3500.00")),
            ("301", "Presidential Suite", Decimal("6000.00")),
        ],
    },
    {
        "name": "Blue Nile Resort",
        "location": "Bahir Dar, Amhara",
        "description": "Lakeside resort on the shore of Lake Tana.",
        "rooms": [
            ("L1", "Lake View Room", Decimal("2200.00")),
            ("F1", "Family Room", Decimal("3200.00")),
        ],
    },
    {
        "name": "Rift Valley Lodge",
        "location": "Hawassa, SNNPR",
        "description": "Eco lodge with private villas and cabins.",
        "rooms": [
            ("V1", "Luxury Villa", Decimal("5500.00")),
            ("C1", "Eco Cabin", Decimal("1500.00")),
        ],
    },
]


async def _replace_user(session, data: dict) -> User:
    """Delete any user with the same phone and insert a fresh one."""
    await session.execute(delete(User).where(User.phone == data["phone"]))
    user = User(
        first_name=data["first_name"],
        last_name=data["last_name"],
        phone=data["phone"],
        email=data["email"],
        hashed_password=hash_password(data["password"]),
        role=data["role"],
        is_active=True,
    )
    session.add(user)
    await session.flush()
    return user


async def seed() -> None:
    """Populate hotels, rooms and staff accounts.

    Idempotent: seeded hotels are matched by name and recreated, which also
    removes their rooms and bookings through ``ON DELETE CASCADE``.
    """
    async with async_session_factory() as session:
        admin = await _replace_user(session, ADMIN_USER)
        owner = await _replace_user(session, OWNER_USER)
        print(f"✅ Admin: {admin.phone} / {ADMIN_USER['password']}")
        print(f"✅ Owner: {owner.phone} / {OWNER_USER['password']}")

        names = [h["name"] for h in HOTELS]
        existing = await session.execute(select(Hotel.id).where(Hotel.name.in_(names)))
        existing_ids = list(existing.scalars().all())
        if existing_ids:
            print(f"⚠️  Replacing {len(existing_ids)} previously seeded hotels")
            await session.execute(delete(Room).where(Room.hotel_id.in_(existing_ids)))
            await session.execute(delete(Hotel).where(Hotel.id.in_(existing_ids)))
            await session.flush()

        room_count = 0
        for hotel_data in HOTELS:
            hotel = Hotel(
                owner_id=owner.id,
                name=hotel_data["name"],
                location=hotel_data["location"],
                description=hotel_data["description"],
            )
            session.add(hotel)
            await session.flush()
            print(f"   🏨 {hotel.name} — {hotel.location} (id={hotel.id})")

            for number, room_type, price in hotel_data["rooms"]:
                room = Room(hotel_id=hotel.id, room_number=number, room_type=room_type, price_per_night=price)
                session.add(room)
                room_count += 1
                await session.flush()
                print(f"      🛏  {room.room_number} {room.room_type} — {room.price_per_night} ETB (id={room.id})")

        await session.commit()

    print()
    print(f"🎉 Seeded {len(HOTELS)} hotels and {room_count} rooms. Log in at /api/v1/auth/login")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
