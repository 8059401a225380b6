"""Inventory store — persistence accessors for hotels and rooms."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hotelbook.models.enums import HotelStatus, RoomStatus
from hotelbook.models.hotel import Hotel, Room


class InventoryStore:
    """Reads hotels/rooms and flips room status. No business rules live here."""

    async def find_active_hotel(self, db: AsyncSession, hotel_id: uuid.UUID) -> Hotel | None:
        result = await db.execute(
            select(Hotel).where(Hotel.id == hotel_id, Hotel.status == HotelStatus.ACTIVE)
        )
        return result.scalar_one_or_none()

    async def lock_room(self, db: AsyncSession, room_id: uuid.UUID, hotel_id: uuid.UUID) -> Room | None:
        """Fetch the room with ``SELECT … FOR UPDATE``.

        Concurrent bookings of the same room serialise on this lock until the
        holder commits or rolls back.
        """
        result = await db.execute(
            select(Room)
            .where(Room.id == room_id, Room.hotel_id == hotel_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_available_room(self, db: AsyncSession, room_id: uuid.UUID, hotel_id: uuid.UUID) -> Room | None:
        result = await db.execute(
            select(Room).where(
                Room.id == room_id,
                Room.hotel_id == hotel_id,
                Room.status == RoomStatus.AVAILABLE,
            )
        )
        return result.scalar_one_or_none()

    async def set_room_status(self, db: AsyncSession, room_id: uuid.UUID, status: RoomStatus) -> None:
        room = await db.get(Room, room_id)
        if room is None:
            return
        room.status = status
        await db.flush()
