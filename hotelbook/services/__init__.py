"""Service wiring — builds the ledgers, orchestrator and sweeper once per process."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hotelbook.config import Settings
from hotelbook.ledgers.bookings import BookingLedger
from hotelbook.ledgers.guests import GuestDirectory
from hotelbook.ledgers.inventory import InventoryStore
from hotelbook.ledgers.payments import PaymentLedger
from hotelbook.services.orchestrator import BookingOrchestrator
from hotelbook.services.sweeper import ExpirySweeper


def build_orchestrator(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
) -> tuple[BookingOrchestrator, ExpirySweeper]:
    """Create the orchestrator and sweeper over one shared set of ledgers."""
    inventory = InventoryStore()
    bookings = BookingLedger()
    payments = PaymentLedger()
    orchestrator = BookingOrchestrator(
        session_factory,
        inventory=inventory,
        bookings=bookings,
        payments=payments,
        guests=GuestDirectory(settings.guest_email_domain),
        settings=settings,
    )
    sweeper = ExpirySweeper(
        session_factory,
        inventory=inventory,
        bookings=bookings,
        payments=payments,
        hold_minutes=settings.booking_hold_minutes,
    )
    return orchestrator, sweeper


__all__ = ["BookingOrchestrator", "ExpirySweeper", "build_orchestrator"]
