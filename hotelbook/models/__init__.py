"""SQLAlchemy models for the hotel booking engine.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from hotelbook.models.booking import Booking
from hotelbook.models.hotel import Hotel, Room
from hotelbook.models.payment import Payment, PaymentLog
from hotelbook.models.user import User

__all__ = [
    "Booking",
    "Hotel",
    "Payment",
    "PaymentLog",
    "Room",
    "User",
]
