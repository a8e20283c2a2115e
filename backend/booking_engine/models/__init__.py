from booking_engine.models.tour import Tour, TourStartDate, TourTransport
from booking_engine.models.capacity import CapacityRecord
from booking_engine.models.booking import Booking, BookingStatus, PaymentMethod, PaymentStatus
from booking_engine.models.payment import PaymentIntent, IntentStatus

__all__ = [
    "Tour", "TourStartDate", "TourTransport",
    "CapacityRecord",
    "Booking", "BookingStatus", "PaymentMethod", "PaymentStatus",
    "PaymentIntent", "IntentStatus",
]
