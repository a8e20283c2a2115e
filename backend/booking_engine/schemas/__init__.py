from booking_engine.schemas.booking import (
    BookingCreate, BookingResponse, BookingCreatedResponse, BookingPage, BookingStats, PurgeResponse,
    ReasonRequest,
)
from booking_engine.schemas.tour import TourCreate, TourResponse, StartDateAvailability
from booking_engine.schemas.payment import (
    PaymentIntentResponse, PaymentStateResponse, GatewayCallback, CallbackResult,
)

__all__ = [
    "BookingCreate", "BookingResponse", "BookingCreatedResponse", "BookingPage", "BookingStats", "PurgeResponse",
    "ReasonRequest",
    "TourCreate", "TourResponse", "StartDateAvailability",
    "PaymentIntentResponse", "PaymentStateResponse", "GatewayCallback", "CallbackResult",
]
