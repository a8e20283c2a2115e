"""
Pricing calculator.

Pure function, no state: the total is computed once when a booking is created
and stored on the booking; later transitions never recompute it.
"""

from booking_engine.core.errors import InvalidHeadcount


def compute_total(base_price: int, headcount: int, transport_surcharge: int = 0) -> int:
    """(base price + per-person transport surcharge) * headcount."""
    if headcount < 1:
        raise InvalidHeadcount(headcount)
    if base_price < 0 or transport_surcharge < 0:
        raise ValueError("Prices cannot be negative")
    return (base_price + transport_surcharge) * headcount
