"""
Tests for booking price computation.
"""

import pytest

from booking_engine.core.errors import InvalidHeadcount
from booking_engine.services.pricing import compute_total


def test_total_includes_transport_per_person():
    assert compute_total(1_000_000, 2, 100_000) == 2_200_000


def test_total_without_transport():
    assert compute_total(750_000, 3) == 2_250_000


def test_free_tour_costs_only_transport():
    assert compute_total(0, 4, 50_000) == 200_000


@pytest.mark.parametrize("headcount", [0, -1])
def test_headcount_must_be_positive(headcount):
    with pytest.raises(InvalidHeadcount):
        compute_total(1_000_000, headcount)


def test_negative_prices_rejected():
    with pytest.raises(ValueError):
        compute_total(-1, 1)
    with pytest.raises(ValueError):
        compute_total(1_000_000, 1, -10)
