import pytest

from cleandispatch.errors import ValidationError
from cleandispatch.services.pricing import DEFAULT_ETA_MINUTES, RATE_PER_KM, PricingEngine

pricing = PricingEngine()


@pytest.mark.parametrize("distance, units", [(1, 1), (1000, 1), (1001, 2), (2300, 3)])
def test_partial_kilometres_are_rounded_up(distance, units):
    assert pricing.price(100000, distance).distance_price == units * RATE_PER_KM


def test_same_location_booking_has_no_distance_charge():
    breakdown = pricing.price(100000, 0)

    assert breakdown.distance_price == 0
    assert breakdown.total_price == 100000
    assert breakdown.estimated_eta_minutes == DEFAULT_ETA_MINUTES


def test_package_at_2300_meters():
    breakdown = pricing.price(100000, 2300, [], 1.0)

    assert breakdown.distance_price == 3 * RATE_PER_KM
    assert breakdown.total_price == 100000 + 3 * RATE_PER_KM
    assert breakdown.estimated_eta_minutes == 5


def test_extras_are_summed_from_dicts_and_objects():
    class Extra:
        price = 15000

    breakdown = pricing.price(50000, 0, [{"id": 1, "name": "Fridge", "price": 25000}, Extra()])

    assert breakdown.extra_price == 40000
    assert breakdown.total_price == 90000


def test_surge_is_applied_before_rounding_up():
    breakdown = pricing.price(1001, 0, surge=1.5)

    assert breakdown.total_price == 1502
    assert isinstance(breakdown.total_price, int)


def test_same_inputs_give_same_breakdown():
    extras = [{"price": 5000}]
    assert pricing.price(75000, 4321, extras, 1.2) == pricing.price(75000, 4321, extras, 1.2)


@pytest.mark.parametrize(
    "base, distance, extras, surge",
    [
        (-1, 0, [], 1.0),
        (100000, -5, [], 1.0),
        (100000, 0, [{"price": -100}], 1.0),
        (100000, 0, [], 0.9),
    ],
)
def test_invalid_inputs_are_rejected(base, distance, extras, surge):
    with pytest.raises(ValidationError):
        pricing.price(base, distance, extras, surge)
