"""
Order pricing

Pure arithmetic over the package base price, the dispatch distance, selected
extras and a surge multiplier. No I/O, safe to call from any request handler.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Mapping, Union

from ..errors import ValidationError

RATE_PER_KM = 2000  # IDR per started kilometre
METERS_PER_MINUTE = 500
DEFAULT_ETA_MINUTES = 30


@dataclass(frozen=True)
class PriceBreakdown:
    base_price: int
    distance_price: int
    extra_price: int
    surge_multiplier: float
    total_price: int
    estimated_eta_minutes: int


def _extra_amount(extra: Union[Mapping, object]) -> int:
    if isinstance(extra, Mapping):
        return extra.get("price", 0)
    return getattr(extra, "price", 0)


class PricingEngine:
    def __init__(self, rate_per_km: int = RATE_PER_KM, meters_per_minute: int = METERS_PER_MINUTE):
        self.rate_per_km = rate_per_km
        self.meters_per_minute = meters_per_minute

    def price(
        self,
        base_price: int,
        distance_meters: float,
        extras: Iterable = (),
        surge: float = 1.0,
    ) -> PriceBreakdown:
        if base_price is None or base_price < 0:
            raise ValidationError("Base price must be a non-negative amount")
        if distance_meters is None or distance_meters < 0:
            raise ValidationError("Distance must be non-negative")
        if surge is None or surge < 1:
            raise ValidationError("Surge multiplier must be at least 1.0")

        extra_amounts = [_extra_amount(extra) for extra in extras]
        if any(amount is None or amount < 0 for amount in extra_amounts):
            raise ValidationError("Extra prices must be non-negative")

        # Partial kilometres are charged as a full kilometre
        distance_price = math.ceil(distance_meters / 1000) * self.rate_per_km
        extra_price = sum(extra_amounts)
        total_price = math.ceil((base_price + distance_price + extra_price) * surge)

        return PriceBreakdown(
            base_price=base_price,
            distance_price=distance_price,
            extra_price=extra_price,
            surge_multiplier=surge,
            total_price=total_price,
            estimated_eta_minutes=self.estimate_eta(distance_meters),
        )

    def estimate_eta(self, distance_meters: float) -> int:
        if distance_meters and distance_meters > 0:
            return math.ceil(distance_meters / self.meters_per_minute)
        return DEFAULT_ETA_MINUTES
