"""
Service Area Containment

Bookings are accepted only inside one of the configured lat/lng boxes.
Boxes are configured as "min_lat,min_lng,max_lat,max_lng" separated by ";".
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from ..config import SERVICE_AREA_BOUNDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AreaBox:
    lat_min: float
    lng_min: float
    lat_max: float
    lng_max: float

    def contains(self, latitude: float, longitude: float) -> bool:
        return self.lat_min <= latitude <= self.lat_max and self.lng_min <= longitude <= self.lng_max


def parse_bounds(raw: str) -> list[AreaBox]:
    boxes = []
    for chunk in raw.split(";"):
        chunk = chunk.strip()
        if not chunk:
            continue
        parts = [p.strip() for p in chunk.split(",")]
        if len(parts) != 4:
            raise ValueError(f"Invalid service area box '{chunk}': expected 4 comma-separated numbers")
        lat_a, lng_a, lat_b, lng_b = (float(p) for p in parts)
        boxes.append(
            AreaBox(
                lat_min=min(lat_a, lat_b),
                lng_min=min(lng_a, lng_b),
                lat_max=max(lat_a, lat_b),
                lng_max=max(lng_a, lng_b),
            )
        )
    return boxes


class BoundingBoxServiceArea:
    """Validates booking coordinates against configured service areas."""

    def __init__(self, boxes: Optional[Iterable[AreaBox]] = None):
        self.boxes = list(boxes) if boxes is not None else parse_bounds(SERVICE_AREA_BOUNDS)
        if not self.boxes:
            logger.warning("⚠️ No service area configured - every location will be rejected")

    def contains(self, latitude: float, longitude: float) -> bool:
        if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
            return False
        inside = any(box.contains(latitude, longitude) for box in self.boxes)
        if not inside:
            logger.info(f"🚫 Location ({latitude}, {longitude}) outside service area")
        return inside
