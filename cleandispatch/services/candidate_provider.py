"""
Nearest-cleaner lookup over CleanerProfile rows.

Distances are great-circle (haversine) metres. The provider filters by radius
and returns the best-ranked active cleaners; DispatchEngine makes the final pick.
"""

import logging
import math

from sqlalchemy.orm import Session

from ..config import DISPATCH_MAX_RADIUS_METERS
from ..models import CleanerProfile
from .dispatch import rank_candidates
from .interfaces import CleanerCandidate

logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6371000


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(a))


class ProfileCandidateProvider:
    def __init__(self, db: Session, max_radius_meters: float = DISPATCH_MAX_RADIUS_METERS):
        self.db = db
        self.max_radius_meters = max_radius_meters

    def find_nearest(self, latitude: float, longitude: float, limit: int) -> list[CleanerCandidate]:
        profiles = (
            self.db.query(CleanerProfile)
            .filter(
                CleanerProfile.is_active.is_(True),
                CleanerProfile.latitude.isnot(None),
                CleanerProfile.longitude.isnot(None),
            )
            .all()
        )

        candidates = []
        for profile in profiles:
            distance = haversine_meters(latitude, longitude, profile.latitude, profile.longitude)
            if distance > self.max_radius_meters:
                continue
            candidates.append(
                CleanerCandidate(
                    worker_user_id=profile.user_id,
                    active_orders=profile.active_orders,
                    rating=profile.rating,
                    is_active=profile.is_active,
                    distance_meters=round(distance, 2),
                )
            )

        logger.debug(
            f"📍 {len(candidates)} active cleaners within {self.max_radius_meters:.0f}m of ({latitude}, {longitude})"
        )
        # Ranked before truncation, in the same order DispatchEngine picks from
        return rank_candidates(candidates)[:limit]
