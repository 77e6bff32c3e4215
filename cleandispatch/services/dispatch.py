"""
Smart dispatch: pick one cleaner for a new booking.

Candidates come from a SpatialCandidateProvider. The winner is chosen by a
strict lexicographic order (fewest active orders, then best rating, then
shortest distance). A failing or empty provider never blocks the booking;
the order is simply created unassigned.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import DISPATCH_CANDIDATE_LIMIT
from ..errors import NotFound
from ..models import User, UserRole, WorkerAccount, WorkerRole
from .interfaces import CleanerCandidate, SpatialCandidateProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssignedWorker:
    worker_account_id: int
    worker_user_id: int
    distance_meters: float


def rank_candidates(candidates: list[CleanerCandidate]) -> list[CleanerCandidate]:
    return sorted(candidates, key=lambda c: (c.active_orders, -c.rating, c.distance_meters))


def ensure_worker_bookkeeping_record(db: Session, user_id: int) -> int:
    """
    Return the WorkerAccount id for a user, creating it on first use.

    Email is the natural key and carries a unique constraint, so two concurrent
    first-time dispatches to the same cleaner end with a single row: the loser's
    insert fails inside its savepoint and it re-reads the winner's row.
    """
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound(f"User {user_id} not found")

    existing = db.query(WorkerAccount).filter(WorkerAccount.email == user.email).first()
    if existing:
        return existing.id

    role = WorkerRole.ADMIN.value if user.role == UserRole.ADMIN.value else WorkerRole.CLEANER.value
    try:
        with db.begin_nested():
            account = WorkerAccount(
                full_name=user.full_name,
                email=user.email,
                phone_number=user.phone_number,
                role=role,
            )
            db.add(account)
        logger.info(f"✅ Created worker account {account.id} for user {user_id} ({role})")
        return account.id
    except IntegrityError:
        logger.info(f"🔁 Worker account for user {user_id} created concurrently, re-reading")
        existing = db.query(WorkerAccount).filter(WorkerAccount.email == user.email).first()
        if not existing:
            raise
        return existing.id


class DispatchEngine:
    def __init__(self, db: Session, provider: SpatialCandidateProvider):
        self.db = db
        self.provider = provider

    def find_candidates(self, latitude: float, longitude: float, limit: int) -> list[CleanerCandidate]:
        """Provider lookup; any provider failure is logged and treated as no candidates"""
        try:
            # Savepoint so a failed spatial query cannot poison the order transaction
            with self.db.begin_nested():
                candidates = self.provider.find_nearest(latitude, longitude, limit)
        except Exception as e:
            logger.warning(f"⚠️ Candidate lookup failed, continuing unassigned: {e}")
            return []
        return [c for c in candidates if c.is_active]

    def dispatch(
        self, latitude: float, longitude: float, limit: int = DISPATCH_CANDIDATE_LIMIT
    ) -> Optional[AssignedWorker]:
        candidates = self.find_candidates(latitude, longitude, limit)
        if not candidates:
            logger.info(f"📭 No cleaner available near ({latitude}, {longitude}), order stays unassigned")
            return None

        for best in rank_candidates(candidates):
            try:
                worker_account_id = ensure_worker_bookkeeping_record(self.db, best.worker_user_id)
            except NotFound:
                logger.warning(f"⚠️ Candidate user {best.worker_user_id} has no identity record, trying next")
                continue
            break
        else:
            logger.info(f"📭 No dispatchable cleaner near ({latitude}, {longitude}), order stays unassigned")
            return None

        logger.info(
            f"🧹 Dispatched to worker {worker_account_id} (user {best.worker_user_id}, "
            f"{best.distance_meters:.0f}m, {best.active_orders} active, rating {best.rating})"
        )
        return AssignedWorker(
            worker_account_id=worker_account_id,
            worker_user_id=best.worker_user_id,
            distance_meters=best.distance_meters,
        )
