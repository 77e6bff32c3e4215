"""Contracts for collaborators the order engine consumes but does not own"""

from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy.orm import Session


@dataclass(frozen=True)
class CleanerCandidate:
    worker_user_id: int
    active_orders: int
    rating: float
    is_active: bool
    distance_meters: float


@dataclass(frozen=True)
class GatewayTransaction:
    """Authoritative transaction state as reported by the payment gateway"""

    order_id: str
    gross_amount: str
    status_code: str
    transaction_status: str
    fraud_status: Optional[str] = None


@dataclass(frozen=True)
class CustomerDetails:
    first_name: str
    email: str
    phone: Optional[str] = None
    last_name: str = ""


class SpatialCandidateProvider(Protocol):
    def find_nearest(self, latitude: float, longitude: float, limit: int) -> list[CleanerCandidate]:
        ...


class CandidateProviderFactory(Protocol):
    def __call__(self, db: Session) -> SpatialCandidateProvider:
        ...


class ServiceAreaChecker(Protocol):
    def contains(self, latitude: float, longitude: float) -> bool:
        ...


class PaymentGateway(Protocol):
    async def verify_transaction(self, transaction_id: str) -> GatewayTransaction:
        ...

    async def create_transaction_token(
        self, transaction_id: str, amount: int, customer: CustomerDetails
    ) -> str:
        ...


class Notifier(Protocol):
    async def notify(self, user_id: int, title: str, message: str) -> None:
        ...
