"""
Order status transitions and their guards

Order statuses: PENDING → PROCESSING → IN_PROGRESS → COMPLETED
CANCELLED is reachable from PENDING or PROCESSING only.

Note:
- COMPLETED is set only by the customer's completion verification
- IN_PROGRESS may be entered straight from PENDING by an admin assignment

The state machine mutates the ORM objects it is given but never commits;
callers own the transaction so that every multi-row change is atomic.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from ..config import COMPLETION_GRACE_MINUTES
from ..errors import Forbidden, InvalidTransition
from ..models import Order, OrderStatus, PaymentMethod, PaymentStatus, utcnow

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING.value: [
        OrderStatus.PROCESSING.value,
        OrderStatus.IN_PROGRESS.value,
        OrderStatus.CANCELLED.value,
    ],
    OrderStatus.PROCESSING.value: [OrderStatus.IN_PROGRESS.value, OrderStatus.CANCELLED.value],
    OrderStatus.IN_PROGRESS.value: [OrderStatus.COMPLETED.value],
    OrderStatus.COMPLETED.value: [],  # Terminal state
    OrderStatus.CANCELLED.value: [],  # Terminal state
}

CANCELLABLE_STATUSES = (OrderStatus.PENDING.value, OrderStatus.PROCESSING.value)


def can_transition(current_status: str, new_status: str) -> bool:
    return new_status in ALLOWED_TRANSITIONS.get(current_status, [])


def ensure_transition(current_status: str, new_status: str, reason: Optional[str] = None) -> None:
    if not can_transition(current_status, new_status):
        raise InvalidTransition(current_status, new_status, reason)


def is_cash(order: Order) -> bool:
    return order.payment is not None and order.payment.method == PaymentMethod.CASH.value


def is_paid(order: Order) -> bool:
    return order.payment is not None and order.payment.status == PaymentStatus.PAID.value


def ensure_grace_period_elapsed(
    order: Order, requested: str, now: datetime, grace_minutes: int = COMPLETION_GRACE_MINUTES
) -> None:
    ready_at = order.scheduled_time + timedelta(minutes=grace_minutes)
    if now < ready_at:
        raise InvalidTransition(
            order.status,
            requested,
            f"available {grace_minutes} minutes after the scheduled time ({ready_at.isoformat()})",
        )


def ensure_payment_settled(order: Order, requested: str) -> None:
    """Non-cash orders must be PAID; cash is settled on completion"""
    if order.payment is None:
        raise InvalidTransition(order.status, requested, "order has no payment")
    if not is_cash(order) and not is_paid(order):
        raise InvalidTransition(order.status, requested, "payment has not been confirmed")


def ensure_tip_recorded(order: Order, requested: str) -> None:
    if order.tip is None:
        raise InvalidTransition(order.status, requested, "a tip (may be 0) must be submitted first")


def ensure_assigned_worker(order: Order, worker_account_id: int, requested: str) -> None:
    if order.assigned_worker_id is None:
        raise InvalidTransition(order.status, requested, "order has no assigned worker")
    if order.assigned_worker_id != worker_account_id:
        raise Forbidden("Only the assigned worker can confirm this order")


class OrderStateMachine:
    def __init__(self, grace_minutes: int = COMPLETION_GRACE_MINUTES):
        self.grace_minutes = grace_minutes

    def assign(self, order: Order, worker_account_id: int) -> bool:
        """
        Admin assignment: PENDING/PROCESSING → IN_PROGRESS.
        Returns False when the order is already in progress with this worker.
        """
        requested = OrderStatus.IN_PROGRESS.value
        if order.status == requested and order.assigned_worker_id == worker_account_id:
            return False
        if order.status not in CANCELLABLE_STATUSES:
            raise InvalidTransition(order.status, requested, "only pending or processing orders can be assigned")

        previous = order.status
        order.assigned_worker_id = worker_account_id
        order.status = requested
        logger.info(f"✅ Order {order.id} transitioned: {previous} → {requested} (worker {worker_account_id})")
        return True

    def mark_processing(self, order: Order) -> bool:
        """PENDING → PROCESSING once payment is PAID. False if already PROCESSING."""
        requested = OrderStatus.PROCESSING.value
        if order.status == requested:
            return False
        ensure_transition(order.status, requested)
        if not is_paid(order):
            raise InvalidTransition(order.status, requested, "payment has not been marked paid")

        order.status = requested
        logger.info(f"✅ Order {order.id} transitioned: PENDING → PROCESSING")
        return True

    def confirm(self, order: Order, worker_account_id: int) -> bool:
        """Assigned worker confirms: PROCESSING → IN_PROGRESS. False if already IN_PROGRESS."""
        requested = OrderStatus.IN_PROGRESS.value
        if order.status not in (OrderStatus.PROCESSING.value, requested):
            raise InvalidTransition(order.status, requested, "only processing orders can be confirmed")
        ensure_assigned_worker(order, worker_account_id, requested)

        if order.status == requested:
            return False
        order.status = requested
        logger.info(f"✅ Order {order.id} transitioned: PROCESSING → IN_PROGRESS (confirmed by {worker_account_id})")
        return True

    def ensure_after_photos_allowed(self, order: Order, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        requested = OrderStatus.COMPLETED.value
        if order.status != OrderStatus.IN_PROGRESS.value:
            raise InvalidTransition(order.status, requested, "after photos can only be uploaded while in progress")
        ensure_grace_period_elapsed(order, requested, now, self.grace_minutes)
        ensure_payment_settled(order, requested)

    def complete(self, order: Order, now: Optional[datetime] = None) -> None:
        """
        Customer verification: IN_PROGRESS → COMPLETED.
        Settles the payment in the same change when it is still PENDING.
        """
        now = now or utcnow()
        requested = OrderStatus.COMPLETED.value
        ensure_transition(order.status, requested)
        ensure_grace_period_elapsed(order, requested, now, self.grace_minutes)
        ensure_payment_settled(order, requested)
        ensure_tip_recorded(order, requested)

        order.status = requested
        if order.payment.status != PaymentStatus.PAID.value:
            order.payment.status = PaymentStatus.PAID.value
            logger.info(f"💰 Payment {order.payment.id} settled on completion ({order.payment.method})")
        logger.info(f"✅ Order {order.id} transitioned: IN_PROGRESS → COMPLETED")

    def cancel(self, order: Order) -> None:
        requested = OrderStatus.CANCELLED.value
        if order.status not in CANCELLABLE_STATUSES:
            raise InvalidTransition(order.status, requested, "only pending or processing orders can be cancelled")
        previous = order.status
        order.status = requested
        logger.info(f"✅ Order {order.id} transitioned: {previous} → CANCELLED")
