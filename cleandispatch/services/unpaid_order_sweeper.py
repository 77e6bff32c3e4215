"""
Automatic cancellation of unpaid non-cash orders

Runs on a fixed interval from the arq worker. Each stale order is cancelled
in its own transaction so one failure never aborts the rest of the batch, and
a concurrent or repeated run finds nothing left to do.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session, sessionmaker

from ..config import UNPAID_ORDER_TIMEOUT_MINUTES
from ..models import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus, utcnow
from .interfaces import Notifier
from .notification_service import NotificationRecorder, order_auto_cancelled

logger = logging.getLogger(__name__)


def find_stale_unpaid_order_ids(db: Session, cutoff: datetime) -> list[int]:
    rows = (
        db.query(Payment.order_id)
        .join(Order, Order.id == Payment.order_id)
        .filter(
            Payment.method != PaymentMethod.CASH.value,
            Payment.status == PaymentStatus.PENDING.value,
            Payment.created_at <= cutoff,
            Order.status == OrderStatus.PENDING.value,
        )
        .order_by(Payment.created_at.asc())
        .all()
    )
    return [row.order_id for row in rows]


class UnpaidOrderSweeper:
    def __init__(
        self,
        session_factory: sessionmaker,
        notifier: Notifier,
        timeout_minutes: int = UNPAID_ORDER_TIMEOUT_MINUTES,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.timeout_minutes = timeout_minutes

    async def sweep(self, now: Optional[datetime] = None) -> dict:
        """
        Cancel every non-cash order whose payment is still PENDING after the
        unpaid window.

        Returns:
            dict: Summary of the run
        """
        summary = {"candidates": 0, "cancelled": 0, "skipped": 0, "failed": 0}
        now = now or utcnow()
        cutoff = now - timedelta(minutes=self.timeout_minutes)

        db = self.session_factory()
        try:
            order_ids = find_stale_unpaid_order_ids(db, cutoff)
            db.rollback()  # end the read transaction before per-order work
            summary["candidates"] = len(order_ids)
            if order_ids:
                logger.info(f"⏰ Found {len(order_ids)} unpaid orders older than {self.timeout_minutes} minutes")

            for order_id in order_ids:
                recorder = NotificationRecorder(db)
                try:
                    cancelled = self.cancel_unpaid_order(db, recorder, order_id)
                except Exception as e:
                    db.rollback()
                    recorder.discard()
                    summary["failed"] += 1
                    logger.error(f"❌ Failed to auto-cancel order {order_id}: {e}")
                    continue

                if cancelled:
                    summary["cancelled"] += 1
                    await recorder.deliver(self.notifier)
                else:
                    summary["skipped"] += 1
        finally:
            db.close()

        if summary["candidates"]:
            logger.info(f"📊 Unpaid order sweep: {summary}")
        return summary

    def cancel_unpaid_order(self, db: Session, recorder: NotificationRecorder, order_id: int) -> bool:
        """Cancel one order if it is still PENDING. Commits on success."""
        updated = (
            db.query(Order)
            .filter(Order.id == order_id, Order.status == OrderStatus.PENDING.value)
            .update({Order.status: OrderStatus.CANCELLED.value}, synchronize_session=False)
        )
        if not updated:
            db.rollback()
            logger.info(f"🔁 Order {order_id} no longer PENDING, skipping auto-cancel")
            return False

        user_id, order_number = (
            db.query(Order.user_id, Order.order_number).filter(Order.id == order_id).one()
        )
        recorder.record(user_id, *order_auto_cancelled(order_number), order_id=order_id)
        db.commit()
        logger.info(f"✅ Order {order_id} transitioned: PENDING → CANCELLED (unpaid after {self.timeout_minutes}m)")
        return True
