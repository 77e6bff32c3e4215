"""
Order Notifications

Notification rows are written in the same transaction as the status change
that caused them. Delivery to the push gateway happens only after commit and
is best-effort: a failed delivery is logged, never retried, and never undoes
the state change.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from ..config import NOTIFICATION_WEBHOOK_URL
from ..models import Notification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutboundNotification:
    user_id: int
    title: str
    message: str


# ----------------------------------------------------------------------------
# Message catalogue
# ----------------------------------------------------------------------------


def payment_reminder(order_number: int) -> tuple[str, str]:
    return (
        "Complete Your Payment",
        f"You chose a non-cash payment for order #{order_number}. Please pay within 1 hour "
        "so we can process it. Unpaid orders are cancelled automatically.",
    )


def new_order_nearby(order_number: int, distance_meters: float) -> tuple[str, str]:
    return (
        "New Order Nearby!",
        f"Order #{order_number} just came in near you ({distance_meters / 1000:.1f} km).",
    )


def order_confirmed(order_number: int, package_name: str) -> tuple[str, str]:
    return (
        "Order Confirmed",
        f"Your cleaner is on the way! Order #{order_number} ({package_name}) has been confirmed.",
    )


def payment_succeeded(order_number: int) -> tuple[str, str]:
    return ("Payment Successful", f"Payment for order #{order_number} was successful. Thank you!")


def order_auto_cancelled(order_number: int) -> tuple[str, str]:
    return (
        "Order Cancelled Automatically",
        f"Order #{order_number} was cancelled because no payment arrived within 1 hour. "
        "Please place a new order if you still need a cleaning.",
    )


def order_cancelled(order_number: int) -> tuple[str, str]:
    return ("Order Cancelled", f"Order #{order_number} has been cancelled by our team.")


# ----------------------------------------------------------------------------
# Recording (inside the transaction)
# ----------------------------------------------------------------------------


class NotificationRecorder:
    """Persists notifications with the caller's transaction and queues them for delivery"""

    def __init__(self, db: Session):
        self.db = db
        self.pending: list[OutboundNotification] = []

    def record(self, user_id: int, title: str, message: str, order_id: Optional[int] = None) -> Notification:
        notification = Notification(user_id=user_id, order_id=order_id, title=title, message=message)
        self.db.add(notification)
        self.pending.append(OutboundNotification(user_id=user_id, title=title, message=message))
        return notification

    def discard(self) -> None:
        """Drop queued deliveries after a rollback"""
        self.pending.clear()

    async def deliver(self, notifier) -> dict:
        """Hand committed notifications to the notifier. Returns a delivery summary."""
        pending, self.pending = self.pending, []
        result = {"sent": 0, "failed": 0}
        for item in pending:
            try:
                await notifier.notify(item.user_id, item.title, item.message)
                result["sent"] += 1
            except Exception as e:
                result["failed"] += 1
                logger.error(f"❌ Failed to deliver '{item.title}' notification to user {item.user_id}: {e}")
        return result


# ----------------------------------------------------------------------------
# Delivery transports
# ----------------------------------------------------------------------------


class LoggingNotifier:
    async def notify(self, user_id: int, title: str, message: str) -> None:
        logger.info(f"🔔 Notification for user {user_id}: {title} - {message}")


class WebhookNotifier:
    """POSTs each notification as JSON to the push gateway"""

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    async def notify(self, user_id: int, title: str, message: str) -> None:
        async with httpx.AsyncClient(timeout=self.timeout) as http_client:
            response = await http_client.post(
                self.url,
                json={"user_id": user_id, "title": title, "message": message},
            )
            response.raise_for_status()
        logger.info(f"✅ Notification '{title}' delivered to user {user_id}")


def build_notifier(url: Optional[str] = NOTIFICATION_WEBHOOK_URL):
    if url:
        return WebhookNotifier(url)
    logger.warning("⚠️ NOTIFICATION_WEBHOOK_URL not configured, notifications will only be logged")
    return LoggingNotifier()
