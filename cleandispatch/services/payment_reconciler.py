"""
Midtrans Payment Reconciliation

The webhook is the only path that moves a non-cash payment to PAID; clients
can never assert a payment themselves. Every notification is acknowledged,
whatever happens here, so the gateway does not retry forever. Each branch is
logged and reported as a WebhookOutcome instead.
"""

import enum
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..config import MIDTRANS_SERVER_KEY, MIDTRANS_VERIFY_WITH_STATUS_API
from ..errors import GatewayUnavailable, WebhookAuthenticityFailure
from ..models import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus
from ..webhook_security import amounts_match, missing_midtrans_fields, verify_midtrans_signature
from .interfaces import GatewayTransaction, Notifier, PaymentGateway
from .notification_service import NotificationRecorder, payment_succeeded

logger = logging.getLogger(__name__)


class WebhookOutcome(str, enum.Enum):
    PAID = "paid"
    ALREADY_PAID = "already_paid"
    NO_CHANGE = "no_change"
    IGNORED_MISSING_FIELDS = "ignored_missing_fields"
    IGNORED_UNKNOWN_PAYMENT = "ignored_unknown_payment"
    IGNORED_CASH = "ignored_cash"
    REJECTED = "rejected"
    ERROR = "error"


def maps_to_paid(transaction_status: str, fraud_status: Optional[str]) -> bool:
    """settlement, or capture accepted by fraud detection. pending/deny/cancel/expire change nothing."""
    if transaction_status == "settlement":
        return True
    return transaction_status == "capture" and fraud_status == "accept"


class PaymentReconciler:
    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        notifier: Notifier,
        server_key: str = MIDTRANS_SERVER_KEY,
        verify_with_status_api: bool = MIDTRANS_VERIFY_WITH_STATUS_API,
    ):
        self.db = db
        self.gateway = gateway
        self.notifier = notifier
        self.server_key = server_key
        self.verify_with_status_api = verify_with_status_api
        self.notifications = NotificationRecorder(db)

    async def handle_webhook(self, payload) -> WebhookOutcome:
        try:
            return await self._process(payload)
        except Exception as e:
            self.db.rollback()
            self.notifications.discard()
            logger.exception(f"❌ Webhook processing failed, acknowledging anyway: {e}")
            return WebhookOutcome.ERROR

    async def _process(self, payload) -> WebhookOutcome:
        if not isinstance(payload, dict):
            logger.error("❌ Webhook: invalid notification format")
            return WebhookOutcome.IGNORED_MISSING_FIELDS

        missing = missing_midtrans_fields(payload)
        if missing:
            logger.error(f"❌ Webhook: missing required fields {missing}")
            return WebhookOutcome.IGNORED_MISSING_FIELDS

        logger.info(
            f"📥 Webhook received: order_id={payload['order_id']} status={payload['transaction_status']} "
            f"amount={payload['gross_amount']}"
        )

        try:
            transaction = await self.verify(payload)
        except WebhookAuthenticityFailure as e:
            logger.warning(f"🚫 Webhook discarded for {payload.get('order_id')}: {e}")
            return WebhookOutcome.REJECTED

        payment = self.db.query(Payment).filter(Payment.gateway_order_id == transaction.order_id).first()
        if not payment:
            logger.warning(f"⚠️ Webhook: no payment for gateway order_id {transaction.order_id}")
            return WebhookOutcome.IGNORED_UNKNOWN_PAYMENT

        if payment.method == PaymentMethod.CASH.value:
            logger.warning(f"⚠️ Webhook: payment {payment.id} is CASH, gateway cannot settle it")
            return WebhookOutcome.IGNORED_CASH

        if payment.status == PaymentStatus.PAID.value:
            logger.info(f"🔁 Webhook: payment {payment.id} already PAID, nothing to do")
            return WebhookOutcome.ALREADY_PAID

        if not amounts_match(transaction.gross_amount, payment.amount):
            logger.warning(
                f"🚫 Webhook: amount {transaction.gross_amount} does not match payment {payment.id} ({payment.amount})"
            )
            return WebhookOutcome.REJECTED

        if not maps_to_paid(transaction.transaction_status, transaction.fraud_status):
            logger.info(
                f"ℹ️ Webhook: payment {payment.id} stays PENDING "
                f"(transaction_status={transaction.transaction_status}, fraud_status={transaction.fraud_status})"
            )
            return WebhookOutcome.NO_CHANGE

        return await self._mark_paid(payment)

    async def verify(self, payload: dict) -> GatewayTransaction:
        """
        Signature check, then (optionally) a status re-fetch from the gateway.
        The re-fetched status is authoritative over the payload's.
        """
        if not verify_midtrans_signature(payload, self.server_key):
            raise WebhookAuthenticityFailure("invalid signature")

        order_id = str(payload["order_id"])
        if not self.verify_with_status_api:
            return GatewayTransaction(
                order_id=order_id,
                gross_amount=str(payload["gross_amount"]),
                status_code=str(payload["status_code"]),
                transaction_status=str(payload["transaction_status"]),
                fraud_status=payload.get("fraud_status"),
            )

        try:
            transaction = await self.gateway.verify_transaction(order_id)
        except GatewayUnavailable as e:
            raise WebhookAuthenticityFailure(f"status lookup unavailable: {e}") from e

        if transaction.order_id != order_id:
            raise WebhookAuthenticityFailure(f"order_id mismatch ({transaction.order_id})")
        if not amounts_match(transaction.gross_amount, payload["gross_amount"]):
            raise WebhookAuthenticityFailure(f"gross_amount mismatch ({transaction.gross_amount})")
        if transaction.status_code != str(payload["status_code"]):
            raise WebhookAuthenticityFailure(f"status_code mismatch ({transaction.status_code})")
        return transaction

    async def _mark_paid(self, payment: Payment) -> WebhookOutcome:
        order = payment.order
        order_id, user_id, order_number = order.id, order.user_id, order.order_number

        # Conditional update: only one concurrent delivery wins the PENDING → PAID move
        updated = (
            self.db.query(Payment)
            .filter(Payment.id == payment.id, Payment.status == PaymentStatus.PENDING.value)
            .update({Payment.status: PaymentStatus.PAID.value}, synchronize_session=False)
        )
        if updated == 0:
            self.db.rollback()
            logger.info(f"🔁 Webhook: payment {payment.id} settled by a concurrent delivery")
            return WebhookOutcome.ALREADY_PAID

        advanced = (
            self.db.query(Order)
            .filter(Order.id == order_id, Order.status == OrderStatus.PENDING.value)
            .update({Order.status: OrderStatus.PROCESSING.value}, synchronize_session=False)
        )
        if not advanced:
            logger.warning(
                f"⚠️ Payment {payment.id} confirmed but order {order_id} is no longer PENDING ({order.status})"
            )

        self.notifications.record(user_id, *payment_succeeded(order_number), order_id=order_id)
        self.db.commit()
        logger.info(f"💰 Payment {payment.id} marked PAID; order {order_id} {'→ PROCESSING' if advanced else 'unchanged'}")

        await self.notifications.deliver(self.notifier)
        return WebhookOutcome.PAID
