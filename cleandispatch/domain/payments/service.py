"""Payment service - Snap tokens, admin cash settlement and gateway webhooks"""

import logging
import time

from sqlalchemy.orm import Session

from ...config import PAYMENT_ORDER_PREFIX
from ...errors import DomainError, Forbidden, GatewayUnavailable, NotFound, ValidationError
from ...models import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus
from ...services.interfaces import CustomerDetails, Notifier, PaymentGateway
from ...services.notification_service import NotificationRecorder, payment_succeeded
from ...services.payment_reconciler import PaymentReconciler, WebhookOutcome
from ...services.state_machine import OrderStateMachine

logger = logging.getLogger(__name__)


def customer_details_for(order: Order) -> CustomerDetails:
    user = order.user
    name_parts = (user.full_name or "").split()
    return CustomerDetails(
        first_name=name_parts[0] if name_parts else user.full_name,
        last_name=" ".join(name_parts[1:]),
        email=user.email,
        phone=user.phone_number,
    )


class PaymentService:
    def __init__(self, db: Session, gateway: PaymentGateway, notifier: Notifier):
        self.db = db
        self.gateway = gateway
        self.notifier = notifier
        self.state_machine = OrderStateMachine()

    async def request_payment_token(self, order_id: int, customer_id: int) -> tuple[str, str]:
        """
        Snap token for a pending non-cash payment. This never confirms a payment;
        confirmation only arrives through the webhook.

        Returns:
            (token, gateway_order_id)
        """
        order = self.db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFound("Order not found")
        if order.user_id != customer_id:
            raise Forbidden("Order does not belong to you")
        payment = order.payment
        if payment is None:
            raise ValidationError("Order has no payment record")
        if payment.method == PaymentMethod.CASH.value:
            raise ValidationError("CASH payments do not require a payment token")
        if payment.status != PaymentStatus.PENDING.value:
            raise ValidationError("Payment is already processed")

        customer = customer_details_for(order)

        if payment.gateway_order_id:
            existing_id = payment.gateway_order_id
            try:
                token = await self.gateway.create_transaction_token(existing_id, payment.amount, customer)
                return token, existing_id
            except GatewayUnavailable as e:
                logger.warning(f"⚠️ Could not regenerate token for {existing_id}, allocating a new one: {e}")

        gateway_order_id = f"{PAYMENT_ORDER_PREFIX}-{order.id}-{int(time.time() * 1000)}"
        token = await self.gateway.create_transaction_token(gateway_order_id, payment.amount, customer)

        payment.gateway_order_id = gateway_order_id
        self.db.commit()
        logger.info(f"✅ Payment {payment.id} linked to gateway order {gateway_order_id}")
        return token, gateway_order_id

    async def mark_cash_payment_paid(self, payment_id: int) -> Payment:
        """Admin settles a cash payment; the order moves PENDING → PROCESSING with it"""
        payment = self.db.query(Payment).filter(Payment.id == payment_id).with_for_update().first()
        if not payment:
            raise NotFound("Payment not found")
        if payment.method != PaymentMethod.CASH.value:
            raise Forbidden("Non-cash payments are confirmed by the payment gateway only")
        if payment.status == PaymentStatus.PAID.value:
            return payment

        notifications = NotificationRecorder(self.db)
        order = payment.order
        payment.status = PaymentStatus.PAID.value
        try:
            if order.status == OrderStatus.PENDING.value:
                self.state_machine.mark_processing(order)
        except DomainError:
            self.db.rollback()
            raise
        notifications.record(order.user_id, *payment_succeeded(order.order_number), order_id=order.id)
        self.db.commit()
        self.db.refresh(payment)
        logger.info(f"💰 Cash payment {payment.id} marked PAID by admin")

        await notifications.deliver(self.notifier)
        return payment

    async def handle_payment_webhook(self, payload) -> WebhookOutcome:
        reconciler = PaymentReconciler(self.db, self.gateway, self.notifier)
        return await reconciler.handle_webhook(payload)
