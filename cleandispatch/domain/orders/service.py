"""Order service - Booking, dispatch and lifecycle operations"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...errors import Conflict, DomainError, Forbidden, InvalidTransition, NotFound, OutOfServiceArea, ValidationError
from ...models import (
    Order,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Rating,
    Tip,
)
from ...services.dispatch import DispatchEngine
from ...services.interfaces import Notifier, ServiceAreaChecker, SpatialCandidateProvider
from ...services.notification_service import (
    NotificationRecorder,
    new_order_nearby,
    order_cancelled,
    order_confirmed,
    payment_reminder,
)
from ...services.pricing import PricingEngine
from ...services.sequencer import ORDER_NUMBER_MAX_RETRIES, OrderSequencer
from ...services.state_machine import OrderStateMachine
from .repository import USER_TYPE_ALL, USER_TYPE_GUEST, USER_TYPE_REGISTERED, OrderRepository

logger = logging.getLogger(__name__)

SURGE_MULTIPLIER = 1.0
MAX_REVIEW_LENGTH = 2000


def _parse_method(value) -> str:
    try:
        return PaymentMethod(value).value
    except ValueError as e:
        raise ValidationError(f"Unknown payment method: {value}") from e


def _parse_status(value) -> str:
    try:
        return OrderStatus(value).value
    except ValueError as e:
        raise ValidationError(f"Unknown order status: {value}") from e


def _parse_user_type(value) -> str:
    user_type = (value or USER_TYPE_ALL).upper()
    if user_type not in (USER_TYPE_ALL, USER_TYPE_GUEST, USER_TYPE_REGISTERED):
        raise ValidationError(f"Unknown user type: {value}")
    return user_type


def _extra_to_dict(extra) -> dict:
    if isinstance(extra, dict):
        return {"id": extra.get("id"), "name": extra.get("name"), "price": extra.get("price")}
    return {"id": extra.id, "name": extra.name, "price": extra.price}


class OrderService:
    """Service layer for the order lifecycle"""

    def __init__(
        self,
        db: Session,
        candidate_provider: SpatialCandidateProvider,
        service_area: ServiceAreaChecker,
        notifier: Notifier,
        pricing: Optional[PricingEngine] = None,
        state_machine: Optional[OrderStateMachine] = None,
    ):
        self.db = db
        self.repo = OrderRepository()
        self.dispatcher = DispatchEngine(db, candidate_provider)
        self.sequencer = OrderSequencer(db)
        self.service_area = service_area
        self.notifier = notifier
        self.pricing = pricing or PricingEngine()
        self.state_machine = state_machine or OrderStateMachine()
        self.notifications = NotificationRecorder(db)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_order(self, order_id: int, for_update: bool = False) -> Order:
        order = self.repo.get_order(self.db, order_id, for_update=for_update)
        if not order:
            raise NotFound("Order not found")
        return order

    def get_order_for_customer(self, order_id: int, customer_id: int, for_update: bool = False) -> Order:
        order = self.get_order(order_id, for_update=for_update)
        if order.user_id != customer_id:
            raise Forbidden("Order does not belong to you")
        return order

    def list_orders(self, status: Optional[str] = None, user_type: str = USER_TYPE_ALL) -> list[Order]:
        """Admin queue: CASH orders plus non-cash orders whose payment is PAID"""
        return self.repo.list_admin_queue(self.db, status=status, user_type=_parse_user_type(user_type))

    def pending_summary(self) -> tuple[int, Optional[Order]]:
        return self.repo.pending_queue(self.db)

    def list_customer_orders(self, customer_id: int, status: Optional[str] = None) -> list[Order]:
        return self.repo.list_orders(self.db, status=status, user_id=customer_id)

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    async def create_order(
        self,
        customer_id: int,
        package_id: int,
        latitude: float,
        longitude: float,
        address: str,
        scheduled_time: datetime,
        payment_method: str,
        extras: Iterable = (),
        before_photos: Iterable[str] = (),
    ) -> Order:
        """
        Price, dispatch, number and insert a new order with its payment.

        Everything happens in one transaction. A duplicate order number from a
        concurrent booking rolls the attempt back and the whole insert is retried.
        """
        logger.info(f"📥 Creating order for user_id: {customer_id}")

        if not self.service_area.contains(latitude, longitude):
            raise OutOfServiceArea(latitude, longitude)
        if not self.repo.get_user(self.db, customer_id):
            raise NotFound("Customer not found")
        package = self.repo.get_package(self.db, package_id)
        if not package:
            raise NotFound("Cleaning package not found")

        method = _parse_method(payment_method)
        extras_list = [_extra_to_dict(extra) for extra in extras]
        photos = list(before_photos)

        for attempt in range(1, ORDER_NUMBER_MAX_RETRIES + 1):
            try:
                order = self._insert_order(
                    customer_id, package, latitude, longitude, address, scheduled_time, method, extras_list, photos
                )
                self.db.commit()
                break
            except IntegrityError as e:
                self.db.rollback()
                self.notifications.discard()
                if attempt == ORDER_NUMBER_MAX_RETRIES:
                    logger.error(f"❌ Could not allocate an order number after {attempt} attempts: {e}")
                    raise Conflict("Could not allocate an order number, please retry") from e
                logger.warning(f"⚠️ Order number collision (attempt {attempt}), retrying")
            except DomainError:
                self.db.rollback()
                self.notifications.discard()
                raise

        self.db.refresh(order)
        logger.info(f"✅ Order {order.id} created as #{order.order_number} (total {order.total_price})")
        await self.notifications.deliver(self.notifier)
        return order

    def _insert_order(
        self,
        customer_id: int,
        package,
        latitude: float,
        longitude: float,
        address: str,
        scheduled_time: datetime,
        method: str,
        extras: list[dict],
        before_photos: list[str],
    ) -> Order:
        assigned = self.dispatcher.dispatch(latitude, longitude)
        distance_meters = assigned.distance_meters if assigned else 0
        breakdown = self.pricing.price(package.price, distance_meters, extras, SURGE_MULTIPLIER)

        order = Order(
            order_number=self.sequencer.next_order_number(),
            user_id=customer_id,
            assigned_worker_id=assigned.worker_account_id if assigned else None,
            package_id=package.id,
            status=OrderStatus.PENDING.value,
            latitude=latitude,
            longitude=longitude,
            address=address,
            scheduled_time=scheduled_time,
            before_photos=before_photos,
            after_photos=[],
            base_price=breakdown.base_price,
            distance_price=breakdown.distance_price,
            extra_price=breakdown.extra_price,
            surge_multiplier=breakdown.surge_multiplier,
            total_price=breakdown.total_price,
            estimated_eta=breakdown.estimated_eta_minutes,
            extras=extras,
        )
        order.payment = Payment(
            method=method,
            amount=breakdown.total_price,
            status=PaymentStatus.PENDING.value,
        )
        self.db.add(order)
        self.db.flush()

        if method != PaymentMethod.CASH.value:
            self.notifications.record(customer_id, *payment_reminder(order.order_number), order_id=order.id)
        if assigned:
            self.notifications.record(
                assigned.worker_user_id,
                *new_order_nearby(order.order_number, assigned.distance_meters),
                order_id=order.id,
            )
        return order

    # ------------------------------------------------------------------
    # Admin transitions
    # ------------------------------------------------------------------

    async def assign_order(self, order_id: int, worker_account_id: int) -> Order:
        order = self.get_order(order_id, for_update=True)
        try:
            changed = self.state_machine.assign(order, worker_account_id)
        except DomainError:
            self.db.rollback()
            raise
        if changed:
            self.notifications.record(
                order.user_id, *order_confirmed(order.order_number, order.package.name), order_id=order.id
            )
        return await self._commit(order)

    async def advance_status(self, order_id: int, target_status: str, worker_account_id: int) -> Order:
        target = _parse_status(target_status)
        order = self.get_order(order_id, for_update=True)
        try:
            if target == OrderStatus.PROCESSING.value:
                self.state_machine.mark_processing(order)
            elif target == OrderStatus.IN_PROGRESS.value:
                if self.state_machine.confirm(order, worker_account_id):
                    self.notifications.record(
                        order.user_id, *order_confirmed(order.order_number, order.package.name), order_id=order.id
                    )
            elif target == OrderStatus.CANCELLED.value:
                self._cancel(order)
            elif target == OrderStatus.COMPLETED.value:
                raise InvalidTransition(order.status, target, "completion is set by customer verification")
            else:
                raise InvalidTransition(order.status, target)
        except DomainError:
            self.db.rollback()
            self.notifications.discard()
            raise
        return await self._commit(order)

    async def cancel_order(self, order_id: int) -> Order:
        order = self.get_order(order_id, for_update=True)
        try:
            self._cancel(order)
        except DomainError:
            self.db.rollback()
            raise
        return await self._commit(order)

    def _cancel(self, order: Order) -> None:
        self.state_machine.cancel(order)
        self.notifications.record(order.user_id, *order_cancelled(order.order_number), order_id=order.id)

    # ------------------------------------------------------------------
    # Customer operations
    # ------------------------------------------------------------------

    async def upload_after_artifact(self, order_id: int, customer_id: int, artifact_refs: Iterable[str]) -> Order:
        refs = [ref for ref in artifact_refs if ref]
        if not refs:
            raise ValidationError("At least one after photo is required")

        order = self.get_order_for_customer(order_id, customer_id, for_update=True)
        try:
            self.state_machine.ensure_after_photos_allowed(order)
        except DomainError:
            self.db.rollback()
            raise
        order.after_photos = refs
        logger.info(f"📸 {len(refs)} after photos stored for order {order.id}")
        return await self._commit(order)

    async def upload_after_artifact_admin(self, order_id: int, artifact_refs: Iterable[str]) -> Order:
        """Admin-side after photos: replaces the stored list, no status guard"""
        refs = [ref for ref in artifact_refs if ref]
        if not refs:
            raise ValidationError("At least one after photo is required")

        order = self.get_order(order_id, for_update=True)
        order.after_photos = refs
        logger.info(f"📸 {len(refs)} after photos stored for order {order.id} by admin")
        return await self._commit(order)

    async def verify_completion(self, order_id: int, customer_id: int, now: Optional[datetime] = None) -> Order:
        order = self.get_order_for_customer(order_id, customer_id, for_update=True)
        try:
            self.state_machine.complete(order, now)
        except DomainError:
            self.db.rollback()
            raise
        return await self._commit(order)

    def submit_tip(self, order_id: int, customer_id: int, amount: int) -> Tip:
        if amount is None or amount < 0:
            raise ValidationError("Tip amount must be non-negative")
        order = self.get_order_for_customer(order_id, customer_id)
        if order.status not in (OrderStatus.IN_PROGRESS.value, OrderStatus.COMPLETED.value):
            raise ValidationError("Tips can only be given for orders in progress or completed")
        if order.tip is not None:
            raise Conflict("Tip already submitted for this order")

        tip = Tip(order_id=order.id, amount=amount)
        self.db.add(tip)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise Conflict("Tip already submitted for this order") from e
        self.db.refresh(tip)
        logger.info(f"💰 Tip of {amount} recorded for order {order.id}")
        return tip

    def submit_rating(self, order_id: int, customer_id: int, rating_value: int, review: Optional[str] = None) -> Rating:
        if not isinstance(rating_value, int) or not 1 <= rating_value <= 5:
            raise ValidationError("Rating must be between 1 and 5")
        if review is not None and len(review) > MAX_REVIEW_LENGTH:
            raise ValidationError(f"Review must be at most {MAX_REVIEW_LENGTH} characters")

        order = self.get_order_for_customer(order_id, customer_id)
        if order.status != OrderStatus.COMPLETED.value:
            raise ValidationError("Only completed orders can be rated")
        if order.rating is not None:
            raise Conflict("Rating already submitted for this order")

        rating = Rating(order_id=order.id, rating_value=rating_value, review=review)
        self.db.add(rating)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise Conflict("Rating already submitted for this order") from e
        self.db.refresh(rating)
        return rating

    def change_payment_method(self, order_id: int, customer_id: int, payment_method: str) -> Order:
        method = _parse_method(payment_method)
        order = self.get_order_for_customer(order_id, customer_id, for_update=True)
        payment = order.payment
        if payment is None:
            raise ValidationError("Order has no payment record")
        if order.status != OrderStatus.PENDING.value or payment.status != PaymentStatus.PENDING.value:
            raise ValidationError("Payment method can only be changed while the order and payment are pending")
        if payment.method == method:
            return order

        logger.info(f"🔄 Order {order.id} payment method {payment.method} → {method}")
        payment.method = method
        # A new method needs a fresh gateway transaction
        payment.gateway_order_id = None
        self.db.commit()
        self.db.refresh(order)
        return order

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def delete_order(self, order_id: int) -> None:
        self.get_order(order_id)
        self._delete_and_renumber([order_id])
        logger.info(f"🗑️ Order {order_id} deleted")

    def bulk_delete_orders(self, order_ids: list[int]) -> int:
        if not order_ids or any(not isinstance(i, int) or i <= 0 for i in order_ids):
            raise ValidationError("order_ids must be a non-empty list of positive integers")
        unique_ids = sorted(set(order_ids))
        if self.repo.count_existing(self.db, unique_ids) != len(unique_ids):
            raise NotFound("Some orders not found")

        self._delete_and_renumber(unique_ids)
        logger.info(f"🗑️ Bulk deleted {len(unique_ids)} orders")
        return len(unique_ids)

    def _delete_and_renumber(self, order_ids: list[int]) -> None:
        """Delete and renumber atomically; a renumbering failure restores the deleted rows"""
        try:
            self.repo.delete_orders(self.db, order_ids)
            self.sequencer.renumber_after_delete()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    # ------------------------------------------------------------------

    async def _commit(self, order: Order) -> Order:
        self.db.commit()
        self.db.refresh(order)
        await self.notifications.deliver(self.notifier)
        return order
