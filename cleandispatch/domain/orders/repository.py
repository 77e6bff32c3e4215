"""Order repository - Database operations for orders"""

from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from ...config import GUEST_EMAIL_SUFFIX
from ...models import (
    CleaningPackage,
    Notification,
    Order,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Rating,
    Tip,
    User,
)

USER_TYPE_ALL = "ALL"
USER_TYPE_GUEST = "GUEST"
USER_TYPE_REGISTERED = "REGISTERED"


def admin_queue_query(db: Session, user_type: str = USER_TYPE_ALL) -> Query:
    """
    Orders the admin console works on: every CASH order, and non-cash orders
    only once their payment is PAID. Unpaid gateway orders stay out of the queue.
    """
    query = (
        db.query(Order)
        .join(Payment, Payment.order_id == Order.id)
        .filter(or_(Payment.method == PaymentMethod.CASH.value, Payment.status == PaymentStatus.PAID.value))
    )
    if user_type == USER_TYPE_GUEST:
        query = query.join(User, User.id == Order.user_id).filter(User.email.endswith(GUEST_EMAIL_SUFFIX))
    elif user_type == USER_TYPE_REGISTERED:
        query = query.join(User, User.id == Order.user_id).filter(~User.email.endswith(GUEST_EMAIL_SUFFIX))
    return query


class OrderRepository:
    """Repository for order database operations"""

    @staticmethod
    def list_admin_queue(db: Session, status: Optional[str] = None, user_type: str = USER_TYPE_ALL) -> list[Order]:
        query = admin_queue_query(db, user_type)
        if status:
            query = query.filter(Order.status == status)
        return query.order_by(Order.created_at.desc(), Order.id.desc()).all()

    @staticmethod
    def pending_queue(db: Session) -> tuple[int, Optional[Order]]:
        """Count of PENDING orders in the admin queue and the newest of them"""
        query = admin_queue_query(db).filter(Order.status == OrderStatus.PENDING.value)
        latest = query.order_by(Order.created_at.desc(), Order.id.desc()).first()
        return query.count(), latest

    @staticmethod
    def get_order(db: Session, order_id: int, for_update: bool = False) -> Optional[Order]:
        query = db.query(Order).filter(Order.id == order_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def list_orders(db: Session, status: Optional[str] = None, user_id: Optional[int] = None) -> list[Order]:
        query = db.query(Order)
        if user_id is not None:
            query = query.filter(Order.user_id == user_id)
        if status:
            query = query.filter(Order.status == status)
        return query.order_by(Order.created_at.desc(), Order.id.desc()).all()

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_package(db: Session, package_id: int) -> Optional[CleaningPackage]:
        return db.query(CleaningPackage).filter(CleaningPackage.id == package_id).first()

    @staticmethod
    def count_existing(db: Session, order_ids: list[int]) -> int:
        return db.query(Order.id).filter(Order.id.in_(order_ids)).count()

    @staticmethod
    def delete_orders(db: Session, order_ids: list[int]) -> int:
        """Delete orders and everything hanging off them. Does not commit."""
        db.query(Notification).filter(Notification.order_id.in_(order_ids)).delete(synchronize_session=False)
        db.query(Rating).filter(Rating.order_id.in_(order_ids)).delete(synchronize_session=False)
        db.query(Tip).filter(Tip.order_id.in_(order_ids)).delete(synchronize_session=False)
        db.query(Payment).filter(Payment.order_id.in_(order_ids)).delete(synchronize_session=False)
        return db.query(Order).filter(Order.id.in_(order_ids)).delete(synchronize_session=False)
