import enum
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp; all DateTime columns are stored without tzinfo"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UserRole(str, enum.Enum):
    USER = "USER"
    CLEANER = "CLEANER"
    ADMIN = "ADMIN"


class WorkerRole(str, enum.Enum):
    ADMIN = "ADMIN"
    CLEANER = "CLEANER"


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    QRIS = "QRIS"
    DANA = "DANA"
    TRANSFER = "TRANSFER"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class User(Base):
    """Customer or cleaner identity. Owned by the identity service."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone_number = Column(String(50), nullable=True)
    role = Column(String(20), default=UserRole.USER.value, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    orders = relationship("Order", back_populates="user")
    cleaner_profile = relationship("CleanerProfile", back_populates="user", uselist=False)


class WorkerAccount(Base):
    """
    Administrative bookkeeping identity for whoever an order is assigned to.
    Cleaners get one lazily the first time they are dispatched (see
    services.dispatch.ensure_worker_bookkeeping_record); email is the natural key.
    """

    __tablename__ = "worker_accounts"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone_number = Column(String(50), nullable=True)
    role = Column(String(20), default=WorkerRole.CLEANER.value, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    assigned_orders = relationship("Order", back_populates="assigned_worker")


class CleaningPackage(Base):
    __tablename__ = "cleaning_packages"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Integer, nullable=False)  # IDR, no minor units
    estimated_duration = Column(Integer, nullable=False)  # minutes
    created_at = Column(DateTime, default=utcnow, nullable=False)


class CleanerProfile(Base):
    """Location, load and rating of a cleaner, read by the candidate provider"""

    __tablename__ = "cleaner_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    rating = Column(Float, default=5.0, nullable=False)
    active_orders = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="cleaner_profile")


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    # Customer-visible, dense 1..N; only OrderSequencer writes it
    order_number = Column(Integer, unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    assigned_worker_id = Column(Integer, ForeignKey("worker_accounts.id"), nullable=True, index=True)
    package_id = Column(Integer, ForeignKey("cleaning_packages.id"), nullable=False)
    status = Column(String(20), default=OrderStatus.PENDING.value, nullable=False, index=True)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(Text, nullable=False)
    scheduled_time = Column(DateTime, nullable=False)

    # Ordered lists of artifact references (storage keys / URLs)
    before_photos = Column(JSON, default=list, nullable=False)
    after_photos = Column(JSON, default=list, nullable=False)

    # Pricing breakdown
    base_price = Column(Integer, nullable=False)
    distance_price = Column(Integer, default=0, nullable=False)
    extra_price = Column(Integer, default=0, nullable=False)
    surge_multiplier = Column(Float, default=1.0, nullable=False)
    total_price = Column(Integer, nullable=False)
    estimated_eta = Column(Integer, nullable=True)  # minutes
    extras = Column(JSON, default=list, nullable=False)  # [{id, name, price}]

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="orders")
    assigned_worker = relationship("WorkerAccount", back_populates="assigned_orders")
    package = relationship("CleaningPackage")
    payment = relationship("Payment", back_populates="order", uselist=False)
    tip = relationship("Tip", back_populates="order", uselist=False)
    rating = relationship("Rating", back_populates="order", uselist=False)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), unique=True, nullable=False)
    method = Column(String(20), nullable=False)
    amount = Column(Integer, nullable=False)
    status = Column(String(20), default=PaymentStatus.PENDING.value, nullable=False, index=True)
    # Midtrans order_id; set once a Snap token is requested
    gateway_order_id = Column(String(255), unique=True, nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    order = relationship("Order", back_populates="payment")


class Tip(Base):
    __tablename__ = "tips"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), unique=True, nullable=False)
    amount = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    order = relationship("Order", back_populates="tip")


class Rating(Base):
    __tablename__ = "ratings"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), unique=True, nullable=False)
    rating_value = Column(Integer, nullable=False)  # 1-5
    review = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    order = relationship("Order", back_populates="rating")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
