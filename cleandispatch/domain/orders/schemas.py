"""Order domain schemas - Pydantic models for validation"""

from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, field_validator

from ...models import OrderStatus, PaymentMethod, PaymentStatus

MAX_REVIEW_LENGTH = 2000


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class ExtraItem(BaseModel):
    id: Union[int, str]
    name: str
    price: int

    @field_validator("price")
    @classmethod
    def validate_price(cls, v):
        if v < 0:
            raise ValueError("Extra price must be non-negative")
        return v


class OrderCreate(BaseModel):
    """Schema for a booking request"""

    package_id: int
    latitude: float
    longitude: float
    address: str
    scheduled_time: datetime
    payment_method: PaymentMethod
    extras: list[ExtraItem] = []
    before_photos: list[str] = []

    @field_validator("latitude")
    @classmethod
    def validate_latitude(cls, v):
        if not -90 <= v <= 90:
            raise ValueError("Latitude must be between -90 and 90")
        return v

    @field_validator("longitude")
    @classmethod
    def validate_longitude(cls, v):
        if not -180 <= v <= 180:
            raise ValueError("Longitude must be between -180 and 180")
        return v

    @field_validator("address")
    @classmethod
    def validate_address(cls, v):
        if not v or not v.strip():
            raise ValueError("Address is required")
        return v.strip()

    @field_validator("scheduled_time")
    @classmethod
    def normalize_scheduled_time(cls, v):
        return _to_naive_utc(v)


class AfterPhotosUpload(BaseModel):
    photos: list[str]

    @field_validator("photos")
    @classmethod
    def validate_photos(cls, v):
        if not v:
            raise ValueError("At least one photo is required")
        return v


class TipCreate(BaseModel):
    amount: int

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if v < 0:
            raise ValueError("Tip amount must be non-negative")
        return v


class RatingCreate(BaseModel):
    rating_value: int
    review: Optional[str] = None

    @field_validator("rating_value")
    @classmethod
    def validate_rating(cls, v):
        if not 1 <= v <= 5:
            raise ValueError("Rating must be between 1 and 5")
        return v

    @field_validator("review")
    @classmethod
    def validate_review(cls, v):
        if v is not None and len(v) > MAX_REVIEW_LENGTH:
            raise ValueError(f"Review must be at most {MAX_REVIEW_LENGTH} characters")
        return v


class PaymentMethodUpdate(BaseModel):
    payment_method: PaymentMethod


class StatusUpdate(BaseModel):
    status: OrderStatus


class BulkDeleteRequest(BaseModel):
    order_ids: list[int]

    @field_validator("order_ids")
    @classmethod
    def validate_ids(cls, v):
        if not v:
            raise ValueError("order_ids must be a non-empty list")
        if any(order_id <= 0 for order_id in v):
            raise ValueError("order_ids must be positive integers")
        return v


class PaymentResponse(BaseModel):
    id: int
    method: PaymentMethod
    amount: int
    status: PaymentStatus
    gateway_order_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class TipResponse(BaseModel):
    id: int
    order_id: int
    amount: int
    created_at: datetime

    class Config:
        from_attributes = True


class RatingResponse(BaseModel):
    id: int
    order_id: int
    rating_value: int
    review: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    """Schema for order response"""

    id: int
    order_number: int
    user_id: int
    assigned_worker_id: Optional[int] = None
    package_id: int
    status: OrderStatus
    latitude: float
    longitude: float
    address: str
    scheduled_time: datetime
    before_photos: list[str] = []
    after_photos: list[str] = []
    base_price: int
    distance_price: int
    extra_price: int
    surge_multiplier: float
    total_price: int
    estimated_eta: Optional[int] = None
    extras: list[ExtraItem] = []
    payment: Optional[PaymentResponse] = None
    tip: Optional[TipResponse] = None
    rating: Optional[RatingResponse] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BulkDeleteResponse(BaseModel):
    deleted: int


class PendingCountResponse(BaseModel):
    """PENDING orders waiting in the admin queue, with the newest one for alerts"""

    count: int
    latest_order: Optional[OrderResponse] = None
