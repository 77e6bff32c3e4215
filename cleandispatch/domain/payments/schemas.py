"""Payment domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ...models import PaymentMethod, PaymentStatus


class SnapTokenRequest(BaseModel):
    order_id: int


class SnapTokenResponse(BaseModel):
    snap_token: str
    gateway_order_id: str


class PaymentDetail(BaseModel):
    id: int
    order_id: int
    method: PaymentMethod
    amount: int
    status: PaymentStatus
    gateway_order_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class WebhookAck(BaseModel):
    status: str = "ok"
    outcome: str
