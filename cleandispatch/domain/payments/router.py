"""Payment routers - customer Snap tokens, admin cash settlement, Midtrans webhook"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...auth import Actor, require_admin, require_customer
from ...database import get_db
from .schemas import PaymentDetail, SnapTokenRequest, SnapTokenResponse, WebhookAck
from .service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])
admin_router = APIRouter(prefix="/admin/payments", tags=["Admin Payments"])
webhooks_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def get_payment_service(request: Request, db: Session = Depends(get_db)) -> PaymentService:
    """Dependency injection for PaymentService"""
    return PaymentService(db, gateway=request.app.state.gateway, notifier=request.app.state.notifier)


@router.post("/snap-token", response_model=SnapTokenResponse)
async def request_snap_token(
    data: SnapTokenRequest,
    actor: Actor = Depends(require_customer),
    service: PaymentService = Depends(get_payment_service),
):
    token, gateway_order_id = await service.request_payment_token(data.order_id, actor.id)
    return SnapTokenResponse(snap_token=token, gateway_order_id=gateway_order_id)


@admin_router.post("/{payment_id}/mark-paid", response_model=PaymentDetail)
async def mark_cash_payment_paid(
    payment_id: int,
    _admin: Actor = Depends(require_admin),
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.mark_cash_payment_paid(payment_id)
    return PaymentDetail.model_validate(payment)


@webhooks_router.post("/midtrans", response_model=WebhookAck)
async def midtrans_webhook(request: Request, service: PaymentService = Depends(get_payment_service)):
    """
    Midtrans payment notification.

    Always answers 200 - Midtrans retries anything else. Invalid, unknown or
    tampered notifications are logged and discarded.
    """
    try:
        payload = await request.json()
    except ValueError:
        logger.error("❌ Midtrans webhook body is not valid JSON")
        payload = None

    outcome = await service.handle_payment_webhook(payload)
    return WebhookAck(outcome=outcome.value)
