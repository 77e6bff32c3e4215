"""Order routers - customer booking endpoints and admin lifecycle endpoints"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ...auth import Actor, get_admin_worker_id, require_admin, require_customer
from ...database import get_db
from ...models import OrderStatus
from .schemas import (
    AfterPhotosUpload,
    BulkDeleteRequest,
    BulkDeleteResponse,
    OrderCreate,
    OrderResponse,
    PaymentMethodUpdate,
    PendingCountResponse,
    RatingCreate,
    RatingResponse,
    StatusUpdate,
    TipCreate,
    TipResponse,
)
from .service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["Orders"])
admin_router = APIRouter(prefix="/admin/orders", tags=["Admin Orders"])


def get_order_service(request: Request, db: Session = Depends(get_db)) -> OrderService:
    """Dependency injection for OrderService"""
    state = request.app.state
    return OrderService(
        db,
        candidate_provider=state.candidate_provider_factory(db),
        service_area=state.service_area,
        notifier=state.notifier,
    )


# ============================================================================
# CUSTOMER ENDPOINTS
# ============================================================================


@router.post("", response_model=OrderResponse, status_code=201)
async def create_order(
    data: OrderCreate,
    actor: Actor = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    order = await service.create_order(
        customer_id=actor.id,
        package_id=data.package_id,
        latitude=data.latitude,
        longitude=data.longitude,
        address=data.address,
        scheduled_time=data.scheduled_time,
        payment_method=data.payment_method,
        extras=data.extras,
        before_photos=data.before_photos,
    )
    return OrderResponse.model_validate(order)


@router.get("", response_model=list[OrderResponse])
async def list_my_orders(
    status: Optional[OrderStatus] = Query(None),
    actor: Actor = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    orders = service.list_customer_orders(actor.id, status.value if status else None)
    return [OrderResponse.model_validate(o) for o in orders]


@router.get("/{order_id}", response_model=OrderResponse)
async def get_my_order(
    order_id: int,
    actor: Actor = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    return OrderResponse.model_validate(service.get_order_for_customer(order_id, actor.id))


@router.post("/{order_id}/after-photos", response_model=OrderResponse)
async def upload_after_photos(
    order_id: int,
    data: AfterPhotosUpload,
    actor: Actor = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    order = await service.upload_after_artifact(order_id, actor.id, data.photos)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/verify-completion", response_model=OrderResponse)
async def verify_completion(
    order_id: int,
    actor: Actor = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    order = await service.verify_completion(order_id, actor.id)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/tip", response_model=TipResponse, status_code=201)
async def submit_tip(
    order_id: int,
    data: TipCreate,
    actor: Actor = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    return TipResponse.model_validate(service.submit_tip(order_id, actor.id, data.amount))


@router.post("/{order_id}/rating", response_model=RatingResponse, status_code=201)
async def submit_rating(
    order_id: int,
    data: RatingCreate,
    actor: Actor = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    rating = service.submit_rating(order_id, actor.id, data.rating_value, data.review)
    return RatingResponse.model_validate(rating)


@router.patch("/{order_id}/payment-method", response_model=OrderResponse)
async def change_payment_method(
    order_id: int,
    data: PaymentMethodUpdate,
    actor: Actor = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    order = service.change_payment_method(order_id, actor.id, data.payment_method)
    return OrderResponse.model_validate(order)


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================


@admin_router.get("", response_model=list[OrderResponse])
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    user_type: str = Query("ALL", description="ALL, GUEST or REGISTERED"),
    _admin: Actor = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    orders = service.list_orders(status.value if status else None, user_type)
    return [OrderResponse.model_validate(o) for o in orders]


@admin_router.get("/pending-count", response_model=PendingCountResponse)
async def pending_orders_count(
    _admin: Actor = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    count, latest = service.pending_summary()
    return PendingCountResponse(
        count=count,
        latest_order=OrderResponse.model_validate(latest) if latest else None,
    )


@admin_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    _admin: Actor = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    return OrderResponse.model_validate(service.get_order(order_id))


@admin_router.post("/{order_id}/assign", response_model=OrderResponse)
async def assign_order(
    order_id: int,
    worker_id: int = Depends(get_admin_worker_id),
    service: OrderService = Depends(get_order_service),
):
    order = await service.assign_order(order_id, worker_id)
    return OrderResponse.model_validate(order)


@admin_router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: int,
    data: StatusUpdate,
    worker_id: int = Depends(get_admin_worker_id),
    service: OrderService = Depends(get_order_service),
):
    order = await service.advance_status(order_id, data.status, worker_id)
    return OrderResponse.model_validate(order)


@admin_router.post("/{order_id}/after-photos", response_model=OrderResponse)
async def upload_after_photos_admin(
    order_id: int,
    data: AfterPhotosUpload,
    _admin: Actor = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    order = await service.upload_after_artifact_admin(order_id, data.photos)
    return OrderResponse.model_validate(order)


@admin_router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: int,
    _admin: Actor = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    order = await service.cancel_order(order_id)
    return OrderResponse.model_validate(order)


@admin_router.post("/bulk-delete", response_model=BulkDeleteResponse)
async def bulk_delete_orders(
    data: BulkDeleteRequest,
    _admin: Actor = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    return BulkDeleteResponse(deleted=service.bulk_delete_orders(data.order_ids))


@admin_router.delete("/{order_id}")
async def delete_order(
    order_id: int,
    _admin: Actor = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    service.delete_order(order_id)
    return {"message": "Order deleted"}
