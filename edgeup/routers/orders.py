"""Orders API router."""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from edgeup.auth import get_current_user
from edgeup.database import get_db
from edgeup.dependencies import get_order_service
from edgeup.models import User
from edgeup.schemas import (
    OrderCreate,
    OrderCreated,
    OrderDetail,
    OrderStatusResponse,
    OrderStatusUpdate,
    OrderSummary
)
from edgeup.services.order_service import OrderService

router = APIRouter(tags=["orders"])


@router.post("/order", response_model=OrderCreated, status_code=201)
async def create_order(
    request: OrderCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service)
):
    """
    Place an order - requires authentication.

    With negotiationId the price and quantity come from the accepted offer;
    otherwise the product's list price and the requested quantity are used.
    """
    order = order_service.create_order(
        db,
        buyer_id=user.id,
        shipping_address=request.shipping_address,
        quantity=request.quantity,
        product_id=request.product_id,
        negotiation_id=request.negotiation_id
    )
    return order


@router.get("/orders/buying", response_model=List[OrderSummary])
async def buying_orders(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service)
):
    """Caller's purchases, newest first."""
    return order_service.get_buying_orders(db, user.id)


@router.get("/orders/selling", response_model=List[OrderSummary])
async def selling_orders(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service)
):
    """Orders on the caller's products, newest first."""
    return order_service.get_selling_orders(db, user.id)


@router.get("/orders/{order_id}", response_model=OrderDetail)
async def get_order(
    order_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service)
):
    """Single order, visible to its buyer and seller only."""
    return order_service.get_order(db, order_id, user.id)


@router.patch("/orders/{order_id}/status", response_model=OrderStatusResponse)
async def update_order_status(
    order_id: str,
    request: OrderStatusUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service)
):
    """Advance the shipping status - product seller only."""
    order = order_service.update_status(db, order_id, user.id, request.status)
    return {"message": "Status updated", "status": order.status}
