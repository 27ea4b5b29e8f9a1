"""Negotiations API router."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from edgeup.auth import get_current_user
from edgeup.database import get_db
from edgeup.dependencies import get_negotiation_service
from edgeup.models import User
from edgeup.schemas import (
    NegotiationCreate,
    NegotiationCreated,
    NegotiationDecision,
    NegotiationDetails,
    NegotiationListItem
)
from edgeup.services.negotiation_service import NegotiationService

router = APIRouter(tags=["negotiations"])


@router.post("/negotiations", response_model=NegotiationCreated, status_code=201)
async def create_negotiation(
    request: NegotiationCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    negotiation_service: NegotiationService = Depends(get_negotiation_service)
):
    """Send a price offer on a product - requires authentication."""
    negotiation = negotiation_service.create_offer(
        db,
        buyer_id=user.id,
        product_id=request.product_id,
        offered_price=request.offered_price,
        quantity=request.quantity
    )
    return {"message": "Offer sent", "id": negotiation.id, "status": negotiation.status}


@router.get("/negotiations/list", response_model=List[NegotiationListItem])
async def list_negotiations(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    negotiation_service: NegotiationService = Depends(get_negotiation_service)
):
    """Offers where the caller is buyer or seller, newest first."""
    return negotiation_service.list_for_user(db, user.id)


@router.get("/negotiation", response_model=Optional[NegotiationDetails])
async def find_negotiation(
    negotiation_id: Optional[str] = Query(None, alias="negotiationId"),
    product_id: Optional[str] = Query(None, alias="productId"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    negotiation_service: NegotiationService = Depends(get_negotiation_service)
):
    """
    Look up a negotiation by id, or the caller's latest offer on a product.

    Responds with null when there is no negotiation yet.
    """
    negotiation = negotiation_service.find(
        db, user.id, negotiation_id=negotiation_id, product_id=product_id
    )
    if negotiation is None:
        return None
    return {
        "negotiation_id": negotiation.id,
        "product_id": negotiation.product_id,
        "price": negotiation.offered_price,
        "quantity": negotiation.quantity,
        "status": negotiation.status
    }


@router.patch("/negotiations/{negotiation_id}/accept", response_model=NegotiationDecision)
async def accept_negotiation(
    negotiation_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    negotiation_service: NegotiationService = Depends(get_negotiation_service)
):
    """Accept a pending offer - product seller only."""
    negotiation = negotiation_service.accept(db, negotiation_id, user.id)
    return {"message": "Offer accepted.", "status": negotiation.status}


@router.patch("/negotiations/{negotiation_id}/decline", response_model=NegotiationDecision)
async def decline_negotiation(
    negotiation_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    negotiation_service: NegotiationService = Depends(get_negotiation_service)
):
    """Decline a pending offer - product seller only."""
    negotiation = negotiation_service.decline(db, negotiation_id, user.id)
    return {"message": "Offer declined.", "status": negotiation.status}
