"""Negotiation lifecycle: offer, accept, decline."""
import logging
from typing import Any, Dict, List, Optional

from opentelemetry import trace
from sqlalchemy import or_
from sqlalchemy.orm import Session, aliased

from edgeup.errors import AccessDeniedError, BusinessRuleError, NotFoundError
from edgeup.models import (
    Negotiation,
    NegotiationStatus,
    NotificationType,
    Product,
    ProductStatus,
    User,
)
from edgeup.monitoring import (
    negotiations_created_counter,
    negotiations_decided_counter,
    stock_conflicts_counter
)
from edgeup.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class NegotiationService:
    """
    Service for managing price offers between buyers and sellers.

    Status moves PENDING -> ACCEPTED -> ORDERED or PENDING -> REJECTED.
    Only the seller decides on a PENDING offer; the ORDERED transition is
    owned by the order service.
    """

    def __init__(self, notification_service: NotificationService):
        """
        Initialize negotiation service.

        Args:
            notification_service: Dispatcher for buyer-facing notifications
        """
        self.notification_service = notification_service
        self.tracer = trace.get_tracer(__name__)

    def create_offer(
        self,
        db: Session,
        buyer_id: str,
        product_id: str,
        offered_price: int,
        quantity: int = 1
    ) -> Negotiation:
        """
        Open a PENDING negotiation on a product.

        Args:
            db: Database session
            buyer_id: User making the offer
            product_id: Product being negotiated
            offered_price: Proposed unit price
            quantity: Units requested

        Returns:
            The created negotiation

        Raises:
            BusinessRuleError: Invalid quantity, inactive product, not enough
                stock, or the buyer owns the product
            NotFoundError: Product does not exist
        """
        span = trace.get_current_span()
        span.set_attribute("product.id", product_id)
        span.set_attribute("quantity", quantity)

        if quantity < 1:
            raise BusinessRuleError("Minimum quantity is 1")

        with self.tracer.start_as_current_span("db.query.get_product") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "products")

            product = db.get(Product, product_id)
            db_span.set_attribute("db.rows_returned", 1 if product else 0)

        if product is None:
            raise NotFoundError("Product not found")
        if product.status != ProductStatus.ACTIVE:
            raise BusinessRuleError("Product is no longer available")
        if product.stock < quantity:
            raise BusinessRuleError(f"Insufficient stock. Only {product.stock} available.")
        if product.seller_id == buyer_id:
            raise BusinessRuleError("You cannot negotiate on your own product")

        negotiation = Negotiation(
            product_id=product.id,
            buyer_id=buyer_id,
            seller_id=product.seller_id,
            offered_price=offered_price,
            quantity=quantity,
            status=NegotiationStatus.PENDING
        )
        db.add(negotiation)
        db.commit()

        negotiations_created_counter.add(1, {"category": product.category})
        logger.info("Offer sent", extra={
            "negotiation_id": negotiation.id,
            "product_id": product.id,
            "buyer_id": buyer_id,
            "seller_id": product.seller_id,
            "offered_price": offered_price,
            "quantity": quantity
        })

        return negotiation

    def accept(self, db: Session, negotiation_id: str, seller_id: str) -> Negotiation:
        """
        Accept a PENDING offer and notify the buyer.

        Stock and product status are checked against the product as it is
        now, not as it was when the offer was made.

        Raises:
            NotFoundError: Negotiation does not exist
            AccessDeniedError: Caller is not the seller
            BusinessRuleError: Offer already decided, product inactive or
                understocked
        """
        negotiation, product = self._load_for_decision(db, negotiation_id, seller_id)

        if product.status != ProductStatus.ACTIVE:
            raise BusinessRuleError("Product is no longer active (it was deleted or archived).")
        if product.stock < negotiation.quantity:
            stock_conflicts_counter.add(1, {"stage": "accept"})
            raise BusinessRuleError(
                f"Insufficient stock! The offer is for {negotiation.quantity} units, "
                f"but current stock is {product.stock}."
            )

        try:
            self._transition(db, negotiation.id, NegotiationStatus.PENDING, NegotiationStatus.ACCEPTED)
            notification = self.notification_service.record(
                db,
                negotiation.buyer_id,
                f'Great news! Your offer for "{product.title}" was accepted. '
                f"Go to 'Offers' to complete the order.",
                NotificationType.DEAL
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        self.notification_service.publish(notification)

        negotiations_decided_counter.add(1, {"outcome": "accepted"})
        logger.info("Offer accepted", extra={
            "negotiation_id": negotiation.id,
            "seller_id": seller_id,
            "buyer_id": negotiation.buyer_id
        })

        db.refresh(negotiation)
        return negotiation

    def decline(self, db: Session, negotiation_id: str, seller_id: str) -> Negotiation:
        """
        Reject a PENDING offer. The buyer is not notified.

        Raises:
            NotFoundError: Negotiation does not exist
            AccessDeniedError: Caller is not the seller
            BusinessRuleError: Offer already decided
        """
        negotiation, _ = self._load_for_decision(db, negotiation_id, seller_id)

        try:
            self._transition(db, negotiation.id, NegotiationStatus.PENDING, NegotiationStatus.REJECTED)
            db.commit()
        except Exception:
            db.rollback()
            raise

        negotiations_decided_counter.add(1, {"outcome": "rejected"})
        logger.info("Offer declined", extra={
            "negotiation_id": negotiation.id,
            "seller_id": seller_id,
            "buyer_id": negotiation.buyer_id
        })

        db.refresh(negotiation)
        return negotiation

    def list_for_user(self, db: Session, user_id: str) -> List[Dict[str, Any]]:
        """
        Get negotiations where the user is buyer or seller, newest first.

        Args:
            db: Database session
            user_id: User identifier

        Returns:
            List of negotiations with product and party display fields
        """
        buyer = aliased(User)
        seller = aliased(User)

        with self.tracer.start_as_current_span("db.query.get_negotiations") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "negotiations")
            db_span.set_attribute("user.id", user_id)

            rows = (
                db.query(Negotiation, Product.title, Product.image_url, buyer.email, seller.email)
                .join(Product, Negotiation.product_id == Product.id)
                .join(buyer, Negotiation.buyer_id == buyer.id)
                .join(seller, Negotiation.seller_id == seller.id)
                .filter(or_(Negotiation.buyer_id == user_id, Negotiation.seller_id == user_id))
                .order_by(Negotiation.created_at.desc())
                .all()
            )

            db_span.set_attribute("db.rows_returned", len(rows))

        return [
            {
                "id": negotiation.id,
                "product_id": negotiation.product_id,
                "buyer_id": negotiation.buyer_id,
                "seller_id": negotiation.seller_id,
                "offered_price": negotiation.offered_price,
                "quantity": negotiation.quantity,
                "status": negotiation.status,
                "created_at": negotiation.created_at,
                "product_title": title,
                "product_image": image_url,
                "buyer_email": buyer_email,
                "seller_email": seller_email
            }
            for negotiation, title, image_url, buyer_email, seller_email in rows
        ]

    def find(
        self,
        db: Session,
        user_id: str,
        negotiation_id: Optional[str] = None,
        product_id: Optional[str] = None
    ) -> Optional[Negotiation]:
        """
        Look up a negotiation by id, or the caller's latest offer on a product.

        Returns None rather than raising when nothing matches; "no
        negotiation yet" is a normal answer for the product page.
        """
        query = db.query(Negotiation)
        if negotiation_id:
            return query.filter(
                Negotiation.id == negotiation_id,
                or_(Negotiation.buyer_id == user_id, Negotiation.seller_id == user_id)
            ).first()
        if product_id:
            return (
                query.filter(Negotiation.product_id == product_id, Negotiation.buyer_id == user_id)
                .order_by(Negotiation.created_at.desc())
                .first()
            )
        raise BusinessRuleError("Missing parameters (productId or negotiationId)")

    def _load_for_decision(self, db: Session, negotiation_id: str, seller_id: str):
        with self.tracer.start_as_current_span("db.query.get_negotiation") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "negotiations")

            row = (
                db.query(Negotiation, Product)
                .join(Product, Negotiation.product_id == Product.id)
                .filter(Negotiation.id == negotiation_id)
                .first()
            )
            db_span.set_attribute("db.rows_returned", 1 if row else 0)

        if row is None:
            raise NotFoundError("Negotiation not found")
        negotiation, product = row

        if negotiation.seller_id != seller_id:
            raise AccessDeniedError("You are not the seller of this product")
        if negotiation.status != NegotiationStatus.PENDING:
            raise BusinessRuleError(f"Offer was already processed (status {negotiation.status})")

        return negotiation, product

    def _transition(self, db: Session, negotiation_id: str, current: str, target: str) -> None:
        """Move a negotiation between states only if nobody moved it first."""
        updated = (
            db.query(Negotiation)
            .filter(Negotiation.id == negotiation_id, Negotiation.status == current)
            .update({Negotiation.status: target}, synchronize_session=False)
        )
        if updated != 1:
            raise BusinessRuleError("Offer was already processed")
