"""Product reviews and seller karma."""
import logging
from typing import Any, Dict, List, Optional, Tuple

from opentelemetry import trace
from sqlalchemy.orm import Session

from edgeup.config import KARMA_PER_REVIEW
from edgeup.errors import AccessDeniedError, BusinessRuleError, NotFoundError
from edgeup.models import NotificationType, Product, Review, User
from edgeup.monitoring import reviews_created_counter
from edgeup.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class ReviewService:
    """Service for product reviews; every review earns the seller karma."""

    def __init__(self, notification_service: NotificationService):
        self.notification_service = notification_service
        self.tracer = trace.get_tracer(__name__)

    def list_reviews(self, db: Session) -> List[Review]:
        return db.query(Review).order_by(Review.created_at.desc()).all()

    def product_reviews(self, db: Session, product_id: str) -> Dict[str, Any]:
        """
        Get a product's reviews with author details, highest rating first.

        Raises:
            NotFoundError: Product does not exist
        """
        product = db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found")

        with self.tracer.start_as_current_span("db.query.get_product_reviews") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "reviews")
            db_span.set_attribute("product.id", product_id)

            rows = (
                db.query(Review, User)
                .join(User, Review.user_id == User.id)
                .filter(Review.product_id == product_id)
                .order_by(Review.rating.desc(), Review.created_at.desc())
                .all()
            )

            db_span.set_attribute("db.rows_returned", len(rows))

        return {
            "product": {"id": product.id, "title": product.title},
            "reviews": [
                {
                    "id": review.id,
                    "rating": review.rating,
                    "comment": review.comment,
                    "user_id": author.id,
                    "user_name": author.name,
                    "user_email": author.email,
                }
                for review, author in rows
            ],
        }

    def create_review(
        self,
        db: Session,
        user_id: str,
        product_id: str,
        rating: int,
        comment: str
    ) -> Tuple[Review, int]:
        """
        Review a product, credit its seller with karma and notify them.

        The review, the karma increment and the notification row commit
        together.

        Args:
            db: Database session
            user_id: Review author
            product_id: Reviewed product
            rating: 1 to 5
            comment: Review text

        Returns:
            Tuple of (review, seller's karma after the increment)

        Raises:
            NotFoundError: Product does not exist
            BusinessRuleError: Author is the product's seller
        """
        product = db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found")
        if product.seller_id == user_id:
            raise BusinessRuleError("You cannot review your own product")

        try:
            review = Review(product_id=product.id, user_id=user_id, rating=rating, comment=comment)
            db.add(review)

            with self.tracer.start_as_current_span("db.query.update_karma") as db_span:
                db_span.set_attribute("db.operation", "UPDATE")
                db_span.set_attribute("db.table", "users")

                db.query(User).filter(User.id == product.seller_id).update(
                    {User.karma: User.karma + KARMA_PER_REVIEW}, synchronize_session=False
                )

            notification = self.notification_service.record(
                db,
                product.seller_id,
                f'You received a {rating}-star review on "{product.title}" (+{KARMA_PER_REVIEW} karma).',
                NotificationType.REVIEW
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        self.notification_service.publish(notification)

        seller_karma = db.query(User.karma).filter(User.id == product.seller_id).scalar()

        reviews_created_counter.add(1, {"rating": str(rating)})
        logger.info("Review created", extra={
            "review_id": review.id,
            "product_id": product.id,
            "user_id": user_id,
            "seller_id": product.seller_id,
            "rating": rating,
            "seller_karma": seller_karma
        })

        return review, seller_karma

    def update_review(
        self,
        db: Session,
        review_id: str,
        user_id: str,
        rating: Optional[int] = None,
        comment: Optional[str] = None
    ) -> Review:
        """
        Edit the caller's own review.

        Raises:
            NotFoundError: Review does not exist
            AccessDeniedError: Caller did not write the review
            BusinessRuleError: Neither rating nor comment given
        """
        review = db.get(Review, review_id)
        if review is None:
            raise NotFoundError("Review not found")
        if review.user_id != user_id:
            raise AccessDeniedError("You can only edit your own reviews")
        if rating is None and comment is None:
            raise BusinessRuleError("No valid fields to update")

        if rating is not None:
            review.rating = rating
        if comment is not None:
            review.comment = comment
        db.commit()
        db.refresh(review)
        return review
