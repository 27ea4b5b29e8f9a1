"""Database models for the marketplace."""
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


class ProductStatus:
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


class NegotiationStatus:
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    ORDERED = "ORDERED"


class OrderStatus:
    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    ALL = (PENDING, PAID, SHIPPED, DELIVERED, CANCELLED)


class NotificationType:
    ORDER = "order"
    PAYMENT = "payment"
    REVIEW = "review"
    SYSTEM = "system"
    DEAL = "deal"

    ALL = (ORDER, PAYMENT, REVIEW, SYSTEM, DEAL)


class TrustedRequestStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class User(Base):
    """Marketplace member."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    password = Column(String, nullable=False)
    role = Column(String, nullable=False, default="Untrusted")
    country = Column(String, nullable=False)
    city = Column(String, nullable=False)
    karma = Column(Integer, nullable=False, default=0)
    avatar_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("role IN ('Untrusted','Trusted','Admin')", name="ck_users_role"),
        Index("idx_users_country_city", "country", "city"),
    )


class Product(Base):
    """Listing owned by a seller."""
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String, nullable=False, index=True)
    description = Column(Text)
    price = Column(Integer, nullable=False)
    category = Column(String, nullable=False, index=True)
    image_url = Column(String, nullable=True)
    stock = Column(Integer, nullable=False, default=1)
    status = Column(String, nullable=False, default=ProductStatus.ACTIVE)
    seller_id = Column("seller", String(36), ForeignKey("users.id", ondelete="CASCADE"),
                       nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price"),
        CheckConstraint("stock >= 0", name="ck_products_stock"),
        CheckConstraint("status IN ('ACTIVE','ARCHIVED')", name="ck_products_status"),
    )


class Negotiation(Base):
    """A buyer's offer on a product."""
    __tablename__ = "negotiations"

    id = Column(String(36), primary_key=True, default=new_id)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    buyer_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    seller_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    offered_price = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    status = Column(String, nullable=False, default=NegotiationStatus.PENDING)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_negotiations_quantity"),
        CheckConstraint(
            "status IN ('PENDING','ACCEPTED','REJECTED','ORDERED')",
            name="ck_negotiations_status"
        ),
        Index("idx_negotiations_product_buyer", "product_id", "buyer_id"),
    )


class Order(Base):
    """Purchase of a product, direct or negotiated."""
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    buyer_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    price = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    status = Column(String, nullable=False, default=OrderStatus.PENDING)
    shipping_address = Column(String, nullable=False)
    negotiation_id = Column(String(36), ForeignKey("negotiations.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_orders_price"),
        CheckConstraint(
            "status IN ('pending','paid','shipped','delivered','cancelled')",
            name="ck_orders_status"
        ),
    )


class Review(Base):
    """Rating left by a user on a product."""
    __tablename__ = "reviews"

    id = Column(String(36), primary_key=True, default=new_id)
    product_id = Column("produs", String(36), ForeignKey("products.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    user_id = Column("user", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating"),
    )


class Notification(Base):
    """Message addressed to a single user."""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column("id_user", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    message = Column(Text, nullable=False)
    notification_type = Column(String, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "notification_type IN ('order','payment','review','system','deal')",
            name="ck_notifications_type"
        ),
        Index("idx_notifications_user", "id_user", "is_read"),
    )


class Favorite(Base):
    """Product bookmarked by a user."""
    __tablename__ = "favorites"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_favorites_user_product"),
    )


class Conversation(Base):
    """Message thread between a buyer and a seller."""
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=new_id)
    seller_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    buyer_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Message(Base):
    """Single message inside a conversation."""
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=new_id)
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"),
                             nullable=False, index=True)
    message = Column(Text, nullable=False)
    from_user = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    to_user = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class TrustedRequest(Base):
    """Application to become a Trusted seller."""
    __tablename__ = "trusted_requests"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    pitch = Column(Text)
    status = Column(String, nullable=False, default=TrustedRequestStatus.PENDING)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("status IN ('pending','approved','rejected')", name="ck_trusted_requests_status"),
    )
