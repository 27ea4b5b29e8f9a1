"""Pydantic schemas for request/response validation."""
import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class RequestModel(BaseModel):
    """Request bodies accept the SPA's camelCase keys as well as field names."""
    model_config = ConfigDict(populate_by_name=True)


class ResponseModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class StatusMessage(BaseModel):
    """Plain acknowledgement."""
    message: str


# --- Users & authentication ---

class RegisterRequest(RequestModel):
    """Schema for registering a user."""
    name: str = Field(min_length=1)
    email: str
    password: str = Field(min_length=1)
    role: str = "Untrusted"
    country: str
    city: str
    avatar_url: Optional[str] = Field(None, alias="avatarUrl")

    @field_validator("email")
    @classmethod
    def email_must_be_valid(cls, value: str) -> str:
        value = value.strip()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Invalid email")
        return value


class LoginRequest(RequestModel):
    """Schema for login request."""
    email: str
    password: str


class UserResponse(ResponseModel):
    """Public view of a user."""
    id: str
    name: str
    email: str
    role: str
    country: str
    city: str
    karma: int = 0
    avatar_url: Optional[str] = Field(None, serialization_alias="avatarUrl")


class AuthResponse(BaseModel):
    """Token plus the authenticated user."""
    token: str
    token_type: str = "bearer"
    user: UserResponse


class MeResponse(BaseModel):
    user: UserResponse


class ProfileUpdate(RequestModel):
    """Schema for updating the caller's profile."""
    name: str = Field(min_length=1)
    email: str
    country: str = Field(min_length=1)
    city: str = Field(min_length=1)
    avatar_url: Optional[str] = Field(None, alias="avatarUrl")

    @field_validator("email")
    @classmethod
    def email_must_be_valid(cls, value: str) -> str:
        value = value.strip()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Invalid email")
        return value


class TrustedRequestCreate(RequestModel):
    pitch: str = Field(min_length=1)


class AdminRequestItem(ResponseModel):
    """Pending Trusted-seller application as shown to admins."""
    id: str
    pitch: Optional[str]
    created_at: datetime
    user_id: str
    name: str
    email: str
    karma: int


# --- Catalog ---

class ProductCreate(RequestModel):
    """Schema for creating a product."""
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    price: int = Field(gt=0)
    category: str
    stock: int = Field(1, ge=1)
    image_url: Optional[str] = Field(None, alias="imageUrl")


class ProductUpdate(RequestModel):
    """Partial product update; omitted fields are left untouched."""
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    price: Optional[int] = Field(None, gt=0)
    category: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    image_url: Optional[str] = Field(None, alias="imageUrl")


class ProductResponse(ResponseModel):
    """Schema for product response."""
    id: str
    title: str
    description: Optional[str]
    price: int
    category: str
    image_url: Optional[str] = Field(None, serialization_alias="imageUrl")
    stock: int
    status: str
    seller_id: str
    seller_name: Optional[str] = None
    seller_email: Optional[str] = None
    seller_role: Optional[str] = None
    seller_country: Optional[str] = None
    seller_city: Optional[str] = None
    favorites_count: Optional[int] = None
    is_favorite: bool = Field(False, serialization_alias="isFavorite")


class ProductListResponse(BaseModel):
    """One page of the catalog."""
    products: List[ProductResponse]
    current_page: int = Field(serialization_alias="currentPage")
    items_per_page: int = Field(serialization_alias="itemsPerPage")


class FavoriteCreated(BaseModel):
    message: str
    favorite_id: str = Field(serialization_alias="favoriteId")


class FavoriteProductResponse(ProductResponse):
    favorited_at: datetime


# --- Reviews ---

class ReviewCreate(RequestModel):
    """Schema for creating a review."""
    product_id: str = Field(alias="productId")
    rating: int = Field(ge=1, le=5)
    comment: str = Field(min_length=1)


class ReviewUpdate(RequestModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, min_length=1)


class ReviewResponse(ResponseModel):
    """Schema for review response."""
    id: str
    product_id: str
    user_id: str
    rating: int
    comment: Optional[str]
    created_at: datetime


class ReviewCreated(ReviewResponse):
    seller_karma: int = Field(serialization_alias="newKarma")


class ProductReviewItem(BaseModel):
    id: str
    rating: int
    comment: Optional[str]
    user_id: str
    user_name: str
    user_email: str


class ProductRef(BaseModel):
    id: str
    title: str


class ProductReviewsResponse(BaseModel):
    product: ProductRef
    reviews: List[ProductReviewItem]


# --- Negotiations ---

class NegotiationCreate(RequestModel):
    """Schema for a buyer's offer."""
    product_id: str = Field(alias="productId")
    offered_price: int = Field(alias="offeredPrice", gt=0)
    quantity: int = Field(1, ge=1)


class NegotiationCreated(BaseModel):
    message: str
    id: str
    status: str


class NegotiationListItem(ResponseModel):
    """Negotiation as listed for either party."""
    id: str
    product_id: str
    buyer_id: str
    seller_id: str
    offered_price: int
    quantity: int
    status: str
    created_at: datetime
    product_title: str
    product_image: Optional[str]
    buyer_email: str
    seller_email: str


class NegotiationDetails(BaseModel):
    """Compact negotiation lookup result."""
    negotiation_id: str = Field(serialization_alias="negotiationId")
    product_id: str = Field(serialization_alias="productId")
    price: int
    quantity: int
    status: str


class NegotiationDecision(BaseModel):
    message: str
    status: str


# --- Orders ---

class OrderCreate(RequestModel):
    """Schema for placing an order, direct or against an accepted negotiation."""
    product_id: Optional[str] = Field(None, alias="productId")
    negotiation_id: Optional[str] = Field(None, alias="negotiationId")
    quantity: int = 1
    shipping_address: str

    @field_validator("shipping_address")
    @classmethod
    def address_must_be_usable(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 5:
            raise ValueError("Invalid shipping address: must be at least 5 characters long")
        return value

    @model_validator(mode="after")
    def product_or_negotiation(self):
        if not self.product_id and not self.negotiation_id:
            raise ValueError("Product ID is required to process the order")
        # Negotiated orders take their quantity from the offer
        if not self.negotiation_id and self.quantity < 1:
            raise ValueError("Minimum quantity is 1")
        return self


class OrderCreated(ResponseModel):
    """Schema for a freshly placed order."""
    id: str
    price: int
    quantity: int
    status: str


class OrderSummary(BaseModel):
    """Order row in the buying or selling list."""
    id: str
    product_id: str
    price: int
    quantity: int
    status: str
    created_at: datetime
    shipping_address: str
    product_title: str
    product_image: Optional[str]
    buyer_name: Optional[str] = None
    buyer_email: Optional[str] = None
    seller_name: Optional[str] = None
    seller_email: Optional[str] = None


class OrderDetail(BaseModel):
    """Single order tagged with the caller's role on it."""
    id: str
    buyer_id: str
    product_id: str
    price: int
    quantity: int
    status: str
    shipping_address: str
    negotiation_id: Optional[str]
    created_at: datetime
    title: str
    image_url: Optional[str] = Field(None, serialization_alias="imageUrl")
    seller_id: str
    buyer_email: str
    buyer_name: str
    role: str


class OrderStatusUpdate(RequestModel):
    status: str


class OrderStatusResponse(BaseModel):
    message: str
    status: str


# --- Notifications ---

class NotificationCreate(RequestModel):
    """Admin-authored notification."""
    user_id: str = Field(alias="userId")
    message: str = Field(min_length=1)
    notification_type: str = Field(alias="type")


class NotificationResponse(ResponseModel):
    """Schema for notification response."""
    id: str
    user_id: str = Field(serialization_alias="id_user")
    message: str
    notification_type: str
    is_read: bool
    created_at: datetime


class MarkAllReadResponse(BaseModel):
    message: str
    count: int


# --- Conversations ---

class ConversationCreate(RequestModel):
    seller_id: str = Field(alias="sellerId")


class ConversationResponse(ResponseModel):
    id: str
    seller_id: str
    buyer_id: str
    created_at: datetime


class ConversationSummary(BaseModel):
    """Conversation with counterpart names and the latest message."""
    id: str
    seller_id: str
    buyer_id: str
    seller_name: Optional[str]
    buyer_name: Optional[str]
    last_message: Optional[str]
    last_message_at: Optional[datetime]
    unread_count: int


class ChatMessageCreate(RequestModel):
    message: str = Field(min_length=1)


class ChatMessageUpdate(RequestModel):
    message: Optional[str] = Field(None, min_length=1)
    is_read: Optional[bool] = Field(None, alias="isRead")


class ChatMessageResponse(ResponseModel):
    id: str
    conversation_id: str
    message: str
    from_user: str
    to_user: str
    is_read: bool
    created_at: datetime
