"""Dependency injection for services."""
from typing import Any

from fastapi import Request

from edgeup.services.catalog_service import CatalogService
from edgeup.services.messaging_service import MessagingService
from edgeup.services.negotiation_service import NegotiationService
from edgeup.services.notification_service import NotificationService
from edgeup.services.order_service import OrderService
from edgeup.services.review_service import ReviewService
from edgeup.services.user_service import UserService


def get_redis_client(request: Request) -> Any:
    """Get Redis client from app state."""
    return request.app.state.redis_client


def get_async_redis_client(request: Request) -> Any:
    """Get async Redis client used by the WebSocket relay."""
    return request.app.state.async_redis_client


def get_notification_service(request: Request) -> NotificationService:
    """Get notification service bound to the app's Redis client."""
    return NotificationService(request.app.state.redis_client)


def get_negotiation_service(request: Request) -> NegotiationService:
    """Get negotiation service instance."""
    return NegotiationService(get_notification_service(request))


def get_order_service(request: Request) -> OrderService:
    """Get order service instance."""
    return OrderService(get_notification_service(request))


def get_catalog_service() -> CatalogService:
    return CatalogService()


def get_review_service(request: Request) -> ReviewService:
    return ReviewService(get_notification_service(request))


def get_user_service(request: Request) -> UserService:
    return UserService(get_notification_service(request))


def get_messaging_service() -> MessagingService:
    return MessagingService()
