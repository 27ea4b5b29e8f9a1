"""Notifications API router and live WebSocket feed."""
import asyncio
import logging
from typing import List, Optional

import jwt
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from edgeup.auth import get_current_user, require_admin
from edgeup.database import get_db
from edgeup.dependencies import get_notification_service
from edgeup.models import User
from edgeup.schemas import (
    MarkAllReadResponse,
    NotificationCreate,
    NotificationResponse,
    StatusMessage
)
from edgeup.security import decode_access_token
from edgeup.services.notification_service import NotificationService, notification_channel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])

# RFC 6455 policy violation
WS_POLICY_VIOLATION = 1008


@router.get("/my-notifications", response_model=List[NotificationResponse])
async def my_notifications(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service)
):
    """Caller's notifications, newest first."""
    return notification_service.list_for_user(db, user.id)


@router.put("/notification/{notification_id}/read", response_model=StatusMessage)
async def mark_read(
    notification_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service)
):
    notification_service.mark_read(db, notification_id, user.id)
    return {"message": "Notification marked as read"}


@router.put("/my-notifications/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service)
):
    count = notification_service.mark_all_read(db, user.id)
    return {"message": "All notifications marked as read", "count": count}


@router.delete("/notification/{notification_id}", response_model=StatusMessage)
async def delete_notification(
    notification_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service)
):
    notification_service.delete(db, notification_id, user.id)
    return {"message": "Notification deleted"}


@router.post("/notification", response_model=NotificationResponse, status_code=201)
async def create_notification(
    request: NotificationCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    notification_service: NotificationService = Depends(get_notification_service)
):
    """Send a notification to a user - admin only."""
    notification = notification_service.create_for_user(
        db, request.user_id, request.message, request.notification_type
    )
    logger.info("Admin notification sent", extra={
        "admin_id": admin.id,
        "user_id": request.user_id,
        "notification_id": notification.id
    })
    return notification


@router.websocket("/ws/notifications")
async def notifications_feed(websocket: WebSocket, token: Optional[str] = None):
    """
    Relay the caller's Redis notification channel over a WebSocket.

    The bearer token travels as a query parameter since browsers cannot set
    headers on WebSocket handshakes.
    """
    user_id = _authenticate_socket(websocket, token)
    if user_id is None:
        await websocket.close(code=WS_POLICY_VIOLATION)
        return

    await websocket.accept()

    pubsub = websocket.app.state.async_redis_client.pubsub()
    await pubsub.subscribe(notification_channel(user_id))
    logger.info("Notification feed connected", extra={"user_id": user_id})

    relay = asyncio.create_task(_relay(websocket, pubsub))
    watch = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        done, _ = await asyncio.wait({relay, watch}, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.error("Notification feed failed", extra={
                    "user_id": user_id,
                    "error": str(error)
                })
    finally:
        # The relay must stop reading before the pubsub connection goes away
        for task in (relay, watch):
            task.cancel()
        await asyncio.gather(relay, watch, return_exceptions=True)
        await pubsub.unsubscribe()
        await pubsub.aclose()
        logger.info("Notification feed disconnected", extra={"user_id": user_id})


def _authenticate_socket(websocket: WebSocket, token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    try:
        payload = decode_access_token(token)
    except jwt.InvalidTokenError:
        return None

    db = websocket.app.state.session_factory()
    try:
        user = db.get(User, payload["sub"])
    finally:
        db.close()
    return user.id if user is not None else None


async def _relay(websocket: WebSocket, pubsub) -> None:
    async for message in pubsub.listen():
        if message["type"] != "message":
            continue
        data = message["data"]
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        await websocket.send_text(data)


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        await websocket.receive_text()
