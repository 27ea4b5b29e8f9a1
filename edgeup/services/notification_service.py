"""Notification persistence and live delivery."""
import json
import logging
from typing import Any, Dict, List

from opentelemetry import trace
from sqlalchemy.orm import Session

from edgeup.errors import BusinessRuleError, NotFoundError
from edgeup.models import Notification, NotificationType, User
from edgeup.monitoring import (
    notifications_published_counter,
    notification_push_failures_counter
)

logger = logging.getLogger(__name__)


def notification_channel(user_id: str) -> str:
    """Redis pub/sub channel addressed to a single user."""
    return f"notifications:{user_id}"


def notification_payload(notification: Notification) -> Dict[str, Any]:
    return {
        "id": notification.id,
        "id_user": notification.user_id,
        "message": notification.message,
        "notification_type": notification.notification_type,
        "is_read": notification.is_read,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }


class NotificationService:
    """
    Writes notification rows and pushes them over the live channel.

    Persisting and pushing are separate steps: `record` adds the row to the
    caller's transaction, `publish` runs after that transaction commits and
    never raises. A push failure leaves the stored notification untouched.
    """

    def __init__(self, redis_client: Any):
        """
        Initialize notification service.

        Args:
            redis_client: Redis client used for pub/sub delivery
        """
        self.redis_client = redis_client
        self.tracer = trace.get_tracer(__name__)

    def record(
        self,
        db: Session,
        user_id: str,
        message: str,
        notification_type: str
    ) -> Notification:
        """
        Add an unread notification to the current transaction.

        The caller owns the commit.
        """
        if notification_type not in NotificationType.ALL:
            raise BusinessRuleError(
                f"Invalid notification type: must be one of {', '.join(NotificationType.ALL)}"
            )

        notification = Notification(
            user_id=user_id,
            message=message,
            notification_type=notification_type,
            is_read=False
        )
        db.add(notification)
        db.flush()
        return notification

    def publish(self, notification: Notification) -> bool:
        """
        Best-effort push of a committed notification to its user.

        Returns:
            True if the live channel accepted the message
        """
        channel = notification_channel(notification.user_id)
        try:
            self.redis_client.publish(channel, json.dumps(notification_payload(notification)))
        except Exception as e:
            notification_push_failures_counter.add(1, {
                "type": notification.notification_type
            })
            logger.error("Could not push notification", extra={
                "notification_id": notification.id,
                "user_id": notification.user_id,
                "error": str(e)
            })
            return False

        notifications_published_counter.add(1, {"type": notification.notification_type})
        return True

    def publish_all(self, notifications: List[Notification]) -> None:
        for notification in notifications:
            self.publish(notification)

    def notify(
        self,
        db: Session,
        user_id: str,
        message: str,
        notification_type: str
    ) -> Notification:
        """Persist a notification on its own, then push it."""
        try:
            notification = self.record(db, user_id, message, notification_type)
            db.commit()
        except Exception:
            db.rollback()
            raise

        self.publish(notification)
        return notification

    def create_for_user(
        self,
        db: Session,
        user_id: str,
        message: str,
        notification_type: str
    ) -> Notification:
        """Admin-authored notification to an existing user."""
        if db.get(User, user_id) is None:
            raise NotFoundError("User not found")
        return self.notify(db, user_id, message, notification_type)

    def list_for_user(self, db: Session, user_id: str) -> List[Notification]:
        with self.tracer.start_as_current_span("db.query.get_notifications") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "notifications")

            notifications = (
                db.query(Notification)
                .filter(Notification.user_id == user_id)
                .order_by(Notification.created_at.desc())
                .all()
            )

            db_span.set_attribute("db.rows_returned", len(notifications))
            return notifications

    def mark_read(self, db: Session, notification_id: str, user_id: str) -> None:
        updated = (
            db.query(Notification)
            .filter(Notification.id == notification_id, Notification.user_id == user_id)
            .update({Notification.is_read: True}, synchronize_session=False)
        )
        if updated == 0:
            db.rollback()
            raise NotFoundError("Notification not found or you do not have permission to update it.")
        db.commit()

    def mark_all_read(self, db: Session, user_id: str) -> int:
        updated = (
            db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
            .update({Notification.is_read: True}, synchronize_session=False)
        )
        db.commit()
        return updated

    def delete(self, db: Session, notification_id: str, user_id: str) -> None:
        deleted = (
            db.query(Notification)
            .filter(Notification.id == notification_id, Notification.user_id == user_id)
            .delete(synchronize_session=False)
        )
        if deleted == 0:
            db.rollback()
            raise NotFoundError("Notification not found or you do not have permission to delete it.")
        db.commit()

