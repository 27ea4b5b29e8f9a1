"""Buyer/seller conversations."""
import logging
from typing import Any, Dict, List, Optional, Tuple

from opentelemetry import trace
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from edgeup.errors import AccessDeniedError, BusinessRuleError, NotFoundError
from edgeup.models import Conversation, Message, User

logger = logging.getLogger(__name__)


class MessagingService:
    """Two-party message threads with per-message read tracking."""

    def __init__(self):
        self.tracer = trace.get_tracer(__name__)

    def open_conversation(self, db: Session, buyer_id: str, seller_id: str) -> Tuple[Conversation, bool]:
        """
        Get the caller's conversation with a seller, creating it if needed.

        Returns:
            Tuple of (conversation, whether it was created)

        Raises:
            BusinessRuleError: Caller and seller are the same user
            NotFoundError: Seller does not exist
        """
        if buyer_id == seller_id:
            raise BusinessRuleError("You cannot start a conversation with yourself")
        if db.get(User, seller_id) is None:
            raise NotFoundError("User not found")

        existing = db.query(Conversation).filter(
            Conversation.buyer_id == buyer_id, Conversation.seller_id == seller_id
        ).first()
        if existing is not None:
            return existing, False

        conversation = Conversation(buyer_id=buyer_id, seller_id=seller_id)
        db.add(conversation)
        db.commit()
        db.refresh(conversation)

        logger.info("Conversation opened", extra={
            "conversation_id": conversation.id,
            "buyer_id": buyer_id,
            "seller_id": seller_id
        })
        return conversation, True

    def list_conversations(self, db: Session, user_id: str) -> List[Dict[str, Any]]:
        """
        Get the caller's conversations, most recently active first.

        Each row carries both participants' names, the latest message and
        how many messages addressed to the caller are unread.
        """
        with self.tracer.start_as_current_span("db.query.get_conversations") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "conversations")
            db_span.set_attribute("user.id", user_id)

            conversations = db.query(Conversation).filter(
                or_(Conversation.buyer_id == user_id, Conversation.seller_id == user_id)
            ).all()
            db_span.set_attribute("db.rows_returned", len(conversations))

        if not conversations:
            return []

        conversation_ids = [c.id for c in conversations]
        messages = (
            db.query(Message)
            .filter(Message.conversation_id.in_(conversation_ids))
            .order_by(Message.created_at.asc())
            .all()
        )

        user_ids = {c.buyer_id for c in conversations} | {c.seller_id for c in conversations}
        names = dict(db.query(User.id, User.name).filter(User.id.in_(user_ids)).all())

        last_message: Dict[str, Message] = {}
        unread: Dict[str, int] = {}
        for message in messages:
            last_message[message.conversation_id] = message
            if message.to_user == user_id and not message.is_read:
                unread[message.conversation_id] = unread.get(message.conversation_id, 0) + 1

        rows = []
        for conversation in conversations:
            latest = last_message.get(conversation.id)
            activity = latest.created_at if latest else conversation.created_at
            rows.append((activity, {
                "id": conversation.id,
                "seller_id": conversation.seller_id,
                "buyer_id": conversation.buyer_id,
                "seller_name": names.get(conversation.seller_id),
                "buyer_name": names.get(conversation.buyer_id),
                "last_message": latest.message if latest else None,
                "last_message_at": latest.created_at if latest else None,
                "unread_count": unread.get(conversation.id, 0),
            }))

        rows.sort(key=lambda row: row[0], reverse=True)
        return [summary for _, summary in rows]

    def list_messages(self, db: Session, conversation_id: str, user_id: str) -> List[Message]:
        self._load_conversation(db, conversation_id, user_id)
        return (
            db.query(Message)
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc())
            .all()
        )

    def send_message(self, db: Session, conversation_id: str, user_id: str, text: str) -> Message:
        """
        Post a message to the other participant.

        Raises:
            NotFoundError: Conversation does not exist
            AccessDeniedError: Caller is not a participant
        """
        conversation = self._load_conversation(db, conversation_id, user_id)
        recipient = conversation.seller_id if user_id == conversation.buyer_id else conversation.buyer_id

        message = Message(
            conversation_id=conversation.id,
            message=text,
            from_user=user_id,
            to_user=recipient,
            is_read=False
        )
        db.add(message)
        db.commit()
        db.refresh(message)

        logger.info("Message sent", extra={
            "conversation_id": conversation.id,
            "message_id": message.id,
            "from_user": user_id,
            "to_user": recipient
        })
        return message

    def get_message(self, db: Session, conversation_id: str, message_id: str, user_id: str) -> Message:
        self._load_conversation(db, conversation_id, user_id)
        message = db.query(Message).filter(
            Message.id == message_id, Message.conversation_id == conversation_id
        ).first()
        if message is None:
            raise NotFoundError("Message not found")
        return message

    def update_message(
        self,
        db: Session,
        conversation_id: str,
        message_id: str,
        user_id: str,
        text: Optional[str] = None,
        is_read: Optional[bool] = None
    ) -> Message:
        """
        Edit a message's text (sender) or read flag (recipient).

        Raises:
            AccessDeniedError: Caller may not change the given field
            BusinessRuleError: Nothing to update
        """
        message = self.get_message(db, conversation_id, message_id, user_id)
        if text is None and is_read is None:
            raise BusinessRuleError("No valid fields to update")
        if text is not None and message.from_user != user_id:
            raise AccessDeniedError("Only the sender can edit a message")
        if is_read is not None and message.to_user != user_id:
            raise AccessDeniedError("Only the recipient can change the read status")

        if text is not None:
            message.message = text
        if is_read is not None:
            message.is_read = is_read
        db.commit()
        db.refresh(message)
        return message

    def mark_conversation_read(self, db: Session, conversation_id: str, user_id: str) -> int:
        self._load_conversation(db, conversation_id, user_id)
        updated = (
            db.query(Message)
            .filter(
                and_(
                    Message.conversation_id == conversation_id,
                    Message.to_user == user_id,
                    Message.is_read.is_(False)
                )
            )
            .update({Message.is_read: True}, synchronize_session=False)
        )
        db.commit()
        return updated

    def _load_conversation(self, db: Session, conversation_id: str, user_id: str) -> Conversation:
        conversation = db.get(Conversation, conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        if user_id not in (conversation.buyer_id, conversation.seller_id):
            raise AccessDeniedError("You are not part of this conversation")
        return conversation
