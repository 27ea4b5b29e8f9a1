"""Accounts, profiles and Trusted-seller applications."""
import logging
from typing import Any, Dict, List, Optional, Tuple

from opentelemetry import trace
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from edgeup.config import CITIES, ROLE_ADMIN, ROLE_TRUSTED, SELF_ASSIGNABLE_ROLES
from edgeup.errors import AuthenticationError, BusinessRuleError, ConflictError, NotFoundError
from edgeup.models import NotificationType, TrustedRequest, TrustedRequestStatus, User
from edgeup.monitoring import auth_failures_counter, registrations_counter
from edgeup.security import create_access_token, hash_password, verify_password
from edgeup.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

ADMIN_ACTIONS = {
    "approve": TrustedRequestStatus.APPROVED,
    "reject": TrustedRequestStatus.REJECTED,
}


def validate_location(country: str, city: str) -> None:
    """Raise BusinessRuleError unless city belongs to country."""
    if country not in CITIES:
        raise BusinessRuleError(f"Invalid country: must be one of {', '.join(CITIES)}")
    if city not in CITIES[country]:
        raise BusinessRuleError(f"Invalid city for country {country}")


class UserService:
    """Service for accounts and the Trusted-seller approval flow."""

    def __init__(self, notification_service: NotificationService):
        """
        Initialize user service.

        Args:
            notification_service: Dispatcher for admin and applicant notices
        """
        self.notification_service = notification_service
        self.tracer = trace.get_tracer(__name__)

    def register(
        self,
        db: Session,
        name: str,
        email: str,
        password: str,
        country: str,
        city: str,
        role: str = "Untrusted",
        avatar_url: Optional[str] = None
    ) -> Tuple[User, str]:
        """
        Create an account and sign a token for it.

        Returns:
            Tuple of (user, bearer token)

        Raises:
            BusinessRuleError: Role cannot be self-assigned or unknown location
            ConflictError: Email already registered
        """
        if role not in SELF_ASSIGNABLE_ROLES:
            raise BusinessRuleError(f"Invalid role: must be one of {', '.join(SELF_ASSIGNABLE_ROLES)}")
        validate_location(country, city)

        if db.query(User.id).filter(User.email == email).first() is not None:
            raise ConflictError("Email already registered")

        user = User(
            name=name,
            email=email,
            password=hash_password(password),
            role=role,
            country=country,
            city=city,
            karma=0,
            avatar_url=avatar_url
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("Email already registered")
        db.refresh(user)

        registrations_counter.add(1, {"role": role})
        logger.info("User registered", extra={
            "user_id": user.id,
            "role": role,
            "country": country
        })

        return user, create_access_token(user.id, user.role)

    def login(self, db: Session, email: str, password: str) -> Tuple[User, str]:
        """
        Check credentials and sign a token.

        Raises:
            AuthenticationError: Unknown email or wrong password
        """
        user = db.query(User).filter(User.email == email.strip()).first()
        if user is None or not verify_password(password, user.password):
            auth_failures_counter.add(1, {"reason": "invalid_credentials"})
            logger.warning("Login failed", extra={"email": email})
            raise AuthenticationError("invalid credentials")

        logger.info("User logged in", extra={"user_id": user.id})
        return user, create_access_token(user.id, user.role)

    def list_users(self, db: Session) -> List[User]:
        return db.query(User).order_by(User.created_at).all()

    def update_profile(
        self,
        db: Session,
        user: User,
        name: str,
        email: str,
        country: str,
        city: str,
        avatar_url: Optional[str] = None
    ) -> User:
        """
        Replace the caller's profile fields.

        Raises:
            BusinessRuleError: Unknown location
            ConflictError: Email taken by another account
        """
        validate_location(country, city)

        taken = db.query(User.id).filter(User.email == email, User.id != user.id).first()
        if taken is not None:
            raise ConflictError("Email already in use")

        user.name = name
        user.email = email
        user.country = country
        user.city = city
        if avatar_url is not None:
            user.avatar_url = avatar_url
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("Email already in use")
        db.refresh(user)

        logger.info("Profile updated", extra={"user_id": user.id})
        return user

    def latest_trusted_request(self, db: Session, user_id: str) -> Optional[TrustedRequest]:
        return (
            db.query(TrustedRequest)
            .filter(TrustedRequest.user_id == user_id)
            .order_by(TrustedRequest.created_at.desc())
            .first()
        )

    def request_trusted(self, db: Session, user: User, pitch: str) -> TrustedRequest:
        """
        File a Trusted-seller application and alert every admin.

        At most one pending application per user.

        Raises:
            BusinessRuleError: Caller is already Trusted/Admin or has a
                pending application
        """
        if user.role in (ROLE_TRUSTED, ROLE_ADMIN):
            raise BusinessRuleError("You are already a Trusted seller")

        pending = db.query(TrustedRequest.id).filter(
            TrustedRequest.user_id == user.id,
            TrustedRequest.status == TrustedRequestStatus.PENDING
        ).first()
        if pending is not None:
            raise BusinessRuleError("You already have a pending request")

        try:
            request = TrustedRequest(user_id=user.id, pitch=pitch, status=TrustedRequestStatus.PENDING)
            db.add(request)

            admin_ids = [admin_id for (admin_id,) in db.query(User.id).filter(User.role == ROLE_ADMIN).all()]
            notifications = [
                self.notification_service.record(
                    db,
                    admin_id,
                    f"New Trusted seller request from {user.name} ({user.email}).",
                    NotificationType.SYSTEM
                )
                for admin_id in admin_ids
            ]
            db.commit()
        except Exception:
            db.rollback()
            raise

        self.notification_service.publish_all(notifications)

        logger.info("Trusted request submitted", extra={
            "request_id": request.id,
            "user_id": user.id,
            "admins_notified": len(admin_ids)
        })
        return request

    def pending_requests(self, db: Session) -> List[Dict[str, Any]]:
        """Pending applications, oldest first, with applicant details."""
        with self.tracer.start_as_current_span("db.query.get_trusted_requests") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "trusted_requests")

            rows = (
                db.query(TrustedRequest, User)
                .join(User, TrustedRequest.user_id == User.id)
                .filter(TrustedRequest.status == TrustedRequestStatus.PENDING)
                .order_by(TrustedRequest.created_at.asc())
                .all()
            )

            db_span.set_attribute("db.rows_returned", len(rows))

        return [
            {
                "id": request.id,
                "pitch": request.pitch,
                "created_at": request.created_at,
                "user_id": applicant.id,
                "name": applicant.name,
                "email": applicant.email,
                "karma": applicant.karma,
            }
            for request, applicant in rows
        ]

    def decide_request(self, db: Session, request_id: str, action: str, admin: User) -> TrustedRequest:
        """
        Approve or reject a pending application.

        Approval promotes the applicant to Trusted in the same transaction.

        Raises:
            BusinessRuleError: Unknown action or request no longer pending
            NotFoundError: Request does not exist
        """
        if action not in ADMIN_ACTIONS:
            raise BusinessRuleError("Invalid action: must be approve or reject")
        target = ADMIN_ACTIONS[action]

        request = db.get(TrustedRequest, request_id)
        if request is None:
            raise NotFoundError("Request not found")
        if request.status != TrustedRequestStatus.PENDING:
            raise BusinessRuleError(f"Request was already processed (status {request.status})")

        if target == TrustedRequestStatus.APPROVED:
            message = "Congratulations! Your Trusted seller request was approved. You can now post products."
        else:
            message = "Your Trusted seller request was rejected."

        try:
            updated = (
                db.query(TrustedRequest)
                .filter(TrustedRequest.id == request.id, TrustedRequest.status == TrustedRequestStatus.PENDING)
                .update({TrustedRequest.status: target}, synchronize_session=False)
            )
            if updated != 1:
                raise BusinessRuleError("Request was already processed")

            if target == TrustedRequestStatus.APPROVED:
                db.query(User).filter(User.id == request.user_id).update(
                    {User.role: ROLE_TRUSTED}, synchronize_session=False
                )

            notification = self.notification_service.record(
                db, request.user_id, message, NotificationType.SYSTEM
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        self.notification_service.publish(notification)

        logger.info("Trusted request decided", extra={
            "request_id": request.id,
            "user_id": request.user_id,
            "admin_id": admin.id,
            "status": target
        })

        db.refresh(request)
        return request
