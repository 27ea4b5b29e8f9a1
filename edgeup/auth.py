"""Authentication and role gating dependencies."""
from typing import Optional
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session
import jwt
import logging

from edgeup.config import ROLE_ADMIN, ROLE_TRUSTED
from edgeup.database import get_db
from edgeup.models import User
from edgeup.monitoring import auth_failures_counter, auth_attempts_counter
from edgeup.security import decode_access_token

logger = logging.getLogger(__name__)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token part of an `Authorization: Bearer <token>` header."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db)
) -> User:
    """
    Resolve the authenticated user from the bearer token.

    The role used for access checks is the one stored on the user row, so
    an admin approval applies without a new login.

    Raises:
        HTTPException: 401 if the token is missing, invalid, expired or
            points at a user that no longer exists
    """
    auth_attempts_counter.add(1, {"type": "bearer_token"})

    token = extract_bearer_token(authorization)
    if token is None:
        auth_failures_counter.add(1, {"reason": "missing_header"})
        logger.warning("Authentication failed: Missing or malformed authorization header")
        raise HTTPException(status_code=401, detail="Missing or invalid token")

    try:
        payload = decode_access_token(token)
    except jwt.InvalidTokenError as e:
        auth_failures_counter.add(1, {"reason": "invalid_token"})
        logger.warning("Authentication failed: Invalid token", extra={
            "error": str(e)
        })
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = db.get(User, payload["sub"])
    if user is None:
        auth_failures_counter.add(1, {"reason": "unknown_user"})
        logger.warning("Authentication failed: Unknown user", extra={
            "user_id": payload["sub"]
        })
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    logger.debug("Authentication successful", extra={"user_id": user.id})
    return user


def get_optional_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db)
) -> Optional[User]:
    """Like get_current_user, but anonymous or invalid callers yield None."""
    token = extract_bearer_token(authorization)
    if token is None:
        return None
    try:
        payload = decode_access_token(token)
    except jwt.InvalidTokenError:
        return None
    return db.get(User, payload["sub"])


def require_trusted(user: User = Depends(get_current_user)) -> User:
    """Only Trusted sellers and admins may list products."""
    if user.role not in (ROLE_TRUSTED, ROLE_ADMIN):
        raise HTTPException(
            status_code=403,
            detail="Forbidden: Only Trusted sellers can post products."
        )
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    """Gate admin-only routes."""
    if user.role != ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Forbidden: Admin access required.")
    return user
