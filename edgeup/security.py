"""Password hashing and bearer token signing."""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt

from edgeup.config import JWT_ALGORITHM, JWT_EXPIRES_MINUTES, JWT_SECRET


def hash_password(password: str) -> str:
    """Hash a plain-text password with a fresh bcrypt salt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """Check a plain-text password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


def create_access_token(
    user_id: str,
    role: str,
    expires_minutes: Optional[int] = None
) -> str:
    """
    Issue a signed, time-limited bearer token.

    Args:
        user_id: Subject of the token
        role: Role of the user at issue time
        expires_minutes: Lifetime override, defaults to JWT_EXPIRES_MINUTES

    Returns:
        Encoded JWT
    """
    lifetime = JWT_EXPIRES_MINUTES if expires_minutes is None else expires_minutes
    payload = {
        "sub": user_id,
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=lifetime),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Verify a bearer token and return its claims.

    Raises:
        jwt.InvalidTokenError: If the signature is wrong, the token expired
            or the subject claim is missing
    """
    payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    if not payload.get("sub"):
        raise jwt.InvalidTokenError("Token has no subject")
    return payload
