import hashlib
import hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt

from app.config import settings

logger = logging.getLogger(__name__)

SESSION_TOKEN_TYPE = "session"
RECOVERY_TOKEN_TYPE = "recovery"


def get_password_hash(password: str) -> str:
    """Hash a folder or admin password with bcrypt"""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        logger.warning("Stored password hash could not be parsed")
        return False


def constant_time_equals(left: str, right: str) -> bool:
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))


def password_fingerprint(password_hash: str | None) -> str:
    """Short digest of the stored hash, embedded in recovery tokens"""
    return hashlib.sha256((password_hash or "").encode("utf-8")).hexdigest()[:16]


def _encode(payload: Dict[str, Any], expires_delta: timedelta) -> str:
    to_encode = payload.copy()
    now = datetime.now(timezone.utc)
    to_encode.update({"iat": now, "exp": now + expires_delta})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_session_token(username: str, remember_me: bool = False) -> str:
    hours = settings.SESSION_EXPIRE_HOURS if remember_me else settings.SESSION_SHORT_EXPIRE_HOURS
    return _encode({"sub": username, "type": SESSION_TOKEN_TYPE}, timedelta(hours=hours))


def create_recovery_token(
    folder_id: str,
    password_hash: str | None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Mint a token that authorizes a password reset on exactly one folder.

    The token is bound to the folder's current password hash through a
    fingerprint, so it stops verifying once the password changes.
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.RECOVERY_TOKEN_EXPIRE_MINUTES)
    return _encode(
        {
            "sub": folder_id,
            "type": RECOVERY_TOKEN_TYPE,
            "pwd": password_fingerprint(password_hash),
        },
        expires_delta,
    )


def decode_token(token: str, expected_type: str) -> Optional[Dict[str, Any]]:
    """Verify signature, expiry and type discriminator; None when any check fails"""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.info(f"Rejected {expected_type} token: {e}")
        return None
    if payload.get("type") != expected_type:
        return None
    return payload
