import hashlib
import secrets
from datetime import datetime, timedelta, timezone

import jwt

from backend.core.config import settings
from backend.core.errors import Unauthorized
from backend.models.user import User


def create_access_token(user_id: int, expires_days: int | None = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + timedelta(days=expires_days or settings.jwt_expires_days)
    payload = {"sub": str(user_id), "exp": expire, "iat": now}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])


def resolve_token(token: str) -> int:
    try:
        payload = decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise Unauthorized() from exc

    subject = payload.get("sub")
    try:
        return int(subject)
    except (TypeError, ValueError) as exc:
        raise Unauthorized("Invalid token subject") from exc


def hash_reset_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def issue_password_reset_token(user: User, now: datetime) -> str:
    """Store a hashed reset token on ``user`` and return the raw value.

    The caller commits the session and is responsible for clearing the
    token again if it cannot be delivered.
    """
    raw_token = secrets.token_urlsafe(32)
    user.reset_password_token = hash_reset_token(raw_token)
    user.reset_password_expire = now + timedelta(minutes=settings.reset_token_expires_minutes)
    return raw_token


def clear_password_reset_token(user: User) -> None:
    user.reset_password_token = None
    user.reset_password_expire = None
