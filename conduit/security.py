"""
Token issuing and password hashing.

Tokens are opaque to the rest of the application: only this module
knows they are HS256 JWTs carrying the user id as ``sub``.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from conduit.config import settings
from conduit.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    return pwd_context.verify(plain_password, password_hash)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def issue_token(user, expires_minutes: Optional[int] = None) -> str:
    """Mint a bearer credential for *user*."""
    expire = _utcnow() + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode: Dict[str, Any] = {"sub": str(user.id), "username": user.username, "exp": expire}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        logger.warning("Rejected bearer token: %s", exc)
        raise UnauthorizedError("invalid or expired token") from exc
    if not payload.get("sub"):
        logger.warning("Bearer token without subject")
        raise UnauthorizedError("invalid token subject")
    return payload
