"""
core/security.py
----------------
Password hashing and JWT utilities for the admin API.

End-user chat traffic carries no credentials (identity is resolved from
request hints, see services/identity_service.py). Only admin accounts have a
password; their JWT carries sub (user_id), tenant_id and role so the admin
guard can reject non-admins without a second lookup.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt
from passlib.context import CryptContext

from assistant_platform.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=12)


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    """Accounts created implicitly by chat contact have no password at all."""
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)


def create_access_token(
    subject: str,
    tenant_id: str,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Mint a signed admin access token.

    Args:
        subject: User UUID (stored in 'sub' claim).
        tenant_id: Home tenant of the admin.
        role: 'admin' | 'user' | 'guest'
        expires_delta: Optional custom expiry; defaults to settings value.
    """
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload: Dict[str, Any] = {
        "sub": subject,
        "tenant_id": tenant_id,
        "role": role,
        "exp": expire,
        "iat": now,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Raises:
        JWTError: If the token is invalid, expired, or tampered with.
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
