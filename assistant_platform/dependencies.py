"""
dependencies.py
---------------
FastAPI dependency injection functions.

Admin API (JWT):
  1. OAuth2PasswordBearer extracts the Bearer token from the Authorization header.
  2. decode_access_token validates and parses the JWT (no DB round-trip).
  3. get_current_user fetches the full User record from the DB, verifying the
     token's sub (user_id) and tenant_id against persisted data.
  4. get_current_admin layers a role check on top of get_current_user.

End-user API (no session):
  get_identity resolves the acting user from an optional `user_id` query
  parameter, falling back to the demo identity, exactly like the chat body.
"""

from typing import Annotated, Optional

from fastapi import Depends, Query
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from assistant_platform.core.errors import AuthenticationError, ForbiddenError
from assistant_platform.core.logging import bind_request_context, get_logger
from assistant_platform.core.security import decode_access_token
from assistant_platform.db.session import get_db
from assistant_platform.models.user import User, UserRole
from assistant_platform.services.identity_service import IdentityContext, IdentityService

logger = get_logger(__name__)

# tokenUrl must match the login endpoint path
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/login", auto_error=False)

DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user(
    token: Annotated[Optional[str], Depends(oauth2_scheme)],
    db: DbSession,
) -> User:
    """
    Decode the JWT, then load and return the full User from the database.
    Raises AuthenticationError if the token is missing or invalid, or the
    user no longer exists.
    """
    if not token:
        raise AuthenticationError("Not authenticated")
    try:
        payload = decode_access_token(token)
    except JWTError as exc:
        logger.warning("JWT decode failed", error=str(exc))
        raise AuthenticationError()

    user_id = payload.get("sub")
    tenant_id = payload.get("tenant_id")
    if not user_id or not tenant_id:
        raise AuthenticationError()

    # Always re-verify against DB so revoked / deleted users are rejected
    result = await db.execute(
        select(User).where(User.id == user_id, User.tenant_id == tenant_id)
    )
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        logger.warning("User from valid JWT not found or inactive", user_id=user_id)
        raise AuthenticationError()

    bind_request_context(user_id=user.id, tenant_id=user.tenant_id)
    return user


async def get_current_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """
    Extends get_current_user with an admin role check.
    Raises ForbiddenError if the authenticated user is not an admin.
    """
    if current_user.role != UserRole.admin.value:
        raise ForbiddenError()
    return current_user


async def get_identity(
    db: DbSession,
    user_id: Annotated[Optional[str], Query(description="Acting user; demo user when omitted")] = None,
) -> IdentityContext:
    identity = await IdentityService.resolve(db, user_id=user_id)
    bind_request_context(
        tenant_id=identity.tenant_id,
        user_id=identity.user_id,
        identity_mode=identity.mode.value,
    )
    return identity


CurrentAdmin = Annotated[User, Depends(get_current_admin)]
Identity = Annotated[IdentityContext, Depends(get_identity)]
