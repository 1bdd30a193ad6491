"""
api/routes/auth.py
------------------
Admin authentication endpoints.

POST /login  — Exchange admin credentials for a JWT access token.
GET  /me     — Return the authenticated account's profile.

End-users never log in; the chat endpoints resolve them from request hints.
"""

from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm

from assistant_platform.core.config import settings
from assistant_platform.core.errors import AuthenticationError
from assistant_platform.core.logging import get_logger
from assistant_platform.core.security import create_access_token
from assistant_platform.dependencies import DbSession, get_current_user
from assistant_platform.models.user import User
from assistant_platform.schemas.user import TokenResponse, UserRead
from assistant_platform.services.user_service import UserService

logger = get_logger(__name__)

router = APIRouter(tags=["Authentication"])


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login and receive a JWT access token",
)
async def login(
    # The "username" field of the OAuth2 form carries the email address.
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    db: DbSession,
) -> TokenResponse:
    """
    Authenticate with email + password and receive a signed JWT.

    Via curl: send as form data (not JSON):
        -d "username=admin@acme.com&password=yourpassword"
    """
    user = await UserService.authenticate(db, form_data.username, form_data.password)
    if user is None:
        logger.warning("Login failed", email=form_data.username.lower())
        raise AuthenticationError("Invalid email or password")

    expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    token = create_access_token(
        subject=user.id,
        tenant_id=user.tenant_id,
        role=user.role,
        expires_delta=expires,
    )
    logger.info("Login succeeded", user_id=user.id, role=user.role)

    return TokenResponse(
        access_token=token,
        token_type="bearer",
        expires_in=int(expires.total_seconds()),
        user=UserRead.model_validate(user),
    )


@router.get(
    "/me",
    response_model=UserRead,
    summary="Get the currently authenticated account",
)
async def get_me(
    current_user: Annotated[User, Depends(get_current_user)],
) -> UserRead:
    return UserRead.model_validate(current_user)
