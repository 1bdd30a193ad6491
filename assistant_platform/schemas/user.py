"""
schemas/user.py
---------------
Pydantic models for admin-managed users, login, and responses.

hashed_password is never included in any response schema.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from assistant_platform.models.user import UserRole


class UserCreate(BaseModel):
    """Used by an admin to add a user to a company.

    A password is only needed for accounts that will log in to the admin API.
    """
    email: EmailStr
    name: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, min_length=8, max_length=72)
    role: UserRole = UserRole.user


class UserRead(BaseModel):
    id: str
    email: str
    name: Optional[str]
    role: str
    is_active: bool
    tenant_id: str
    last_active_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    user: UserRead
