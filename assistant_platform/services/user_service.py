"""
services/user_service.py
------------------------
Business logic for end-users and admin accounts.

All lookups other than get_user_by_id are scoped by tenant_id. Emails are
compared lower-cased.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from assistant_platform.core.errors import ConflictError
from assistant_platform.core.logging import get_logger
from assistant_platform.core.security import hash_password, verify_password
from assistant_platform.db.base import utcnow
from assistant_platform.models.user import User, UserRole
from assistant_platform.schemas.user import UserCreate

logger = get_logger(__name__)


def default_display_name(email: str) -> str:
    return email.split("@", 1)[0]


class UserService:

    @staticmethod
    async def get_user_by_id(db: AsyncSession, user_id: str) -> User | None:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_user_by_email(
        db: AsyncSession, tenant_id: str, email: str
    ) -> User | None:
        result = await db.execute(
            select(User).where(User.tenant_id == tenant_id, User.email == email.lower())
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def find_or_create_by_email(
        db: AsyncSession,
        tenant_id: str,
        email: str,
        name: Optional[str] = None,
    ) -> User:
        """
        First chat contact from an email creates a 'guest' in the tenant;
        later contacts refresh last_active_at. Never fails with "not found".
        """
        email = email.strip().lower()
        user = await UserService.get_user_by_email(db, tenant_id, email)
        if user is not None:
            user.last_active_at = utcnow()
            await db.flush()
            return user

        user = User(
            tenant_id=tenant_id,
            email=email,
            name=(name or "").strip() or default_display_name(email),
            role=UserRole.guest.value,
            is_active=True,
            last_active_at=utcnow(),
        )
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            # A concurrent first contact created the same (tenant, email) row
            await db.rollback()
            user = await UserService.get_user_by_email(db, tenant_id, email)
            if user is None:
                raise
            return user

        logger.info("Guest user created", user_id=user.id, tenant_id=tenant_id)
        return user

    @staticmethod
    async def create_user_by_admin(
        db: AsyncSession,
        data: UserCreate,
        tenant_id: str,
    ) -> User:
        """
        Admin-initiated user creation within a company.
        Raises ConflictError on a duplicate email in that company.
        """
        user = User(
            email=data.email.lower(),
            name=data.name or default_display_name(data.email),
            hashed_password=hash_password(data.password) if data.password else None,
            role=data.role.value,
            tenant_id=tenant_id,
        )
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise ConflictError(f"Email '{data.email}' is already registered in this company")
        await db.refresh(user)
        logger.info(
            "Admin created user",
            new_user_id=user.id,
            role=user.role,
            tenant_id=tenant_id,
        )
        return user

    @staticmethod
    async def authenticate(
        db: AsyncSession, email: str, password: str
    ) -> User | None:
        """
        Verify admin credentials. The same email may exist in several
        companies; the first active account whose password matches wins.
        """
        result = await db.execute(
            select(User)
            .where(User.email == email.lower(), User.hashed_password.is_not(None))
            .order_by(User.created_at)
        )
        for user in result.scalars().all():
            if user.is_active and verify_password(password, user.hashed_password):
                return user
        return None

    @staticmethod
    async def list_users_in_tenant(
        db: AsyncSession, tenant_id: str
    ) -> list[User]:
        result = await db.execute(
            select(User).where(User.tenant_id == tenant_id).order_by(User.created_at)
        )
        return list(result.scalars().all())
