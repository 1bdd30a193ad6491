"""
services/identity_service.py
----------------------------
Resolve who is acting on a request that carries no session.

Three mutually exclusive identity shapes, checked in this order:

  1. user_id                    → existing user, tenant = user's tenant
  2. company_slug + user_email  → active tenant by slug, user found or created
  3. neither                    → the configured demo user / demo tenant

The result is an IdentityContext value built once per request. Nothing here
is cached between requests.
"""

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from assistant_platform.core.config import settings
from assistant_platform.core.errors import NotFoundError, ValidationError
from assistant_platform.core.logging import get_logger
from assistant_platform.models.chatbot import Chatbot
from assistant_platform.models.tenant import Tenant
from assistant_platform.services.user_service import UserService

logger = get_logger(__name__)


class IdentityMode(str, Enum):
    session = "session"
    company = "company"
    demo = "demo"


@dataclass(frozen=True)
class IdentityContext:
    user_id: str
    tenant_id: str
    mode: IdentityMode

    @property
    def is_demo(self) -> bool:
        return self.mode is IdentityMode.demo


def is_valid_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except (ValueError, TypeError, AttributeError):
        return False
    return True


def demo_identity() -> IdentityContext:
    return IdentityContext(
        user_id=settings.DEMO_USER_ID,
        tenant_id=settings.DEMO_TENANT_ID,
        mode=IdentityMode.demo,
    )


class IdentityService:

    @staticmethod
    async def resolve(
        db: AsyncSession,
        user_id: Optional[str] = None,
        company_slug: Optional[str] = None,
        user_email: Optional[str] = None,
        user_name: Optional[str] = None,
    ) -> IdentityContext:
        """
        Raises:
            ValidationError: user_id is not a UUID.
            NotFoundError:   unknown user_id, or unknown / inactive company.
        """
        if user_id:
            if not is_valid_uuid(user_id):
                raise ValidationError("Invalid user_id format")
            user = await UserService.get_user_by_id(db, user_id)
            if user is None:
                raise NotFoundError("User not found")
            logger.debug("Identity resolved from user_id", user_id=user.id)
            return IdentityContext(
                user_id=user.id, tenant_id=user.tenant_id, mode=IdentityMode.session
            )

        if company_slug and user_email:
            tenant = await IdentityService.get_active_tenant_by_slug(db, company_slug)
            if tenant is None:
                raise NotFoundError("Company not found")
            user = await UserService.find_or_create_by_email(
                db, tenant_id=tenant.id, email=user_email, name=user_name
            )
            logger.debug(
                "Identity resolved from company", tenant_id=tenant.id, user_id=user.id
            )
            return IdentityContext(
                user_id=user.id, tenant_id=tenant.id, mode=IdentityMode.company
            )

        return demo_identity()

    @staticmethod
    async def get_active_tenant_by_slug(db: AsyncSession, slug: str) -> Optional[Tenant]:
        result = await db.execute(select(Tenant).where(Tenant.slug == slug.strip().lower()))
        tenant = result.scalar_one_or_none()
        if tenant is None or not tenant.is_active:
            return None
        return tenant

    @staticmethod
    async def authorize_chatbot(
        db: AsyncSession, chatbot_id: str, identity: IdentityContext
    ) -> Chatbot:
        """
        A chatbot may be used only inside its own tenant and only once published.

        Raises:
            NotFoundError:   no such chatbot.
            ValidationError: other tenant's chatbot, or unpublished.
        """
        result = await db.execute(select(Chatbot).where(Chatbot.id == chatbot_id))
        chatbot = result.scalar_one_or_none()
        if chatbot is None:
            raise NotFoundError("Chatbot not found")
        if chatbot.tenant_id != identity.tenant_id:
            logger.warning(
                "Cross-tenant chatbot reference rejected",
                chatbot_id=chatbot_id,
                chatbot_tenant_id=chatbot.tenant_id,
            )
            raise ValidationError("Chatbot does not belong to this company")
        if not chatbot.is_published:
            raise ValidationError("Chatbot is not published")
        return chatbot
