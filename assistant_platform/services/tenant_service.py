"""
services/tenant_service.py
--------------------------
Business logic for tenant (company) management.

Service layer is responsible for:
  - Constructing queries
  - Enforcing business rules (unique slug, refusing non-empty deletes)
  - Returning domain objects (ORM models) to the route layer
  - Never returning HTTP responses (that's the route's job)
"""

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from assistant_platform.core.errors import ConflictError, NotFoundError
from assistant_platform.core.logging import get_logger
from assistant_platform.models.chatbot import Chatbot
from assistant_platform.models.conversation import Conversation
from assistant_platform.models.feedback import Feedback
from assistant_platform.models.message import Message
from assistant_platform.models.tenant import Tenant
from assistant_platform.models.usage import UsageMetric
from assistant_platform.models.user import User
from assistant_platform.schemas.tenant import TenantCreate, TenantStats, TenantUpdate

logger = get_logger(__name__)


async def _count(db: AsyncSession, model, *filters) -> int:
    result = await db.execute(select(func.count()).select_from(model).where(*filters))
    return result.scalar_one()


class TenantService:

    @staticmethod
    async def create_tenant(db: AsyncSession, data: TenantCreate) -> Tenant:
        """
        Create a new tenant.
        Raises ConflictError if the slug is already taken.
        """
        if await TenantService.get_tenant_by_slug(db, data.slug) is not None:
            raise ConflictError(f"Company slug '{data.slug}' is already taken")

        tenant = Tenant(**data.model_dump())
        db.add(tenant)
        try:
            await db.flush()  # Trigger DB constraints before commit
        except IntegrityError:
            await db.rollback()
            raise ConflictError(f"Company slug '{data.slug}' is already taken")
        await db.refresh(tenant)
        logger.info("Tenant created", tenant_id=tenant.id, slug=tenant.slug)
        return tenant

    @staticmethod
    async def get_tenant_by_id(db: AsyncSession, tenant_id: str) -> Tenant | None:
        result = await db.execute(select(Tenant).where(Tenant.id == tenant_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_tenant_or_404(db: AsyncSession, tenant_id: str) -> Tenant:
        tenant = await TenantService.get_tenant_by_id(db, tenant_id)
        if tenant is None:
            raise NotFoundError("Company not found")
        return tenant

    @staticmethod
    async def get_tenant_by_slug(db: AsyncSession, slug: str) -> Tenant | None:
        result = await db.execute(select(Tenant).where(Tenant.slug == slug))
        return result.scalar_one_or_none()

    @staticmethod
    async def list_tenants(
        db: AsyncSession, skip: int = 0, limit: int = 50
    ) -> tuple[int, list[Tenant]]:
        total = await _count(db, Tenant)
        result = await db.execute(
            select(Tenant).order_by(Tenant.created_at.desc()).offset(skip).limit(limit)
        )
        return total, list(result.scalars().all())

    @staticmethod
    async def update_tenant(
        db: AsyncSession, tenant_id: str, data: TenantUpdate
    ) -> Tenant:
        tenant = await TenantService.get_tenant_or_404(db, tenant_id)
        changes = data.model_dump(exclude_unset=True)

        new_slug = changes.get("slug")
        if new_slug and new_slug != tenant.slug:
            if await TenantService.get_tenant_by_slug(db, new_slug) is not None:
                raise ConflictError(f"Company slug '{new_slug}' is already taken")

        for field, value in changes.items():
            setattr(tenant, field, value)
        await db.flush()
        await db.refresh(tenant)
        logger.info("Tenant updated", tenant_id=tenant.id, fields=sorted(changes))
        return tenant

    @staticmethod
    async def delete_tenant(db: AsyncSession, tenant_id: str, force: bool = False) -> None:
        """
        Delete a tenant. Without `force`, a tenant that still owns users,
        chatbots or conversations is refused with ConflictError; with it,
        every dependent row goes first, leaves before parents.
        """
        tenant = await TenantService.get_tenant_or_404(db, tenant_id)

        users = await _count(db, User, User.tenant_id == tenant_id)
        chatbots = await _count(db, Chatbot, Chatbot.tenant_id == tenant_id)
        conversations = await _count(db, Conversation, Conversation.tenant_id == tenant_id)
        if (users or chatbots or conversations) and not force:
            raise ConflictError(
                "Company still has dependent data; pass force=true to delete it",
                details={
                    "users": users,
                    "chatbots": chatbots,
                    "conversations": conversations,
                },
            )

        if force:
            conversation_ids = select(Conversation.id).where(
                Conversation.tenant_id == tenant_id
            )
            message_ids = select(Message.id).where(
                Message.conversation_id.in_(conversation_ids)
            )
            await db.execute(delete(Feedback).where(Feedback.message_id.in_(message_ids)))
            await db.execute(
                delete(Message).where(Message.conversation_id.in_(conversation_ids))
            )
            await db.execute(delete(Conversation).where(Conversation.tenant_id == tenant_id))
            await db.execute(delete(Chatbot).where(Chatbot.tenant_id == tenant_id))
            await db.execute(delete(UsageMetric).where(UsageMetric.tenant_id == tenant_id))
            await db.execute(delete(User).where(User.tenant_id == tenant_id))

        await db.execute(delete(Tenant).where(Tenant.id == tenant.id))
        await db.flush()
        logger.info(
            "Tenant deleted",
            tenant_id=tenant_id,
            force=force,
            users=users,
            chatbots=chatbots,
            conversations=conversations,
        )

    @staticmethod
    async def get_stats(db: AsyncSession, tenant_id: str) -> TenantStats:
        await TenantService.get_tenant_or_404(db, tenant_id)

        conversation_ids = select(Conversation.id).where(Conversation.tenant_id == tenant_id)
        message_ids = select(Message.id).where(Message.conversation_id.in_(conversation_ids))

        feedback_total = await _count(db, Feedback, Feedback.message_id.in_(message_ids))
        feedback_positive = await _count(
            db, Feedback, Feedback.message_id.in_(message_ids), Feedback.rating == 1
        )
        return TenantStats(
            user_count=await _count(db, User, User.tenant_id == tenant_id),
            chatbot_count=await _count(db, Chatbot, Chatbot.tenant_id == tenant_id),
            published_chatbot_count=await _count(
                db, Chatbot, Chatbot.tenant_id == tenant_id, Chatbot.is_published.is_(True)
            ),
            conversation_count=await _count(
                db, Conversation, Conversation.tenant_id == tenant_id
            ),
            active_conversation_count=await _count(
                db,
                Conversation,
                Conversation.tenant_id == tenant_id,
                Conversation.is_archived.is_(False),
            ),
            total_messages=await _count(
                db, Message, Message.conversation_id.in_(conversation_ids)
            ),
            feedback_positive_rate=(
                round(feedback_positive / feedback_total * 100) if feedback_total else 0
            ),
        )
