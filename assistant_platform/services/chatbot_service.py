"""
services/chatbot_service.py
---------------------------
Chatbot CRUD for the admin API and published-only lookups for end-users.
"""

from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from assistant_platform.core.errors import NotFoundError
from assistant_platform.core.logging import get_logger
from assistant_platform.models.chatbot import Chatbot
from assistant_platform.models.conversation import Conversation
from assistant_platform.schemas.chatbot import ChatbotCreate, ChatbotUpdate
from assistant_platform.services.tenant_service import TenantService

logger = get_logger(__name__)


class ChatbotService:

    @staticmethod
    async def create_chatbot(db: AsyncSession, data: ChatbotCreate) -> Chatbot:
        await TenantService.get_tenant_or_404(db, data.tenant_id)
        chatbot = Chatbot(
            tenant_id=data.tenant_id,
            name=data.name,
            description=data.description,
            system_prompt=data.system_prompt,
            model=data.model,
            temperature=data.temperature,
            max_tokens=data.max_tokens,
            settings=data.settings.model_dump(exclude_none=True),
            is_published=data.is_published,
        )
        db.add(chatbot)
        await db.flush()
        await db.refresh(chatbot)
        logger.info("Chatbot created", chatbot_id=chatbot.id, tenant_id=chatbot.tenant_id)
        return chatbot

    @staticmethod
    async def get_chatbot_or_404(db: AsyncSession, chatbot_id: str) -> Chatbot:
        chatbot = await db.get(Chatbot, chatbot_id)
        if chatbot is None:
            raise NotFoundError("Chatbot not found")
        return chatbot

    @staticmethod
    async def list_chatbots(
        db: AsyncSession,
        tenant_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> tuple[int, list[Chatbot]]:
        filters = [Chatbot.tenant_id == tenant_id] if tenant_id else []
        total = (
            await db.execute(select(func.count()).select_from(Chatbot).where(*filters))
        ).scalar_one()
        result = await db.execute(
            select(Chatbot)
            .where(*filters)
            .order_by(Chatbot.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return total, list(result.scalars().all())

    @staticmethod
    async def update_chatbot(
        db: AsyncSession, chatbot_id: str, data: ChatbotUpdate
    ) -> Chatbot:
        chatbot = await ChatbotService.get_chatbot_or_404(db, chatbot_id)
        changes = data.model_dump(exclude_unset=True, exclude={"settings"})
        for field, value in changes.items():
            setattr(chatbot, field, value)
        if data.settings is not None:
            # Reassign so the JSON column is flagged dirty
            chatbot.settings = data.settings.model_dump(exclude_none=True)
        await db.flush()
        await db.refresh(chatbot)
        logger.info("Chatbot updated", chatbot_id=chatbot.id)
        return chatbot

    @staticmethod
    async def delete_chatbot(db: AsyncSession, chatbot_id: str) -> None:
        """Conversations keep their history; their chatbot reference is cleared."""
        chatbot = await ChatbotService.get_chatbot_or_404(db, chatbot_id)
        await db.execute(
            update(Conversation)
            .where(Conversation.chatbot_id == chatbot.id)
            .values(chatbot_id=None)
            .execution_options(synchronize_session=False)
        )
        await db.delete(chatbot)
        await db.flush()
        logger.info("Chatbot deleted", chatbot_id=chatbot_id)

    # ── Public, published-only ───────────────────────────────────────────────

    @staticmethod
    async def list_published(db: AsyncSession, tenant_id: str) -> list[Chatbot]:
        result = await db.execute(
            select(Chatbot)
            .where(Chatbot.tenant_id == tenant_id, Chatbot.is_published.is_(True))
            .order_by(Chatbot.name)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_published(db: AsyncSession, chatbot_id: str) -> Chatbot:
        chatbot = await db.get(Chatbot, chatbot_id)
        if chatbot is None or not chatbot.is_published:
            raise NotFoundError("Chatbot not found")
        return chatbot
