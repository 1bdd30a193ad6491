"""
services/conversation_service.py
--------------------------------
Conversation lifecycle: find-or-create, history replay, post-turn aggregates,
plus the read/update/delete operations behind /api/conversations.

Every query is scoped by the acting user's id (and therefore tenant).
"""

from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from assistant_platform.core.config import settings
from assistant_platform.core.errors import NotFoundError
from assistant_platform.core.logging import get_logger
from assistant_platform.db.base import utcnow
from assistant_platform.models.conversation import DEFAULT_CONVERSATION_TITLE, Conversation
from assistant_platform.models.feedback import Feedback
from assistant_platform.models.message import Message, MessageRole
from assistant_platform.schemas.conversation import ConversationUpdate
from assistant_platform.services.identity_service import IdentityContext, is_valid_uuid

logger = get_logger(__name__)

TITLE_MAX_LENGTH = 50
PREVIEW_MAX_LENGTH = 100


def derive_title(first_message: str) -> str:
    text = first_message.strip()
    if len(text) > TITLE_MAX_LENGTH:
        return text[:TITLE_MAX_LENGTH] + "..."
    return text


def _preview(content: str) -> str:
    if len(content) > PREVIEW_MAX_LENGTH:
        return content[:PREVIEW_MAX_LENGTH] + "..."
    return content


class ConversationService:

    @staticmethod
    async def get_owned(
        db: AsyncSession,
        conversation_id: str,
        identity: IdentityContext,
        *,
        include_archived: bool = True,
        with_messages: bool = False,
    ) -> Conversation:
        """
        Raises NotFoundError unless the conversation exists and belongs to the
        acting user. A malformed id is treated as "not found".
        """
        if not is_valid_uuid(conversation_id):
            raise NotFoundError("Conversation not found or access denied")
        query = select(Conversation).where(
            Conversation.id == conversation_id,
            Conversation.user_id == identity.user_id,
            Conversation.tenant_id == identity.tenant_id,
        )
        if not include_archived:
            query = query.where(Conversation.is_archived.is_(False))
        if with_messages:
            query = query.options(selectinload(Conversation.messages))
        conversation = (await db.execute(query)).scalar_one_or_none()
        if conversation is None:
            raise NotFoundError("Conversation not found or access denied")
        return conversation

    @staticmethod
    async def get_or_create(
        db: AsyncSession,
        identity: IdentityContext,
        conversation_id: Optional[str],
        chatbot_id: Optional[str],
        model: str,
    ) -> tuple[Conversation, bool]:
        """
        Returns (conversation, is_new). A supplied id must name one of the
        user's un-archived conversations; otherwise a fresh one is created.
        """
        if conversation_id:
            conversation = await ConversationService.get_owned(
                db, conversation_id, identity, include_archived=False
            )
            return conversation, False

        conversation = Conversation(
            tenant_id=identity.tenant_id,
            user_id=identity.user_id,
            chatbot_id=chatbot_id,
            title=DEFAULT_CONVERSATION_TITLE,
            is_archived=False,
            message_count=0,
            total_tokens=0,
            meta={"model": model, "chatbot_id": chatbot_id},
        )
        db.add(conversation)
        await db.flush()
        logger.info(
            "Conversation created",
            conversation_id=conversation.id,
            chatbot_id=chatbot_id,
        )
        return conversation, True

    @staticmethod
    async def load_history(
        db: AsyncSession,
        conversation_id: str,
        limit: Optional[int] = None,
    ) -> list[dict[str, str]]:
        """Most recent `limit` messages, returned oldest first as {role, content}."""
        limit = settings.MAX_CONVERSATION_MESSAGES if limit is None else limit
        result = await db.execute(
            select(Message.role, Message.content)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
        )
        rows = list(result.all())
        rows.reverse()
        return [{"role": role, "content": content} for role, content in rows]

    @staticmethod
    async def save_message(
        db: AsyncSession,
        conversation_id: str,
        role: MessageRole,
        content: str,
        metadata: Optional[dict] = None,
    ) -> Message:
        message = Message(
            conversation_id=conversation_id,
            role=role.value,
            content=content,
            meta=metadata or {},
        )
        db.add(message)
        await db.flush()
        return message

    @staticmethod
    async def record_turn(
        db: AsyncSession,
        conversation_id: str,
        total_tokens: int,
        first_message: Optional[str] = None,
    ) -> None:
        """
        Bump the aggregates of a finished turn in the database itself.

        When `first_message` is given (the conversation was created by this
        turn), the title is derived from it, but only while the title is still
        the default one.
        """
        now = utcnow()
        await db.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(
                message_count=Conversation.message_count + 2,
                total_tokens=Conversation.total_tokens + total_tokens,
                last_message_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if first_message:
            await db.execute(
                update(Conversation)
                .where(
                    Conversation.id == conversation_id,
                    Conversation.title == DEFAULT_CONVERSATION_TITLE,
                )
                .values(title=derive_title(first_message))
                .execution_options(synchronize_session=False)
            )

    # ── /api/conversations ───────────────────────────────────────────────────

    @staticmethod
    async def list_conversations(
        db: AsyncSession,
        identity: IdentityContext,
        archived: bool = False,
        search: Optional[str] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[int, list[tuple[Conversation, Optional[str]]]]:
        """
        Returns (total, [(conversation, last_message_preview), ...]),
        most recently active first.
        """
        filters = [
            Conversation.user_id == identity.user_id,
            Conversation.tenant_id == identity.tenant_id,
            Conversation.is_archived.is_(archived),
        ]
        if search:
            filters.append(Conversation.title.ilike(f"%{search.strip()}%"))

        total = (
            await db.execute(select(func.count()).select_from(Conversation).where(*filters))
        ).scalar_one()

        result = await db.execute(
            select(Conversation)
            .where(*filters)
            .order_by(
                func.coalesce(Conversation.last_message_at, Conversation.created_at).desc()
            )
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        conversations = list(result.scalars().all())

        items = []
        for conversation in conversations:
            last = await db.execute(
                select(Message.content)
                .where(Message.conversation_id == conversation.id)
                .order_by(Message.created_at.desc(), Message.id.desc())
                .limit(1)
            )
            content = last.scalar_one_or_none()
            items.append((conversation, _preview(content) if content else None))
        return total, items

    @staticmethod
    async def update_conversation(
        db: AsyncSession,
        conversation_id: str,
        identity: IdentityContext,
        data: ConversationUpdate,
    ) -> Conversation:
        conversation = await ConversationService.get_owned(db, conversation_id, identity)
        if data.title is not None:
            conversation.title = data.title
        if data.is_archived is not None:
            conversation.is_archived = data.is_archived
        await db.flush()
        await db.refresh(conversation)
        logger.info("Conversation updated", conversation_id=conversation.id)
        return conversation

    @staticmethod
    async def delete_conversation(
        db: AsyncSession,
        conversation_id: str,
        identity: IdentityContext,
    ) -> None:
        conversation = await ConversationService.get_owned(db, conversation_id, identity)
        message_ids = select(Message.id).where(Message.conversation_id == conversation.id)
        await db.execute(delete(Feedback).where(Feedback.message_id.in_(message_ids)))
        await db.execute(delete(Message).where(Message.conversation_id == conversation.id))
        await db.delete(conversation)
        await db.flush()
        logger.info("Conversation deleted", conversation_id=conversation_id)

    @staticmethod
    async def list_messages(
        db: AsyncSession,
        conversation_id: str,
        identity: IdentityContext,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[int, list[Message]]:
        conversation = await ConversationService.get_owned(db, conversation_id, identity)
        total = (
            await db.execute(
                select(func.count())
                .select_from(Message)
                .where(Message.conversation_id == conversation.id)
            )
        ).scalar_one()
        result = await db.execute(
            select(Message)
            .where(Message.conversation_id == conversation.id)
            .order_by(Message.created_at, Message.id)
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return total, list(result.scalars().all())
