"""
services/feedback_service.py
----------------------------
Ratings on assistant messages.

A message is rateable only by the owner of its conversation. Re-rating
updates the caller's most recent row instead of adding another one.
"""

from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from assistant_platform.core.errors import NotFoundError, ValidationError
from assistant_platform.core.logging import get_logger
from assistant_platform.models.conversation import Conversation
from assistant_platform.models.feedback import Feedback
from assistant_platform.models.message import Message, MessageRole
from assistant_platform.schemas.feedback import FeedbackStats, Rating, rating_to_int
from assistant_platform.services.identity_service import IdentityContext, is_valid_uuid

logger = get_logger(__name__)


class FeedbackService:

    @staticmethod
    async def get_owned_message(
        db: AsyncSession, message_id: str, identity: IdentityContext
    ) -> Message:
        if not is_valid_uuid(message_id):
            raise ValidationError("Invalid message_id format")
        result = await db.execute(
            select(Message)
            .join(Conversation, Conversation.id == Message.conversation_id)
            .where(
                Message.id == message_id,
                Conversation.user_id == identity.user_id,
                Conversation.tenant_id == identity.tenant_id,
            )
        )
        message = result.scalar_one_or_none()
        if message is None:
            raise NotFoundError("Message not found or access denied")
        return message

    @staticmethod
    async def _latest_for_user(
        db: AsyncSession, message_id: str, user_id: str
    ) -> Optional[Feedback]:
        result = await db.execute(
            select(Feedback)
            .where(Feedback.message_id == message_id, Feedback.user_id == user_id)
            .order_by(Feedback.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def submit(
        db: AsyncSession,
        identity: IdentityContext,
        message_id: str,
        rating: Rating,
        notes: Optional[str] = None,
    ) -> tuple[Feedback, bool]:
        """
        Returns (feedback, created).

        Raises:
            NotFoundError:   message missing or in someone else's conversation.
            ValidationError: the message is not an assistant message.
        """
        message = await FeedbackService.get_owned_message(db, message_id, identity)
        if message.role != MessageRole.assistant.value:
            raise ValidationError("Feedback can only be provided on assistant messages")

        existing = await FeedbackService._latest_for_user(db, message.id, identity.user_id)
        if existing is not None:
            existing.rating = rating_to_int(rating)
            existing.notes = notes
            await db.flush()
            await db.refresh(existing)
            logger.info("Feedback updated", feedback_id=existing.id, rating=rating)
            return existing, False

        feedback = Feedback(
            message_id=message.id,
            user_id=identity.user_id,
            rating=rating_to_int(rating),
            notes=notes,
        )
        db.add(feedback)
        await db.flush()
        await db.refresh(feedback)
        logger.info("Feedback created", feedback_id=feedback.id, rating=rating)
        return feedback, True

    @staticmethod
    async def get_for_message(
        db: AsyncSession, identity: IdentityContext, message_id: str
    ) -> Optional[Feedback]:
        message = await FeedbackService.get_owned_message(db, message_id, identity)
        return await FeedbackService._latest_for_user(db, message.id, identity.user_id)

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        identity: IdentityContext,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[FeedbackStats, list[Feedback]]:
        base = Feedback.user_id == identity.user_id
        totals = await db.execute(
            select(
                func.count(Feedback.id),
                func.coalesce(func.sum(case((Feedback.rating == 1, 1), else_=0)), 0),
                func.coalesce(func.sum(case((Feedback.rating == -1, 1), else_=0)), 0),
            ).where(base)
        )
        total, positive, negative = totals.one()

        result = await db.execute(
            select(Feedback)
            .where(base)
            .order_by(Feedback.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        stats = FeedbackStats(total=total, positive=int(positive), negative=int(negative))
        return stats, list(result.scalars().all())
