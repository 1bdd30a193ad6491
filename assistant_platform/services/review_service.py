"""
services/review_service.py
--------------------------
Admin review of conversations across every tenant.

Listing pages through conversations with optional filters, then fills in the
company / user / chatbot references, message counts and feedback totals of
the page with one grouped query each instead of one query per row.
"""

from typing import Literal, Optional

from sqlalchemy import exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from assistant_platform.core.errors import NotFoundError, ValidationError
from assistant_platform.core.logging import get_logger
from assistant_platform.models.chatbot import Chatbot
from assistant_platform.models.conversation import Conversation
from assistant_platform.models.feedback import Feedback
from assistant_platform.models.message import Message
from assistant_platform.models.tenant import Tenant
from assistant_platform.models.user import User
from assistant_platform.schemas.feedback import int_to_rating
from assistant_platform.schemas.review import (
    ChatbotRef,
    CompanyRef,
    FeedbackSummary,
    Pagination,
    ReviewConversation,
    ReviewConversationDetail,
    ReviewConversationList,
    ReviewFeedback,
    ReviewMessage,
    UserRef,
)
from assistant_platform.services.identity_service import is_valid_uuid

logger = get_logger(__name__)

SortField = Literal["created_at", "updated_at"]
SortOrder = Literal["asc", "desc"]


def _check_uuid(value: Optional[str], name: str) -> None:
    if value is not None and not is_valid_uuid(value):
        raise ValidationError(f"Invalid {name} format")


def _summarize(ratings) -> FeedbackSummary:
    summary = FeedbackSummary()
    for rating in ratings:
        summary.total += 1
        if rating == 1:
            summary.positive += 1
        elif rating == -1:
            summary.negative += 1
    return summary


async def _by_id(db: AsyncSession, model, ids) -> dict:
    if not ids:
        return {}
    result = await db.execute(select(model).where(model.id.in_(ids)))
    return {row.id: row for row in result.scalars().all()}


def _company_ref(tenant: Optional[Tenant], with_slug: bool = False) -> Optional[CompanyRef]:
    if tenant is None:
        return None
    return CompanyRef(id=tenant.id, name=tenant.name, slug=tenant.slug if with_slug else None)


def _user_ref(user: Optional[User]) -> Optional[UserRef]:
    if user is None:
        return None
    return UserRef(id=user.id, email=user.email, name=user.name)


def _chatbot_ref(chatbot: Optional[Chatbot], detailed: bool = False) -> Optional[ChatbotRef]:
    if chatbot is None:
        return None
    if not detailed:
        return ChatbotRef(id=chatbot.id, name=chatbot.name)
    return ChatbotRef(
        id=chatbot.id,
        name=chatbot.name,
        model=chatbot.model,
        description=chatbot.description,
    )


class ReviewService:

    @staticmethod
    async def list_conversations(
        db: AsyncSession,
        company_id: Optional[str] = None,
        chatbot_id: Optional[str] = None,
        user_id: Optional[str] = None,
        search: Optional[str] = None,
        has_feedback: Optional[bool] = None,
        page: int = 1,
        per_page: int = 20,
        sort_by: SortField = "created_at",
        sort_order: SortOrder = "desc",
    ) -> ReviewConversationList:
        _check_uuid(company_id, "company_id")
        _check_uuid(chatbot_id, "chatbot_id")
        _check_uuid(user_id, "user_id")

        filters = []
        if company_id:
            filters.append(Conversation.tenant_id == company_id)
        if chatbot_id:
            filters.append(Conversation.chatbot_id == chatbot_id)
        if user_id:
            filters.append(Conversation.user_id == user_id)
        search = (search or "").strip()
        if search:
            filters.append(Conversation.title.ilike(f"%{search}%"))
        if has_feedback is not None:
            rated = exists(
                select(Feedback.id)
                .join(Message, Message.id == Feedback.message_id)
                .where(Message.conversation_id == Conversation.id)
            )
            filters.append(rated if has_feedback else ~rated)

        total = (
            await db.execute(select(func.count()).select_from(Conversation).where(*filters))
        ).scalar_one()

        sort_column = getattr(Conversation, sort_by)
        ordering = sort_column.asc() if sort_order == "asc" else sort_column.desc()
        result = await db.execute(
            select(Conversation)
            .where(*filters)
            .order_by(ordering, Conversation.id)
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        conversations = list(result.scalars().all())
        page_info = Pagination.build(page, per_page, total)
        if not conversations:
            return ReviewConversationList(conversations=[], pagination=page_info)

        conversation_ids = [c.id for c in conversations]
        tenants = await _by_id(db, Tenant, {c.tenant_id for c in conversations})
        users = await _by_id(db, User, {c.user_id for c in conversations})
        chatbots = await _by_id(db, Chatbot, {c.chatbot_id for c in conversations if c.chatbot_id})

        message_counts = dict(
            (
                await db.execute(
                    select(Message.conversation_id, func.count())
                    .where(Message.conversation_id.in_(conversation_ids))
                    .group_by(Message.conversation_id)
                )
            ).all()
        )
        feedback_rows = await db.execute(
            select(Message.conversation_id, Feedback.rating)
            .join(Message, Message.id == Feedback.message_id)
            .where(Message.conversation_id.in_(conversation_ids))
        )
        ratings_by_conversation: dict[str, list[int]] = {}
        for conversation_id, rating in feedback_rows.all():
            ratings_by_conversation.setdefault(conversation_id, []).append(rating)
        summaries = {cid: _summarize(r) for cid, r in ratings_by_conversation.items()}

        items = [
            ReviewConversation(
                id=c.id,
                title=c.title,
                is_archived=c.is_archived,
                created_at=c.created_at,
                updated_at=c.updated_at,
                company=_company_ref(tenants.get(c.tenant_id)),
                user=_user_ref(users.get(c.user_id)),
                chatbot=_chatbot_ref(chatbots.get(c.chatbot_id)) if c.chatbot_id else None,
                message_count=message_counts.get(c.id, 0),
                feedback_summary=summaries.get(c.id, FeedbackSummary()),
            )
            for c in conversations
        ]
        return ReviewConversationList(conversations=items, pagination=page_info)

    @staticmethod
    async def get_conversation(db: AsyncSession, conversation_id: str) -> ReviewConversationDetail:
        """
        Full transcript of any conversation, each message with its rating.

        Raises:
            ValidationError: conversation_id is not a UUID.
            NotFoundError:   no such conversation.
        """
        _check_uuid(conversation_id, "conversation ID")
        conversation = await db.get(Conversation, conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found or access denied")

        tenant = await db.get(Tenant, conversation.tenant_id)
        user = await db.get(User, conversation.user_id)
        chatbot = (
            await db.get(Chatbot, conversation.chatbot_id) if conversation.chatbot_id else None
        )

        messages = list(
            (
                await db.execute(
                    select(Message)
                    .where(Message.conversation_id == conversation.id)
                    .order_by(Message.created_at)
                )
            ).scalars().all()
        )
        feedback: list[Feedback] = []
        if messages:
            feedback = list(
                (
                    await db.execute(
                        select(Feedback)
                        .where(Feedback.message_id.in_([m.id for m in messages]))
                        .order_by(Feedback.updated_at)
                    )
                ).scalars().all()
            )
        # Later rows overwrite earlier ones: the newest rating wins
        latest = {f.message_id: f for f in feedback}

        logger.info("Admin reviewed conversation", conversation_id=conversation.id)
        return ReviewConversationDetail(
            id=conversation.id,
            title=conversation.title,
            is_archived=conversation.is_archived,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            metadata=conversation.metadata_document(),
            company=_company_ref(tenant, with_slug=True),
            user=_user_ref(user),
            chatbot=_chatbot_ref(chatbot, detailed=True),
            messages=[
                ReviewMessage(
                    id=m.id,
                    role=m.role,
                    content=m.content,
                    created_at=m.created_at,
                    metadata=m.meta or {},
                    feedback=(
                        ReviewFeedback(
                            id=latest[m.id].id,
                            rating=int_to_rating(latest[m.id].rating),
                            notes=latest[m.id].notes,
                            created_at=latest[m.id].created_at,
                        )
                        if m.id in latest
                        else None
                    ),
                )
                for m in messages
            ],
            feedback_summary=_summarize(f.rating for f in feedback),
        )
