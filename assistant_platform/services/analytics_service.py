"""
services/analytics_service.py
-----------------------------
Admin analytics over conversations, messages, feedback, chatbots and users.

overview() optionally limits every count except the user total to rows
created between start_date and end_date (both inclusive, UTC days).
Feedback belongs to a company through the user who gave it.
"""

import datetime as dt
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from assistant_platform.core.errors import NotFoundError, ValidationError
from assistant_platform.models.chatbot import Chatbot
from assistant_platform.models.conversation import Conversation
from assistant_platform.models.feedback import Feedback
from assistant_platform.models.message import Message, MessageRole
from assistant_platform.models.tenant import Tenant
from assistant_platform.models.user import User
from assistant_platform.schemas.analytics import (
    AnalyticsOverview,
    AnalyticsPeriod,
    ChatbotCounts,
    CompanyAnalytics,
    CompanyAnalyticsList,
    ConversationCounts,
    MessageCounts,
    RatedFeedbackSummary,
    UserAnalytics,
    UserAnalyticsList,
    UserCounts,
)
from assistant_platform.schemas.review import CompanyRef, FeedbackSummary, Pagination
from assistant_platform.services.identity_service import is_valid_uuid


async def _count(db: AsyncSession, model, *filters) -> int:
    result = await db.execute(select(func.count()).select_from(model).where(*filters))
    return result.scalar_one()


def _positive_rate(positive: int, total: int) -> int:
    return round(positive / total * 100) if total else 0


def _created_between(model, start: Optional[dt.date], end: Optional[dt.date]) -> list:
    filters = []
    if start is not None:
        filters.append(
            model.created_at >= dt.datetime.combine(start, dt.time.min, tzinfo=dt.timezone.utc)
        )
    if end is not None:
        next_day = end + dt.timedelta(days=1)
        filters.append(
            model.created_at < dt.datetime.combine(next_day, dt.time.min, tzinfo=dt.timezone.utc)
        )
    return filters


async def _feedback_summary(db: AsyncSession, *filters) -> RatedFeedbackSummary:
    rows = await db.execute(
        select(Feedback.rating, func.count()).where(*filters).group_by(Feedback.rating)
    )
    by_rating = dict(rows.all())
    positive = by_rating.get(1, 0)
    negative = by_rating.get(-1, 0)
    total = sum(by_rating.values())
    return RatedFeedbackSummary(
        positive=positive,
        negative=negative,
        total=total,
        positive_rate=_positive_rate(positive, total),
    )


async def _get_company(db: AsyncSession, company_id: str) -> Tenant:
    if not is_valid_uuid(company_id):
        raise ValidationError("Invalid company_id format")
    tenant = await db.get(Tenant, company_id)
    if tenant is None:
        raise NotFoundError("Company not found")
    return tenant


class AnalyticsService:

    @staticmethod
    async def overview(
        db: AsyncSession,
        company_id: str,
        start_date: Optional[dt.date] = None,
        end_date: Optional[dt.date] = None,
    ) -> AnalyticsOverview:
        if start_date and end_date and start_date > end_date:
            raise ValidationError("start_date must be before or equal to end_date")
        tenant = await _get_company(db, company_id)

        conversation_filters = [
            Conversation.tenant_id == tenant.id,
            *_created_between(Conversation, start_date, end_date),
        ]
        archived_rows = await db.execute(
            select(Conversation.is_archived, func.count())
            .where(*conversation_filters)
            .group_by(Conversation.is_archived)
        )
        by_archived = dict(archived_rows.all())

        tenant_conversations = select(Conversation.id).where(Conversation.tenant_id == tenant.id)
        role_rows = await db.execute(
            select(Message.role, func.count())
            .where(
                Message.conversation_id.in_(tenant_conversations),
                *_created_between(Message, start_date, end_date),
            )
            .group_by(Message.role)
        )
        by_role = dict(role_rows.all())

        tenant_users = select(User.id).where(User.tenant_id == tenant.id)
        feedback = await _feedback_summary(
            db,
            Feedback.user_id.in_(tenant_users),
            *_created_between(Feedback, start_date, end_date),
        )

        published_rows = await db.execute(
            select(Chatbot.is_published, func.count())
            .where(Chatbot.tenant_id == tenant.id, *_created_between(Chatbot, start_date, end_date))
            .group_by(Chatbot.is_published)
        )
        by_published = dict(published_rows.all())

        return AnalyticsOverview(
            company=CompanyRef(id=tenant.id, name=tenant.name, slug=tenant.slug),
            conversations=ConversationCounts(
                total=sum(by_archived.values()),
                active=by_archived.get(False, 0),
                archived=by_archived.get(True, 0),
            ),
            messages=MessageCounts(
                total=sum(by_role.values()),
                user_messages=by_role.get(MessageRole.user.value, 0),
                assistant_messages=by_role.get(MessageRole.assistant.value, 0),
            ),
            feedback=feedback,
            chatbots=ChatbotCounts(
                total=sum(by_published.values()),
                published=by_published.get(True, 0),
                unpublished=by_published.get(False, 0),
            ),
            users=UserCounts(total=await _count(db, User, User.tenant_id == tenant.id)),
            period=AnalyticsPeriod(start_date=start_date, end_date=end_date),
        )

    @staticmethod
    async def companies(db: AsyncSession) -> CompanyAnalyticsList:
        """One row per active company, by name."""
        tenants = (
            await db.execute(
                select(Tenant).where(Tenant.is_active.is_(True)).order_by(Tenant.name)
            )
        ).scalars().all()

        rows = []
        for tenant in tenants:
            conversation_ids = select(Conversation.id).where(Conversation.tenant_id == tenant.id)
            user_ids = select(User.id).where(User.tenant_id == tenant.id)
            last_activity = (
                await db.execute(
                    select(func.max(Conversation.updated_at)).where(
                        Conversation.tenant_id == tenant.id
                    )
                )
            ).scalar_one()
            rows.append(
                CompanyAnalytics(
                    id=tenant.id,
                    name=tenant.name,
                    slug=tenant.slug,
                    user_count=await _count(db, User, User.tenant_id == tenant.id),
                    conversation_count=await _count(
                        db, Conversation, Conversation.tenant_id == tenant.id
                    ),
                    message_count=await _count(
                        db, Message, Message.conversation_id.in_(conversation_ids)
                    ),
                    feedback=await _feedback_summary(db, Feedback.user_id.in_(user_ids)),
                    last_activity=last_activity,
                )
            )
        return CompanyAnalyticsList(companies=rows)

    @staticmethod
    async def users(
        db: AsyncSession, company_id: str, page: int = 1, per_page: int = 20
    ) -> UserAnalyticsList:
        """A company's users, most recently active first."""
        tenant = await _get_company(db, company_id)

        total = await _count(db, User, User.tenant_id == tenant.id)
        users = (
            await db.execute(
                select(User)
                .where(User.tenant_id == tenant.id)
                .order_by(User.last_active_at.desc().nulls_last(), User.created_at)
                .offset((page - 1) * per_page)
                .limit(per_page)
            )
        ).scalars().all()

        rows = []
        for user in users:
            conversation_ids = select(Conversation.id).where(Conversation.user_id == user.id)
            feedback = await _feedback_summary(db, Feedback.user_id == user.id)
            rows.append(
                UserAnalytics(
                    id=user.id,
                    name=user.name,
                    email=user.email,
                    role=user.role,
                    conversation_count=await _count(
                        db, Conversation, Conversation.user_id == user.id
                    ),
                    message_count=await _count(
                        db,
                        Message,
                        Message.conversation_id.in_(conversation_ids),
                        Message.role == MessageRole.user.value,
                    ),
                    feedback=FeedbackSummary(
                        positive=feedback.positive,
                        negative=feedback.negative,
                        total=feedback.total,
                    ),
                    last_active=user.last_active_at,
                    created_at=user.created_at,
                )
            )

        return UserAnalyticsList(
            company=CompanyRef(id=tenant.id, name=tenant.name),
            users=rows,
            pagination=Pagination.build(page, per_page, total),
        )
