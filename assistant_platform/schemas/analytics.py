"""
schemas/analytics.py
--------------------
Admin analytics: one company's overview, the per-company table and the
per-user table of a company.
"""

import datetime as dt
from typing import Optional

from pydantic import BaseModel

from assistant_platform.schemas.review import CompanyRef, FeedbackSummary, Pagination


class ConversationCounts(BaseModel):
    total: int
    active: int
    archived: int


class MessageCounts(BaseModel):
    total: int
    user_messages: int
    assistant_messages: int


class RatedFeedbackSummary(FeedbackSummary):
    positive_rate: int = 0


class ChatbotCounts(BaseModel):
    total: int
    published: int
    unpublished: int


class UserCounts(BaseModel):
    total: int


class AnalyticsPeriod(BaseModel):
    start_date: Optional[dt.date]
    end_date: Optional[dt.date]


class AnalyticsOverview(BaseModel):
    company: CompanyRef
    conversations: ConversationCounts
    messages: MessageCounts
    feedback: RatedFeedbackSummary
    chatbots: ChatbotCounts
    users: UserCounts
    period: AnalyticsPeriod


class CompanyAnalytics(BaseModel):
    id: str
    name: str
    slug: str
    user_count: int
    conversation_count: int
    message_count: int
    feedback: RatedFeedbackSummary
    last_activity: Optional[dt.datetime]


class CompanyAnalyticsList(BaseModel):
    companies: list[CompanyAnalytics]


class UserAnalytics(BaseModel):
    id: str
    name: Optional[str]
    email: str
    role: str
    conversation_count: int
    # Messages the user sent, assistant replies excluded
    message_count: int
    feedback: FeedbackSummary
    last_active: Optional[dt.datetime]
    created_at: dt.datetime


class UserAnalyticsList(BaseModel):
    company: CompanyRef
    users: list[UserAnalytics]
    pagination: Pagination
