"""
schemas/review.py
-----------------
Admin conversation review: cross-tenant listing and full transcripts with
the ratings each assistant reply received.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from assistant_platform.schemas.feedback import Rating


class CompanyRef(BaseModel):
    id: str
    name: str
    slug: Optional[str] = None


class UserRef(BaseModel):
    id: str
    email: str
    name: Optional[str]


class ChatbotRef(BaseModel):
    id: str
    name: str
    model: Optional[str] = None
    description: Optional[str] = None


class FeedbackSummary(BaseModel):
    positive: int = 0
    negative: int = 0
    total: int = 0


class Pagination(BaseModel):
    page: int
    per_page: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, per_page: int, total: int) -> "Pagination":
        return cls(
            page=page,
            per_page=per_page,
            total=total,
            total_pages=(total + per_page - 1) // per_page,
        )


class ReviewConversation(BaseModel):
    id: str
    title: str
    is_archived: bool
    created_at: datetime
    updated_at: datetime
    company: Optional[CompanyRef]
    user: Optional[UserRef]
    chatbot: Optional[ChatbotRef]
    message_count: int
    feedback_summary: FeedbackSummary


class ReviewConversationList(BaseModel):
    conversations: list[ReviewConversation]
    pagination: Pagination


class ReviewFeedback(BaseModel):
    id: str
    rating: Rating
    notes: Optional[str]
    created_at: datetime


class ReviewMessage(BaseModel):
    id: str
    role: str
    content: str
    created_at: datetime
    metadata: dict[str, Any]
    # Latest rating when a message has several
    feedback: Optional[ReviewFeedback]


class ReviewConversationDetail(BaseModel):
    id: str
    title: str
    is_archived: bool
    created_at: datetime
    updated_at: datetime
    metadata: dict[str, Any]
    company: Optional[CompanyRef]
    user: Optional[UserRef]
    chatbot: Optional[ChatbotRef]
    messages: list[ReviewMessage]
    feedback_summary: FeedbackSummary
