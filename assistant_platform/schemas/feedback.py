"""
schemas/feedback.py
-------------------
Pydantic models for message feedback.

Clients speak "positive" / "negative"; storage uses +1 / -1.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from assistant_platform.models.feedback import Feedback

Rating = Literal["positive", "negative"]


def rating_to_int(rating: Rating) -> int:
    return 1 if rating == "positive" else -1


def int_to_rating(value: int) -> Rating:
    return "positive" if value == 1 else "negative"


class FeedbackCreate(BaseModel):
    message_id: str
    rating: Rating
    notes: Optional[str] = Field(default=None, max_length=5000)
    # Deprecated alias of notes, still sent by older widgets
    comment: Optional[str] = Field(default=None, max_length=5000)
    # Identity hint, same semantics as on the chat endpoint
    user_id: Optional[str] = None


class FeedbackRead(BaseModel):
    id: str
    message_id: str
    user_id: str
    rating: Rating
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, feedback: Feedback) -> "FeedbackRead":
        return cls(
            id=feedback.id,
            message_id=feedback.message_id,
            user_id=feedback.user_id,
            rating=int_to_rating(feedback.rating),
            notes=feedback.notes,
            created_at=feedback.created_at,
            updated_at=feedback.updated_at,
        )


class FeedbackWriteResponse(FeedbackRead):
    created: bool = False
    updated: bool = False


class FeedbackStats(BaseModel):
    total: int
    positive: int
    negative: int


class FeedbackListResponse(BaseModel):
    page: int
    per_page: int
    stats: FeedbackStats
    items: list[FeedbackRead]


class MessageFeedbackResponse(BaseModel):
    message_id: str
    feedback: Optional[FeedbackRead]
