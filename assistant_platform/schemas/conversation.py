"""
schemas/conversation.py
-----------------------
Pydantic models for conversations.

The ORM keeps counters in columns and descriptive fields in a JSON document;
ConversationRead.from_model() merges both into the single `metadata` object
clients expect.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from assistant_platform.models.conversation import Conversation
from assistant_platform.schemas.message import MessageRead


class ConversationRead(BaseModel):
    id: str
    tenant_id: str
    user_id: str
    chatbot_id: Optional[str]
    title: str
    is_archived: bool
    metadata: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, conversation: Conversation) -> "ConversationRead":
        return cls(
            id=conversation.id,
            tenant_id=conversation.tenant_id,
            user_id=conversation.user_id,
            chatbot_id=conversation.chatbot_id,
            title=conversation.title,
            is_archived=conversation.is_archived,
            metadata=conversation.metadata_document(),
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )


class ConversationSummary(ConversationRead):
    message_count: int
    last_message_preview: Optional[str] = None


class ConversationDetail(ConversationRead):
    messages: list[MessageRead]


class ConversationListResponse(BaseModel):
    total: int
    page: int
    per_page: int
    items: list[ConversationSummary]


class ConversationUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    is_archived: Optional[bool] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("title cannot be empty")
        return v
