"""
schemas/message.py
------------------
Pydantic models for stored chat messages.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class MessageRead(BaseModel):
    id: str
    conversation_id: str
    role: str
    content: str
    metadata: dict[str, Any] = Field(validation_alias="meta")
    created_at: datetime

    model_config = {"from_attributes": True, "populate_by_name": True}


class MessageListResponse(BaseModel):
    total: int
    page: int
    per_page: int
    items: list[MessageRead]
