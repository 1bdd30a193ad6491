"""
models/conversation.py
----------------------
Conversation ORM model.

Running aggregates (message_count, total_tokens, last_message_at) are real
columns so a finished turn can bump them with a single
UPDATE ... SET message_count = message_count + 2. Two turns finishing at the
same time on one conversation both land. The `metadata` JSON document keeps
the descriptive fields (model used, chatbot id); API responses merge both
into one metadata object via metadata_document().

tenant_id always equals the attached chatbot's tenant_id. This is checked when
the conversation is created, not by a constraint.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assistant_platform.db.base import Base, TimestampMixin, generate_uuid

DEFAULT_CONVERSATION_TITLE = "New Conversation"


class Conversation(Base, TimestampMixin):
    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    title: Mapped[str] = mapped_column(
        String(255), nullable=False, default=DEFAULT_CONVERSATION_TITLE
    )
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # "metadata" is reserved on declarative classes, hence the attribute name
    meta: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )
    message_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_message_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    chatbot_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("chatbots.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Relationships
    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="conversations")  # noqa: F821
    user: Mapped["User"] = relationship("User", back_populates="conversations")  # noqa: F821
    messages: Mapped[list["Message"]] = relationship(  # noqa: F821
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.created_at",
    )

    def metadata_document(self) -> dict[str, Any]:
        doc = dict(self.meta or {})
        doc["message_count"] = self.message_count
        doc["total_tokens"] = self.total_tokens
        if self.last_message_at is not None:
            doc["last_message_at"] = self.last_message_at.isoformat()
        return doc

    def __repr__(self) -> str:
        return f"<Conversation id={self.id} user_id={self.user_id}>"
