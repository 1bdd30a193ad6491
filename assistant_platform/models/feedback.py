"""
models/feedback.py
------------------
Thumbs up / down on an assistant message.

rating is +1 or -1. Several rows per message are tolerated (older clients
inserted on every click); the feedback service updates the caller's own row
when one exists and summaries count every row.
"""

from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assistant_platform.db.base import Base, TimestampMixin, generate_uuid


class Feedback(Base, TimestampMixin):
    __tablename__ = "feedback"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    message_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("messages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    message: Mapped["Message"] = relationship("Message", back_populates="feedback")  # noqa: F821

    def __repr__(self) -> str:
        return f"<Feedback id={self.id} message_id={self.message_id} rating={self.rating}>"
