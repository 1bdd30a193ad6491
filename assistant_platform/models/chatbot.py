"""
models/chatbot.py
-----------------
Per-tenant assistant configuration.

settings is a free-form JSON document. The chat flow reads two nested keys
from it (model_params, provider_options); see schemas/chatbot.py for the
typed view. Other keys are kept untouched.
"""

from typing import Any, Optional

from sqlalchemy import JSON, Boolean, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assistant_platform.db.base import Base, TimestampMixin, generate_uuid


class Chatbot(Base, TimestampMixin):
    __tablename__ = "chatbots"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    system_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    temperature: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    max_tokens: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="chatbots")  # noqa: F821

    def __repr__(self) -> str:
        return f"<Chatbot id={self.id} name={self.name} published={self.is_published}>"
