"""
schemas/chatbot.py
------------------
Pydantic models for chatbots and their settings document.

ChatbotSettings is the typed view of the free-form `settings` JSON column.
Every model allows extra keys so settings written by older or newer admin
tools survive a read → validate → write round trip.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class ModelParams(BaseModel):
    model_config = ConfigDict(extra="allow")

    top_p: Optional[float] = Field(default=None, ge=0, le=1)
    frequency_penalty: Optional[float] = Field(default=None, ge=-2, le=2)
    presence_penalty: Optional[float] = Field(default=None, ge=-2, le=2)


class ProviderOptions(BaseModel):
    model_config = ConfigDict(extra="allow")

    reasoning_effort: Optional[Literal["minimal", "low", "medium", "high"]] = None
    text_verbosity: Optional[Literal["low", "medium", "high"]] = None
    store: Optional[bool] = None


class ChatbotSettings(BaseModel):
    model_config = ConfigDict(extra="allow", protected_namespaces=())

    model_params: Optional[ModelParams] = None
    provider_options: Optional[ProviderOptions] = None

    @classmethod
    def from_document(cls, document: Optional[dict[str, Any]]) -> "ChatbotSettings":
        """
        Lenient read of a stored document: a malformed nested section is
        treated as absent rather than failing the chat request.
        """
        document = dict(document or {})
        sections: dict[str, Any] = {}
        for key, section_model in (
            ("model_params", ModelParams),
            ("provider_options", ProviderOptions),
        ):
            raw = document.pop(key, None)
            if not isinstance(raw, dict):
                continue
            try:
                sections[key] = section_model.model_validate(raw)
            except ValidationError:
                sections[key] = None
        return cls(**document, **sections)


class ChatbotBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    system_prompt: Optional[str] = None
    model: Optional[str] = Field(default=None, max_length=100)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    settings: ChatbotSettings = Field(default_factory=ChatbotSettings)
    is_published: bool = False

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v


class ChatbotCreate(ChatbotBase):
    tenant_id: str = Field(..., description="UUID of the owning company")


class ChatbotUpdate(BaseModel):
    """Partial update; only fields present in the request body are applied."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    system_prompt: Optional[str] = None
    model: Optional[str] = Field(default=None, max_length=100)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    settings: Optional[ChatbotSettings] = None
    is_published: Optional[bool] = None


class ChatbotRead(BaseModel):
    id: str
    tenant_id: str
    name: str
    description: Optional[str]
    system_prompt: Optional[str]
    model: Optional[str]
    temperature: Optional[float]
    max_tokens: Optional[int]
    settings: dict[str, Any]
    is_published: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ChatbotPublic(BaseModel):
    """What end-users see: no prompt, no provider knobs."""

    id: str
    tenant_id: str
    name: str
    description: Optional[str]
    model: Optional[str]

    model_config = {"from_attributes": True}
