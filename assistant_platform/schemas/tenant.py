"""
schemas/tenant.py
-----------------
Pydantic request/response models for Tenant (company).

Naming convention:
  TenantCreate  → inbound request body
  TenantRead    → outbound admin response body
  TenantPublic  → outbound body for unauthenticated lookups (no LLM settings)
"""

import re
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def _check_slug(v: str) -> str:
    v = v.strip()
    if not SLUG_PATTERN.match(v):
        raise ValueError(
            "slug must be URL-safe (lowercase letters, numbers, and hyphens only, "
            "no leading/trailing hyphens)"
        )
    return v


class TenantLLMSettings(BaseModel):
    llm_model: Optional[str] = Field(default=None, max_length=100)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    system_prompt: Optional[str] = None


class TenantCreate(TenantLLMSettings):
    name: str = Field(
        ...,
        min_length=1,
        max_length=255,
        examples=["Acme Corp"],
        description="Company display name",
    )
    slug: str = Field(..., min_length=1, max_length=100, examples=["acme-corp"])
    is_active: bool = True
    branding: Optional[dict[str, Any]] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        return _check_slug(v)


class TenantUpdate(TenantLLMSettings):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    slug: Optional[str] = Field(default=None, min_length=1, max_length=100)
    is_active: Optional[bool] = None
    branding: Optional[dict[str, Any]] = None

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: Optional[str]) -> Optional[str]:
        return _check_slug(v) if v is not None else v


class TenantRead(BaseModel):
    id: str
    name: str
    slug: str
    is_active: bool
    branding: Optional[dict[str, Any]]
    llm_model: Optional[str]
    temperature: Optional[float]
    max_tokens: Optional[int]
    system_prompt: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class TenantPublic(BaseModel):
    id: str
    name: str
    slug: str
    branding: Optional[dict[str, Any]]

    model_config = {"from_attributes": True}


class TenantStats(BaseModel):
    user_count: int
    chatbot_count: int
    published_chatbot_count: int
    conversation_count: int
    active_conversation_count: int
    total_messages: int
    feedback_positive_rate: int


class TenantListResponse(BaseModel):
    total: int
    items: list[TenantRead]
