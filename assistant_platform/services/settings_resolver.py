"""
services/settings_resolver.py
-----------------------------
Merge the chat configuration layers into one EffectiveSettings.

Precedence, per field and independently for each of model / temperature /
max_tokens / system_prompt:

    request parameter > chatbot > tenant > application default

model_params and provider_options come from the chatbot settings document
only. reasoning_effort and text_verbosity are kept only when the resolved
model is reasoning-capable; store is kept for every model.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from assistant_platform.core.config import settings
from assistant_platform.models.chatbot import Chatbot
from assistant_platform.models.tenant import Tenant
from assistant_platform.schemas.chatbot import ChatbotSettings


def is_reasoning_model(model: str, allow_list: Optional[list[str]] = None) -> bool:
    """Exact match, or a versioned variant such as 'o3-mini-2025-01-31'."""
    allow_list = settings.REASONING_MODELS if allow_list is None else allow_list
    model = model.strip().lower()
    return any(
        model == name or model.startswith(f"{name}-")
        for name in (n.lower() for n in allow_list)
    )


@dataclass(frozen=True)
class RequestOverrides:
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    # Not accepted from the public chat body; used by internal callers
    system_prompt: Optional[str] = None


@dataclass(frozen=True)
class EffectiveSettings:
    model: str
    temperature: float
    max_tokens: int
    system_prompt: str
    # Only keys that are actually set; empty dicts mean "send nothing"
    model_params: dict[str, Any] = field(default_factory=dict)
    provider_options: dict[str, Any] = field(default_factory=dict)

    @property
    def reasoning(self) -> bool:
        return is_reasoning_model(self.model)


def _first(*values):
    for value in values:
        if value is not None:
            return value
    return None


def _first_text(*values: Optional[str]) -> Optional[str]:
    # Empty strings in a stored row mean "not configured"
    for value in values:
        if value:
            return value
    return None


def resolve_settings(
    overrides: RequestOverrides,
    chatbot: Optional[Chatbot] = None,
    tenant: Optional[Tenant] = None,
) -> EffectiveSettings:
    model = _first_text(
        overrides.model,
        chatbot.model if chatbot else None,
        tenant.llm_model if tenant else None,
    ) or settings.LLM_MODEL
    temperature = _first(
        overrides.temperature,
        chatbot.temperature if chatbot else None,
        tenant.temperature if tenant else None,
        settings.LLM_TEMPERATURE,
    )
    max_tokens = _first(
        overrides.max_tokens,
        chatbot.max_tokens if chatbot else None,
        tenant.max_tokens if tenant else None,
        settings.LLM_MAX_TOKENS,
    )
    system_prompt = _first_text(
        overrides.system_prompt,
        chatbot.system_prompt if chatbot else None,
        tenant.system_prompt if tenant else None,
    ) or settings.LLM_SYSTEM_PROMPT

    model_params: dict[str, Any] = {}
    provider_options: dict[str, Any] = {}
    if chatbot is not None:
        document = ChatbotSettings.from_document(chatbot.settings)
        if document.model_params is not None:
            params = document.model_params
            for name in ("top_p", "frequency_penalty", "presence_penalty"):
                value = getattr(params, name)
                if value is not None:
                    model_params[name] = value
        if document.provider_options is not None:
            options = document.provider_options
            if options.store is not None:
                provider_options["store"] = options.store
            if is_reasoning_model(model):
                if options.reasoning_effort:
                    provider_options["reasoning_effort"] = options.reasoning_effort
                if options.text_verbosity:
                    provider_options["text_verbosity"] = options.text_verbosity

    return EffectiveSettings(
        model=model,
        temperature=float(temperature),
        max_tokens=int(max_tokens),
        system_prompt=system_prompt,
        model_params=model_params,
        provider_options=provider_options,
    )
