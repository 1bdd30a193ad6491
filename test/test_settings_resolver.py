"""
Tests for chat settings resolution

Covers per-field precedence, reasoning-model gating of provider options, and
the keyword arguments sent to the completion provider.
"""

import pytest

from assistant_platform.core.config import settings
from assistant_platform.models import Chatbot, Tenant
from assistant_platform.services.llm_service import build_completion_kwargs
from assistant_platform.services.settings_resolver import (
    RequestOverrides,
    is_reasoning_model,
    resolve_settings,
)


def make_tenant(**kwargs) -> Tenant:
    return Tenant(name="Acme", slug="acme", **kwargs)


def make_chatbot(**kwargs) -> Chatbot:
    kwargs.setdefault("settings", {})
    return Chatbot(name="Bot", tenant_id="t", **kwargs)


class TestPrecedence:
    """request > chatbot > tenant > default, independently per field"""

    @pytest.mark.parametrize(
        "request_value, chatbot_value, tenant_value, expected",
        [
            (0.1, 0.5, 0.9, 0.1),
            (None, 0.5, 0.9, 0.5),
            (None, None, 0.9, 0.9),
            (None, None, None, settings.LLM_TEMPERATURE),
            (0.0, 0.5, 0.9, 0.0),
        ],
    )
    def test_temperature(self, request_value, chatbot_value, tenant_value, expected):
        result = resolve_settings(
            RequestOverrides(temperature=request_value),
            chatbot=make_chatbot(temperature=chatbot_value),
            tenant=make_tenant(temperature=tenant_value),
        )
        assert result.temperature == expected

    @pytest.mark.parametrize(
        "request_value, chatbot_value, tenant_value, expected",
        [
            ("gpt-4o", "gpt-4", "gpt-3.5-turbo", "gpt-4o"),
            (None, "gpt-4", "gpt-3.5-turbo", "gpt-4"),
            (None, None, "gpt-3.5-turbo", "gpt-3.5-turbo"),
            (None, None, None, settings.LLM_MODEL),
            (None, "", "gpt-3.5-turbo", "gpt-3.5-turbo"),
        ],
    )
    def test_model(self, request_value, chatbot_value, tenant_value, expected):
        result = resolve_settings(
            RequestOverrides(model=request_value),
            chatbot=make_chatbot(model=chatbot_value),
            tenant=make_tenant(llm_model=tenant_value),
        )
        assert result.model == expected

    @pytest.mark.parametrize(
        "request_value, chatbot_value, tenant_value, expected",
        [
            (100, 200, 300, 100),
            (None, 200, 300, 200),
            (None, None, 300, 300),
            (None, None, None, settings.LLM_MAX_TOKENS),
        ],
    )
    def test_max_tokens(self, request_value, chatbot_value, tenant_value, expected):
        result = resolve_settings(
            RequestOverrides(max_tokens=request_value),
            chatbot=make_chatbot(max_tokens=chatbot_value),
            tenant=make_tenant(max_tokens=tenant_value),
        )
        assert result.max_tokens == expected

    def test_system_prompt_chatbot_over_tenant(self):
        result = resolve_settings(
            RequestOverrides(),
            chatbot=make_chatbot(system_prompt="bot prompt"),
            tenant=make_tenant(system_prompt="tenant prompt"),
        )
        assert result.system_prompt == "bot prompt"

    def test_system_prompt_tenant_then_default(self):
        assert (
            resolve_settings(RequestOverrides(), tenant=make_tenant(system_prompt="tenant prompt"))
            .system_prompt == "tenant prompt"
        )
        assert resolve_settings(RequestOverrides()).system_prompt == settings.LLM_SYSTEM_PROMPT

    def test_fields_resolve_independently(self):
        """A chatbot that only sets model still inherits the tenant's temperature"""
        result = resolve_settings(
            RequestOverrides(max_tokens=64),
            chatbot=make_chatbot(model="gpt-4"),
            tenant=make_tenant(temperature=0.2, llm_model="gpt-3.5-turbo"),
        )
        assert result.model == "gpt-4"
        assert result.temperature == 0.2
        assert result.max_tokens == 64


class TestReasoningModels:
    """Allow-list matching"""

    @pytest.mark.parametrize(
        "model", ["o1", "o3", "o3-mini", "gpt-5.1", "o3-mini-2025-01-31", "GPT-5.1"]
    )
    def test_reasoning(self, model):
        assert is_reasoning_model(model)

    @pytest.mark.parametrize("model", ["gpt-4o", "o1x", "gpt-5", "gpt-5.10", "my-o1"])
    def test_not_reasoning(self, model):
        assert not is_reasoning_model(model)

    def test_custom_allow_list(self):
        assert is_reasoning_model("r1-large", allow_list=["r1"])
        assert not is_reasoning_model("o1", allow_list=["r1"])


class TestProviderOptionGating:
    """reasoning_effort / text_verbosity only reach reasoning models"""

    SETTINGS = {
        "model_params": {"top_p": 0.8, "presence_penalty": 0.5},
        "provider_options": {
            "reasoning_effort": "high",
            "text_verbosity": "low",
            "store": False,
        },
    }

    def test_reasoning_model_keeps_options(self):
        result = resolve_settings(
            RequestOverrides(),
            chatbot=make_chatbot(model="o3-mini", settings=self.SETTINGS),
        )
        assert result.provider_options == {
            "reasoning_effort": "high",
            "text_verbosity": "low",
            "store": False,
        }

    def test_non_reasoning_model_drops_options_but_keeps_store(self):
        result = resolve_settings(
            RequestOverrides(),
            chatbot=make_chatbot(model="gpt-4o", settings=self.SETTINGS),
        )
        assert result.provider_options == {"store": False}

    def test_request_model_decides_gating(self):
        """The resolved model counts, not the chatbot's configured one"""
        result = resolve_settings(
            RequestOverrides(model="gpt-4o"),
            chatbot=make_chatbot(model="o1", settings=self.SETTINGS),
        )
        assert "reasoning_effort" not in result.provider_options

    def test_model_params_only_when_set(self):
        result = resolve_settings(
            RequestOverrides(),
            chatbot=make_chatbot(model="gpt-4o", settings=self.SETTINGS),
        )
        assert result.model_params == {"top_p": 0.8, "presence_penalty": 0.5}

    def test_malformed_section_is_ignored(self):
        chatbot = make_chatbot(
            model="o1",
            settings={
                "model_params": {"top_p": 7},
                "provider_options": {"reasoning_effort": "medium"},
            },
        )
        result = resolve_settings(RequestOverrides(), chatbot=chatbot)
        assert result.model_params == {}
        assert result.provider_options == {"reasoning_effort": "medium"}

    def test_no_chatbot_no_extras(self):
        result = resolve_settings(RequestOverrides(), tenant=make_tenant(llm_model="o1"))
        assert result.model_params == {}
        assert result.provider_options == {}


class TestCompletionKwargs:
    """Outgoing provider call"""

    def _resolve(self, model, settings_document):
        return resolve_settings(
            RequestOverrides(model=model, temperature=0.4, max_tokens=256),
            chatbot=make_chatbot(settings=settings_document),
        )

    def test_reasoning_effort_sent_for_reasoning_model(self):
        config = self._resolve(
            "gpt-5.1",
            {"provider_options": {"reasoning_effort": "low", "text_verbosity": "high"}},
        )
        kwargs = build_completion_kwargs([{"role": "user", "content": "hi"}], config)
        assert kwargs["reasoning_effort"] == "low"
        assert kwargs["verbosity"] == "high"
        assert "temperature" not in kwargs

    def test_reasoning_effort_never_sent_for_other_models(self):
        config = self._resolve(
            "gpt-4o",
            {
                "model_params": {"frequency_penalty": 0.1},
                "provider_options": {"reasoning_effort": "low", "store": True},
            },
        )
        kwargs = build_completion_kwargs([{"role": "user", "content": "hi"}], config)
        assert "reasoning_effort" not in kwargs
        assert "verbosity" not in kwargs
        assert kwargs["store"] is True
        assert kwargs["temperature"] == 0.4
        assert kwargs["frequency_penalty"] == 0.1

    def test_streaming_with_usage(self):
        config = self._resolve("gpt-4o", {})
        kwargs = build_completion_kwargs([{"role": "user", "content": "hi"}], config)
        assert kwargs["stream"] is True
        assert kwargs["stream_options"] == {"include_usage": True}
        assert kwargs["max_completion_tokens"] == 256
        assert kwargs["model"] == "gpt-4o"
