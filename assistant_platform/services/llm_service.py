"""
services/llm_service.py
-----------------------
Streaming chat-completion client.

open_stream() performs the provider call up to the point where the first
response arrives. Failures up to there raise UpstreamError, which the route
turns into a 502 JSON body before any byte is streamed. The returned
CompletionStream then yields text tokens; once exhausted, its `result` holds
the full text and token usage.

Reasoning models (o1, o3, gpt-5.1, ...) reject sampling parameters, so they
never receive temperature or model_params; every other model always does.

Without OPENAI_API_KEY the service runs in MOCK mode and streams a canned
reply, so the whole chat flow works on a laptop.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

from assistant_platform.core.config import settings
from assistant_platform.core.errors import UpstreamError
from assistant_platform.core.logging import get_logger
from assistant_platform.services.settings_resolver import EffectiveSettings

logger = get_logger(__name__)


def estimate_tokens(text: str) -> int:
    """~4 characters per token for English text."""
    if not text:
        return 0
    return max(1, round(len(text) / 4))


@dataclass
class CompletionUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class CompletionResult:
    text: str
    usage: CompletionUsage
    finish_reason: str = "stop"
    model: Optional[str] = None


@dataclass
class StreamEvent:
    """One item from a provider stream: a text delta and/or the final usage."""

    token: Optional[str] = None
    usage: Optional[CompletionUsage] = None
    finish_reason: Optional[str] = None


class CompletionStream:
    """Async iterator over text tokens; `result` is set after clean exhaustion."""

    def __init__(self, events: AsyncIterator[StreamEvent], model: str) -> None:
        self._events = events
        self._model = model
        self._parts: list[str] = []
        self._usage: Optional[CompletionUsage] = None
        self._finish_reason = "stop"
        self.result: Optional[CompletionResult] = None

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        async for event in self._events:
            if event.usage is not None:
                self._usage = event.usage
            if event.finish_reason:
                self._finish_reason = event.finish_reason
            if event.token:
                self._parts.append(event.token)
                yield event.token
        self.result = CompletionResult(
            text="".join(self._parts),
            usage=self._usage or CompletionUsage(),
            finish_reason=self._finish_reason,
            model=self._model,
        )


def build_completion_kwargs(
    messages: list[dict[str, str]], config: EffectiveSettings
) -> dict[str, Any]:
    """
    Keyword arguments for chat.completions.create().

    Reasoning models reject sampling parameters, so temperature, top_p and the
    penalties are only sent to non-reasoning models; reasoning_effort and
    verbosity only ever reach reasoning models (the resolver already dropped
    them otherwise).
    """
    kwargs: dict[str, Any] = {
        "model": config.model,
        "messages": messages,
        "max_completion_tokens": config.max_tokens,
        "stream": True,
        "stream_options": {"include_usage": True},
    }
    if not config.reasoning:
        kwargs["temperature"] = config.temperature
        kwargs.update(config.model_params)

    options = config.provider_options
    if "store" in options:
        kwargs["store"] = options["store"]
    if config.reasoning:
        if "reasoning_effort" in options:
            kwargs["reasoning_effort"] = options["reasoning_effort"]
        if "text_verbosity" in options:
            kwargs["verbosity"] = options["text_verbosity"]
    return kwargs


class LLMService:

    def __init__(self) -> None:
        self._use_mock = not bool(settings.OPENAI_API_KEY)
        if not self._use_mock:
            import openai
            self._client = openai.AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        else:
            logger.info("LLMService in MOCK mode, set OPENAI_API_KEY for real LLM")

    @property
    def is_mock(self) -> bool:
        return self._use_mock

    async def open_stream(
        self,
        messages: list[dict[str, str]],
        config: EffectiveSettings,
    ) -> CompletionStream:
        """
        Start a streaming completion.

        Raises:
            UpstreamError: the provider rejected or failed the call.
        """
        if self._use_mock:
            events = self._mock_stream(messages)
        else:
            events = await self._openai_stream(messages, config)
        return CompletionStream(events, model=config.model)

    # ── Mock implementation ──────────────────────────────────────────────────

    async def _mock_stream(
        self, messages: list[dict[str, str]]
    ) -> AsyncIterator[StreamEvent]:
        """Simulates token-by-token streaming with realistic delays."""
        prompt = messages[-1]["content"] if messages else ""
        tokens = [
            "[MOCK", " STREAM]\n\n",
            "You", " asked:", f" '{prompt[:60]}'\n\n",
            "This", " simulates", " a", " streamed", " assistant", " reply.",
            " Set", " OPENAI_API_KEY", " for", " live", " tokens.",
        ]
        delay = settings.MOCK_TOKEN_DELAY_MS / 1000
        for token in tokens:
            if delay:
                await asyncio.sleep(delay)
            yield StreamEvent(token=token)
        yield StreamEvent(
            usage=CompletionUsage(
                prompt_tokens=sum(estimate_tokens(m["content"]) for m in messages),
                completion_tokens=estimate_tokens("".join(tokens)),
            ),
            finish_reason="stop",
        )

    # ── OpenAI implementation ────────────────────────────────────────────────

    async def _openai_stream(
        self, messages: list[dict[str, str]], config: EffectiveSettings
    ) -> AsyncIterator[StreamEvent]:
        start = time.monotonic()
        try:
            stream = await self._client.chat.completions.create(
                **build_completion_kwargs(messages, config)
            )
        except Exception as exc:
            logger.error("OpenAI API error", model=config.model, error=str(exc))
            raise UpstreamError(details={"originalError": str(exc)}) from exc

        logger.debug(
            "OpenAI stream opened",
            model=config.model,
            latency_ms=round((time.monotonic() - start) * 1000, 1),
        )
        return self._iterate_openai(stream)

    async def _iterate_openai(self, stream) -> AsyncIterator[StreamEvent]:
        try:
            async for chunk in stream:
                event = StreamEvent()
                if chunk.choices:
                    choice = chunk.choices[0]
                    event.token = choice.delta.content if choice.delta else None
                    event.finish_reason = choice.finish_reason
                if chunk.usage is not None:
                    event.usage = CompletionUsage(
                        prompt_tokens=chunk.usage.prompt_tokens or 0,
                        completion_tokens=chunk.usage.completion_tokens or 0,
                    )
                yield event
        except Exception as exc:
            logger.error("OpenAI stream error", error=str(exc))
            raise UpstreamError(details={"originalError": str(exc)}) from exc


# Shared across all requests
llm_service = LLMService()


def get_llm_service() -> LLMService:
    """FastAPI dependency; overridden in tests with a scripted provider."""
    return llm_service
