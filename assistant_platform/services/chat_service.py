"""
services/chat_service.py
------------------------
One chat turn, top to bottom:

  1. resolve identity (user_id | company_slug + user_email | demo)
  2. gate the chatbot (exists, same tenant, published)
  3. resolve effective settings (request > chatbot > tenant > default)
  4. find or create the conversation, load its history
  5. store the user message and COMMIT, so it survives any later failure
  6. open the provider stream (failures here become a 502 JSON body)
  7. relay tokens to the client
  8. after a clean end of stream, persist the assistant message, bump the
     conversation aggregates and record usage in a fresh session

Step 8 never raises: the client already has its answer, so a failure there
is logged and swallowed. If the client disconnects, step 8 does not run.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assistant_platform.core.errors import UpstreamError, ValidationError
from assistant_platform.core.logging import bind_request_context, get_logger
from assistant_platform.models.message import MessageRole
from assistant_platform.models.tenant import Tenant
from assistant_platform.schemas.chat import ChatRequest
from assistant_platform.services import mlflow_service
from assistant_platform.services.conversation_service import ConversationService
from assistant_platform.services.identity_service import IdentityContext, IdentityService
from assistant_platform.services.llm_service import CompletionResult, CompletionStream, LLMService
from assistant_platform.services.settings_resolver import (
    EffectiveSettings,
    RequestOverrides,
    resolve_settings,
)
from assistant_platform.services.usage_service import UsageService

logger = get_logger(__name__)


@dataclass
class ChatTurn:
    conversation_id: str
    is_new: bool
    tokens: AsyncIterator[str]


@dataclass(frozen=True)
class TurnContext:
    """Everything the completion callback needs, detached from the request session."""

    identity: IdentityContext
    conversation_id: str
    is_new: bool
    chatbot_id: Optional[str]
    prompt: str
    config: EffectiveSettings
    started_at: float


def build_prompt(
    system_prompt: str, history: list[dict[str, str]], user_message: str
) -> list[dict[str, str]]:
    return (
        [{"role": MessageRole.system.value, "content": system_prompt}]
        + history
        + [{"role": MessageRole.user.value, "content": user_message}]
    )


class ChatService:

    @staticmethod
    async def start_turn(
        db: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        llm: LLMService,
        request: ChatRequest,
    ) -> ChatTurn:
        """
        Run steps 1-6 and return the turn whose `tokens` drive steps 7-8.

        Raises:
            ValidationError, NotFoundError: bad input or identity.
            UpstreamError:                  the provider call failed to open.
        """
        prompt = request.prompt_text()
        if not prompt:
            raise ValidationError("Message is required and must be a non-empty string")

        identity = await IdentityService.resolve(
            db,
            user_id=request.user_id,
            company_slug=request.company_slug,
            user_email=request.user_email,
            user_name=request.user_name,
        )
        bind_request_context(
            tenant_id=identity.tenant_id,
            user_id=identity.user_id,
            identity_mode=identity.mode.value,
        )

        chatbot = None
        if request.chatbot_id:
            chatbot = await IdentityService.authorize_chatbot(db, request.chatbot_id, identity)

        tenant = await db.get(Tenant, identity.tenant_id)
        config = resolve_settings(
            RequestOverrides(
                model=request.model,
                temperature=request.temperature,
                max_tokens=request.max_tokens,
            ),
            chatbot=chatbot,
            tenant=tenant,
        )

        conversation, is_new = await ConversationService.get_or_create(
            db,
            identity,
            conversation_id=request.conversation_id,
            chatbot_id=chatbot.id if chatbot else None,
            model=config.model,
        )
        bind_request_context(conversation_id=conversation.id)

        # History is read before the new user message is stored
        history = [] if is_new else await ConversationService.load_history(db, conversation.id)
        await ConversationService.save_message(
            db, conversation.id, MessageRole.user, prompt
        )
        await db.commit()

        logger.info(
            "Chat turn started",
            model=config.model,
            is_new_conversation=is_new,
            history_messages=len(history),
            reasoning=config.reasoning,
        )

        context = TurnContext(
            identity=identity,
            conversation_id=conversation.id,
            is_new=is_new,
            chatbot_id=chatbot.id if chatbot else None,
            prompt=prompt,
            config=config,
            started_at=time.monotonic(),
        )
        completion = await llm.open_stream(
            build_prompt(config.system_prompt, history, prompt), config
        )
        return ChatTurn(
            conversation_id=conversation.id,
            is_new=is_new,
            tokens=ChatService._relay(completion, context, session_factory),
        )

    @staticmethod
    async def _relay(
        completion: CompletionStream,
        context: TurnContext,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> AsyncIterator[str]:
        try:
            async for token in completion:
                yield token
        except UpstreamError:
            # Headers are already sent; the client sees a truncated body
            logger.warning("Stream aborted by provider", conversation_id=context.conversation_id)
            return

        if completion.result is not None:
            await ChatService.finalize_turn(session_factory, context, completion.result)

    @staticmethod
    async def finalize_turn(
        session_factory: async_sessionmaker[AsyncSession],
        context: TurnContext,
        result: CompletionResult,
    ) -> None:
        """
        Persist a finished turn. Logs and swallows every failure.

        The assistant message, the conversation aggregates and the usage row
        are committed one at a time, so a failed aggregate update never takes
        the stored reply with it.
        """
        latency_ms = round((time.monotonic() - context.started_at) * 1000, 1)
        usage = result.usage
        cost = 0.0
        message_saved = False

        async with session_factory() as session:
            try:
                await ConversationService.save_message(
                    session,
                    context.conversation_id,
                    MessageRole.assistant,
                    result.text,
                    metadata={
                        "model": context.config.model,
                        "tokens": usage.completion_tokens,
                        "prompt_tokens": usage.prompt_tokens,
                        "finish_reason": result.finish_reason,
                        "latency_ms": latency_ms,
                    },
                )
                await session.commit()
                message_saved = True
            except Exception:
                await session.rollback()
                logger.exception(
                    "Failed to store assistant message",
                    conversation_id=context.conversation_id,
                )

            # message_count counts stored messages; skip the bump without a reply
            if message_saved:
                try:
                    await ConversationService.record_turn(
                        session,
                        context.conversation_id,
                        total_tokens=usage.total_tokens,
                        first_message=context.prompt if context.is_new else None,
                    )
                    await session.commit()
                except Exception:
                    await session.rollback()
                    logger.exception(
                        "Failed to update conversation metadata",
                        conversation_id=context.conversation_id,
                    )

            try:
                cost = await UsageService.record_usage(
                    session,
                    tenant_id=context.identity.tenant_id,
                    user_id=context.identity.user_id,
                    model=context.config.model,
                    prompt_tokens=usage.prompt_tokens,
                    completion_tokens=usage.completion_tokens,
                )
                await session.commit()
            except Exception:
                await session.rollback()
                logger.exception(
                    "Failed to record usage",
                    conversation_id=context.conversation_id,
                )

        logger.info(
            "Chat turn completed",
            conversation_id=context.conversation_id,
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            estimated_cost=cost,
            latency_ms=latency_ms,
        )
        if mlflow_service.tracking_enabled():
            await asyncio.to_thread(
                mlflow_service.track_completion,
                model=context.config.model,
                tenant_id=context.identity.tenant_id,
                user_id=context.identity.user_id,
                conversation_id=context.conversation_id,
                chatbot_id=context.chatbot_id,
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                estimated_cost=cost,
                latency_ms=latency_ms,
                reasoning=context.config.reasoning,
            )
