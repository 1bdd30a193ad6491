"""
api/routes/chat.py
------------------
Chat completion endpoint.

POST /api/chat  — Stream an assistant reply as text/plain token chunks.
                  X-Conversation-ID / X-Is-New-Conversation response headers
                  tell the client which conversation the turn landed in.
GET  /api/chat  — Machine-readable description of the POST contract.

Every failure that happens before the first token (bad input, unknown
identity, chatbot gate, provider refusing the call) is a JSON error body;
once streaming has started the status line is already sent.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assistant_platform.core.config import settings
from assistant_platform.core.logging import clear_request_context
from assistant_platform.db.session import get_session_factory
from assistant_platform.dependencies import DbSession
from assistant_platform.schemas.chat import ChatRequest
from assistant_platform.services.chat_service import ChatService
from assistant_platform.services.llm_service import LLMService, get_llm_service

router = APIRouter(prefix="/api/chat", tags=["Chat"])

API_VERSION = "1.2.0"


@router.post(
    "",
    response_class=StreamingResponse,
    summary="Stream a chat completion",
    responses={200: {"content": {"text/plain": {}}}},
)
async def create_chat_completion(
    body: ChatRequest,
    db: DbSession,
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    llm: Annotated[LLMService, Depends(get_llm_service)],
) -> StreamingResponse:
    clear_request_context()
    turn = await ChatService.start_turn(db, session_factory, llm, body)
    return StreamingResponse(
        turn.tokens,
        media_type="text/plain; charset=utf-8",
        headers={
            "X-Conversation-ID": turn.conversation_id,
            "X-Is-New-Conversation": "true" if turn.is_new else "false",
        },
    )


@router.get("", summary="Describe the chat completion contract")
async def describe_chat_api() -> dict[str, Any]:
    return {
        "name": "Chat API",
        "version": API_VERSION,
        "endpoints": {
            "POST": "Create a new chat completion with streaming",
        },
        "required_body": {
            "message": "string (required unless messages is sent)",
            "messages": "array (optional) - chat turns; the last user turn is used",
            "conversation_id": "string (optional)",
            "chatbot_id": "string (optional) - Use specific chatbot configuration",
            "model": "string (optional)",
            "temperature": "number (optional, 0-2)",
            "max_tokens": "number (optional, >= 1)",
            "user_id": "string (optional) - UUID of an existing user",
        },
        "company_mode": {
            "description": "Use company_slug and user_email to enable company-specific mode",
            "company_slug": "string (optional) - Company slug to look up tenant",
            "user_email": "string (optional) - User email to find or create user",
            "user_name": "string (optional) - User display name for new users",
        },
        "response_headers": {
            "X-Conversation-ID": "The conversation ID (useful for new conversations)",
            "X-Is-New-Conversation": "Whether a new conversation was created",
        },
        "notes": {
            "settings_priority": "request params > chatbot settings > tenant settings > defaults",
            "chatbot_requirements": "chatbot must be published and belong to user tenant",
            "company_mode_behavior": (
                "When company_slug and user_email are provided, the company tenant is "
                "used and the user is created on first contact"
            ),
            "history_limit": settings.MAX_CONVERSATION_MESSAGES,
        },
        "extended_parameters": {
            "description": "Chatbot settings support extended model parameters",
            "model_params": ["top_p", "frequency_penalty", "presence_penalty"],
            "provider_options": [
                "reasoning_effort (reasoning models only)",
                "text_verbosity (reasoning models only)",
                "store",
            ],
            "reasoning_models": settings.REASONING_MODELS,
        },
    }
