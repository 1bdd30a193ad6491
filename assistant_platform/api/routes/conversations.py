"""
api/routes/conversations.py
---------------------------
The acting user's conversations. The user is identified by the `user_id`
query parameter (demo user when omitted); nothing outside that user's
conversations is ever returned.

GET    /api/conversations
GET    /api/conversations/{id}
PATCH  /api/conversations/{id}
DELETE /api/conversations/{id}
GET    /api/conversations/{id}/messages
"""

from typing import Optional

from fastapi import APIRouter, Query, Response, status

from assistant_platform.dependencies import DbSession, Identity
from assistant_platform.schemas.conversation import (
    ConversationDetail,
    ConversationListResponse,
    ConversationRead,
    ConversationSummary,
    ConversationUpdate,
)
from assistant_platform.schemas.message import MessageListResponse, MessageRead
from assistant_platform.services.conversation_service import ConversationService

router = APIRouter(prefix="/api/conversations", tags=["Conversations"])


@router.get("", response_model=ConversationListResponse, summary="List conversations")
async def list_conversations(
    db: DbSession,
    identity: Identity,
    archived: bool = Query(default=False),
    search: Optional[str] = Query(default=None, max_length=255),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
) -> ConversationListResponse:
    total, rows = await ConversationService.list_conversations(
        db, identity, archived=archived, search=search, page=page, per_page=per_page
    )
    items = [
        ConversationSummary(
            **ConversationRead.from_model(conversation).model_dump(),
            message_count=conversation.message_count,
            last_message_preview=preview,
        )
        for conversation, preview in rows
    ]
    return ConversationListResponse(total=total, page=page, per_page=per_page, items=items)


@router.get(
    "/{conversation_id}",
    response_model=ConversationDetail,
    summary="Get a conversation with its messages",
)
async def get_conversation(
    conversation_id: str, db: DbSession, identity: Identity
) -> ConversationDetail:
    conversation = await ConversationService.get_owned(
        db, conversation_id, identity, with_messages=True
    )
    return ConversationDetail(
        **ConversationRead.from_model(conversation).model_dump(),
        messages=[MessageRead.model_validate(m) for m in conversation.messages],
    )


@router.patch(
    "/{conversation_id}",
    response_model=ConversationRead,
    summary="Rename or (un)archive a conversation",
)
async def update_conversation(
    conversation_id: str, body: ConversationUpdate, db: DbSession, identity: Identity
) -> ConversationRead:
    conversation = await ConversationService.update_conversation(
        db, conversation_id, identity, body
    )
    return ConversationRead.from_model(conversation)


@router.delete(
    "/{conversation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a conversation and its messages",
)
async def delete_conversation(
    conversation_id: str, db: DbSession, identity: Identity
) -> Response:
    await ConversationService.delete_conversation(db, conversation_id, identity)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{conversation_id}/messages",
    response_model=MessageListResponse,
    summary="List the messages of a conversation, oldest first",
)
async def list_messages(
    conversation_id: str,
    db: DbSession,
    identity: Identity,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=50, ge=1, le=200),
) -> MessageListResponse:
    total, messages = await ConversationService.list_messages(
        db, conversation_id, identity, page=page, per_page=per_page
    )
    return MessageListResponse(
        total=total,
        page=page,
        per_page=per_page,
        items=[MessageRead.model_validate(m) for m in messages],
    )
