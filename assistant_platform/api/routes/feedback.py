"""
api/routes/feedback.py
----------------------
Thumbs up / down on assistant messages.

POST /api/feedback                  — 201 when created, 200 when re-rated
GET  /api/feedback?message_id=...   — the caller's rating of one message
GET  /api/feedback                  — the caller's ratings, paginated, with totals
"""

from typing import Optional, Union

from fastapi import APIRouter, Query, Response, status

from assistant_platform.core.logging import bind_request_context
from assistant_platform.dependencies import DbSession, Identity
from assistant_platform.schemas.feedback import (
    FeedbackCreate,
    FeedbackListResponse,
    FeedbackRead,
    FeedbackWriteResponse,
    MessageFeedbackResponse,
)
from assistant_platform.services.feedback_service import FeedbackService
from assistant_platform.services.identity_service import IdentityService

router = APIRouter(prefix="/api/feedback", tags=["Feedback"])


@router.post(
    "",
    response_model=FeedbackWriteResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Rate an assistant message",
)
async def submit_feedback(
    body: FeedbackCreate, db: DbSession, response: Response
) -> FeedbackWriteResponse:
    identity = await IdentityService.resolve(db, user_id=body.user_id)
    bind_request_context(tenant_id=identity.tenant_id, user_id=identity.user_id)

    feedback, created = await FeedbackService.submit(
        db,
        identity,
        message_id=body.message_id,
        rating=body.rating,
        notes=body.notes if body.notes is not None else body.comment,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return FeedbackWriteResponse(
        **FeedbackRead.from_model(feedback).model_dump(),
        created=created,
        updated=not created,
    )


@router.get(
    "",
    response_model=Union[MessageFeedbackResponse, FeedbackListResponse],
    summary="Read the caller's feedback",
)
async def read_feedback(
    db: DbSession,
    identity: Identity,
    message_id: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
) -> Union[MessageFeedbackResponse, FeedbackListResponse]:
    if message_id:
        feedback = await FeedbackService.get_for_message(db, identity, message_id)
        return MessageFeedbackResponse(
            message_id=message_id,
            feedback=FeedbackRead.from_model(feedback) if feedback else None,
        )

    stats, rows = await FeedbackService.list_for_user(
        db, identity, page=page, per_page=per_page
    )
    return FeedbackListResponse(
        page=page,
        per_page=per_page,
        stats=stats,
        items=[FeedbackRead.from_model(f) for f in rows],
    )
