"""
api/routes/admin.py
-------------------
Admin-only management endpoints. Every route requires a JWT whose account
has role 'admin'; these are the only routes that read across tenants.

Companies:
  GET    /api/admin/companies
  POST   /api/admin/companies
  GET    /api/admin/companies/{id}
  PUT    /api/admin/companies/{id}
  DELETE /api/admin/companies/{id}?force=true
  GET    /api/admin/companies/{id}/stats
  GET    /api/admin/companies/{id}/users
  POST   /api/admin/companies/{id}/users

Chatbots:
  GET    /api/admin/chatbots?tenant_id=
  POST   /api/admin/chatbots
  GET    /api/admin/chatbots/{id}
  PUT    /api/admin/chatbots/{id}
  DELETE /api/admin/chatbots/{id}

Conversation review:
  GET    /api/admin/conversations?company_id=&chatbot_id=&user_id=&search=&has_feedback=
  GET    /api/admin/conversations/{id}

Analytics:
  GET    /api/admin/analytics?company_id=&start_date=&end_date=
  GET    /api/admin/analytics/companies
  GET    /api/admin/analytics/users?company_id=
"""

import datetime as dt
from typing import Optional

from fastapi import APIRouter, Query, Response, status
from pydantic import BaseModel

from assistant_platform.dependencies import CurrentAdmin, DbSession
from assistant_platform.schemas.analytics import (
    AnalyticsOverview,
    CompanyAnalyticsList,
    UserAnalyticsList,
)
from assistant_platform.schemas.chatbot import ChatbotCreate, ChatbotRead, ChatbotUpdate
from assistant_platform.schemas.tenant import (
    TenantCreate,
    TenantListResponse,
    TenantRead,
    TenantStats,
    TenantUpdate,
)
from assistant_platform.schemas.review import ReviewConversationDetail, ReviewConversationList
from assistant_platform.schemas.user import UserCreate, UserRead
from assistant_platform.services.analytics_service import AnalyticsService
from assistant_platform.services.chatbot_service import ChatbotService
from assistant_platform.services.review_service import ReviewService, SortField, SortOrder
from assistant_platform.services.tenant_service import TenantService
from assistant_platform.services.user_service import UserService

router = APIRouter(prefix="/api/admin", tags=["Admin"])


class ChatbotListResponse(BaseModel):
    total: int
    items: list[ChatbotRead]


# ── Companies ────────────────────────────────────────────────────────────────

@router.get("/companies", response_model=TenantListResponse, summary="Admin: list companies")
async def list_companies(
    db: DbSession,
    admin: CurrentAdmin,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
) -> TenantListResponse:
    total, tenants = await TenantService.list_tenants(db, skip=skip, limit=limit)
    return TenantListResponse(
        total=total, items=[TenantRead.model_validate(t) for t in tenants]
    )


@router.post(
    "/companies",
    response_model=TenantRead,
    status_code=status.HTTP_201_CREATED,
    summary="Admin: create a company",
)
async def create_company(body: TenantCreate, db: DbSession, admin: CurrentAdmin) -> TenantRead:
    tenant = await TenantService.create_tenant(db, body)
    return TenantRead.model_validate(tenant)


@router.get("/companies/{tenant_id}", response_model=TenantRead, summary="Admin: get a company")
async def get_company(tenant_id: str, db: DbSession, admin: CurrentAdmin) -> TenantRead:
    tenant = await TenantService.get_tenant_or_404(db, tenant_id)
    return TenantRead.model_validate(tenant)


@router.put("/companies/{tenant_id}", response_model=TenantRead, summary="Admin: update a company")
async def update_company(
    tenant_id: str, body: TenantUpdate, db: DbSession, admin: CurrentAdmin
) -> TenantRead:
    tenant = await TenantService.update_tenant(db, tenant_id, body)
    return TenantRead.model_validate(tenant)


@router.delete(
    "/companies/{tenant_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Admin: delete a company",
)
async def delete_company(
    tenant_id: str,
    db: DbSession,
    admin: CurrentAdmin,
    force: bool = Query(default=False, description="Also delete every dependent row"),
) -> Response:
    await TenantService.delete_tenant(db, tenant_id, force=force)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/companies/{tenant_id}/stats",
    response_model=TenantStats,
    summary="Admin: usage counters of a company",
)
async def company_stats(tenant_id: str, db: DbSession, admin: CurrentAdmin) -> TenantStats:
    return await TenantService.get_stats(db, tenant_id)


@router.get(
    "/companies/{tenant_id}/users",
    response_model=list[UserRead],
    summary="Admin: list the users of a company",
)
async def list_company_users(
    tenant_id: str, db: DbSession, admin: CurrentAdmin
) -> list[UserRead]:
    await TenantService.get_tenant_or_404(db, tenant_id)
    users = await UserService.list_users_in_tenant(db, tenant_id)
    return [UserRead.model_validate(u) for u in users]


@router.post(
    "/companies/{tenant_id}/users",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Admin: create a user in a company",
)
async def create_company_user(
    tenant_id: str, body: UserCreate, db: DbSession, admin: CurrentAdmin
) -> UserRead:
    await TenantService.get_tenant_or_404(db, tenant_id)
    user = await UserService.create_user_by_admin(db=db, data=body, tenant_id=tenant_id)
    return UserRead.model_validate(user)


# ── Chatbots ─────────────────────────────────────────────────────────────────

@router.get("/chatbots", response_model=ChatbotListResponse, summary="Admin: list chatbots")
async def list_chatbots(
    db: DbSession,
    admin: CurrentAdmin,
    tenant_id: Optional[str] = Query(default=None),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
) -> ChatbotListResponse:
    total, chatbots = await ChatbotService.list_chatbots(
        db, tenant_id=tenant_id, skip=skip, limit=limit
    )
    return ChatbotListResponse(
        total=total, items=[ChatbotRead.model_validate(c) for c in chatbots]
    )


@router.post(
    "/chatbots",
    response_model=ChatbotRead,
    status_code=status.HTTP_201_CREATED,
    summary="Admin: create a chatbot",
)
async def create_chatbot(body: ChatbotCreate, db: DbSession, admin: CurrentAdmin) -> ChatbotRead:
    chatbot = await ChatbotService.create_chatbot(db, body)
    return ChatbotRead.model_validate(chatbot)


@router.get("/chatbots/{chatbot_id}", response_model=ChatbotRead, summary="Admin: get a chatbot")
async def get_chatbot(chatbot_id: str, db: DbSession, admin: CurrentAdmin) -> ChatbotRead:
    chatbot = await ChatbotService.get_chatbot_or_404(db, chatbot_id)
    return ChatbotRead.model_validate(chatbot)


@router.put("/chatbots/{chatbot_id}", response_model=ChatbotRead, summary="Admin: update a chatbot")
async def update_chatbot(
    chatbot_id: str, body: ChatbotUpdate, db: DbSession, admin: CurrentAdmin
) -> ChatbotRead:
    chatbot = await ChatbotService.update_chatbot(db, chatbot_id, body)
    return ChatbotRead.model_validate(chatbot)


@router.delete(
    "/chatbots/{chatbot_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Admin: delete a chatbot",
)
async def delete_chatbot(chatbot_id: str, db: DbSession, admin: CurrentAdmin) -> Response:
    await ChatbotService.delete_chatbot(db, chatbot_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Conversation review ──────────────────────────────────────────────────────

@router.get(
    "/conversations",
    response_model=ReviewConversationList,
    summary="Admin: review conversations across companies",
)
async def review_conversations(
    db: DbSession,
    admin: CurrentAdmin,
    company_id: Optional[str] = Query(default=None),
    chatbot_id: Optional[str] = Query(default=None),
    user_id: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None, max_length=255),
    has_feedback: Optional[bool] = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
    sort_by: SortField = Query(default="created_at"),
    sort_order: SortOrder = Query(default="desc"),
) -> ReviewConversationList:
    return await ReviewService.list_conversations(
        db,
        company_id=company_id,
        chatbot_id=chatbot_id,
        user_id=user_id,
        search=search,
        has_feedback=has_feedback,
        page=page,
        per_page=per_page,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get(
    "/conversations/{conversation_id}",
    response_model=ReviewConversationDetail,
    summary="Admin: a conversation with messages and feedback",
)
async def review_conversation(
    conversation_id: str, db: DbSession, admin: CurrentAdmin
) -> ReviewConversationDetail:
    return await ReviewService.get_conversation(db, conversation_id)


# ── Analytics ────────────────────────────────────────────────────────────────

@router.get(
    "/analytics",
    response_model=AnalyticsOverview,
    summary="Admin: activity overview of one company",
)
async def analytics_overview(
    db: DbSession,
    admin: CurrentAdmin,
    company_id: Optional[str] = Query(
        default=None, description="Defaults to the admin's own company"
    ),
    start_date: Optional[dt.date] = Query(default=None),
    end_date: Optional[dt.date] = Query(default=None),
) -> AnalyticsOverview:
    return await AnalyticsService.overview(
        db,
        company_id=company_id or admin.tenant_id,
        start_date=start_date,
        end_date=end_date,
    )


@router.get(
    "/analytics/companies",
    response_model=CompanyAnalyticsList,
    summary="Admin: activity per active company",
)
async def analytics_companies(db: DbSession, admin: CurrentAdmin) -> CompanyAnalyticsList:
    return await AnalyticsService.companies(db)


@router.get(
    "/analytics/users",
    response_model=UserAnalyticsList,
    summary="Admin: activity per user of a company",
)
async def analytics_users(
    db: DbSession,
    admin: CurrentAdmin,
    company_id: str = Query(...),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
) -> UserAnalyticsList:
    return await AnalyticsService.users(db, company_id, page=page, per_page=per_page)
