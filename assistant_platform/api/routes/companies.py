"""
api/routes/companies.py
-----------------------
Unauthenticated lookups used by embedded chat widgets before the first turn.

GET /api/companies/by-slug/{slug}    — active company's public profile
GET /api/companies/{id}/chatbots     — its published chatbots
GET /api/chatbots/{id}               — one published chatbot
"""

from fastapi import APIRouter

from assistant_platform.core.errors import NotFoundError
from assistant_platform.dependencies import DbSession
from assistant_platform.schemas.chatbot import ChatbotPublic
from assistant_platform.schemas.tenant import TenantPublic
from assistant_platform.services.chatbot_service import ChatbotService
from assistant_platform.services.identity_service import IdentityService
from assistant_platform.services.tenant_service import TenantService

router = APIRouter(prefix="/api", tags=["Companies"])


@router.get(
    "/companies/by-slug/{slug}",
    response_model=TenantPublic,
    summary="Look up an active company by slug",
)
async def get_company_by_slug(slug: str, db: DbSession) -> TenantPublic:
    tenant = await IdentityService.get_active_tenant_by_slug(db, slug)
    if tenant is None:
        raise NotFoundError("Company not found")
    return TenantPublic.model_validate(tenant)


@router.get(
    "/companies/{tenant_id}/chatbots",
    response_model=list[ChatbotPublic],
    summary="List a company's published chatbots",
)
async def list_company_chatbots(tenant_id: str, db: DbSession) -> list[ChatbotPublic]:
    tenant = await TenantService.get_tenant_by_id(db, tenant_id)
    if tenant is None or not tenant.is_active:
        raise NotFoundError("Company not found")
    chatbots = await ChatbotService.list_published(db, tenant.id)
    return [ChatbotPublic.model_validate(c) for c in chatbots]


@router.get(
    "/chatbots/{chatbot_id}",
    response_model=ChatbotPublic,
    summary="Get a published chatbot",
)
async def get_public_chatbot(chatbot_id: str, db: DbSession) -> ChatbotPublic:
    chatbot = await ChatbotService.get_published(db, chatbot_id)
    return ChatbotPublic.model_validate(chatbot)
