"""
api/routes/usage.py
-------------------
GET /api/usage?days=30 — token usage and estimated cost of the acting
user's company over the last `days` days (today included).
"""

from fastapi import APIRouter, Query

from assistant_platform.dependencies import DbSession, Identity
from assistant_platform.schemas.usage import UsageSummary
from assistant_platform.services.usage_service import UsageService

router = APIRouter(prefix="/api/usage", tags=["Usage"])


@router.get("", response_model=UsageSummary, summary="Company usage summary")
async def usage_summary(
    db: DbSession,
    identity: Identity,
    days: int = Query(default=30, ge=1, le=365),
) -> UsageSummary:
    return await UsageService.summarize(db, identity.tenant_id, days=days)
