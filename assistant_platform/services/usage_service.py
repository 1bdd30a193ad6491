"""
services/usage_service.py
-------------------------
Daily token usage per (tenant, user, date) and its estimated cost.

Prices are USD per 1000 tokens. Unknown models fall back to DEFAULT_PRICING.
"""

import datetime as dt
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from assistant_platform.core.logging import get_logger
from assistant_platform.models.usage import UsageMetric
from assistant_platform.schemas.usage import (
    DailyUsage,
    UsageAverages,
    UsageSummary,
    UsageTotals,
)

logger = get_logger(__name__)

MODEL_PRICING: dict[str, dict[str, float]] = {
    "gpt-5.1":             {"prompt": 0.02,    "completion": 0.06},
    "gpt-4-turbo-preview": {"prompt": 0.01,    "completion": 0.03},
    "gpt-4-turbo":         {"prompt": 0.01,    "completion": 0.03},
    "gpt-4":               {"prompt": 0.03,    "completion": 0.06},
    "gpt-4-32k":           {"prompt": 0.06,    "completion": 0.12},
    "gpt-3.5-turbo":       {"prompt": 0.0005,  "completion": 0.0015},
    "gpt-3.5-turbo-16k":   {"prompt": 0.003,   "completion": 0.004},
    "gpt-4o":              {"prompt": 0.005,   "completion": 0.015},
    "gpt-4o-mini":         {"prompt": 0.00015, "completion": 0.0006},
}
DEFAULT_PRICING = {"prompt": 0.01, "completion": 0.03}


def estimate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    pricing = MODEL_PRICING.get(model, DEFAULT_PRICING)
    cost = (
        prompt_tokens / 1000 * pricing["prompt"]
        + completion_tokens / 1000 * pricing["completion"]
    )
    return round(cost, 6)


def _today() -> dt.date:
    return dt.datetime.now(dt.timezone.utc).date()


class UsageService:

    @staticmethod
    async def record_usage(
        db: AsyncSession,
        tenant_id: str,
        user_id: Optional[str],
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        day: Optional[dt.date] = None,
    ) -> float:
        """
        Add one request's tokens to the day's row and return its cost.

        The row is bumped in place; when it does not exist yet it is inserted,
        and an insert that loses a race against a concurrent one falls back
        to the in-place bump. Call it on a session with nothing else pending.
        """
        day = day or _today()
        cost = estimate_cost(model, prompt_tokens, completion_tokens)
        total = prompt_tokens + completion_tokens

        async def bump() -> int:
            result = await db.execute(
                update(UsageMetric)
                .where(
                    UsageMetric.tenant_id == tenant_id,
                    UsageMetric.user_id == user_id,
                    UsageMetric.date == day,
                )
                .values(
                    prompt_tokens=UsageMetric.prompt_tokens + prompt_tokens,
                    completion_tokens=UsageMetric.completion_tokens + completion_tokens,
                    total_tokens=UsageMetric.total_tokens + total,
                    request_count=UsageMetric.request_count + 1,
                    estimated_cost=UsageMetric.estimated_cost + cost,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

        if await bump():
            return cost

        db.add(
            UsageMetric(
                tenant_id=tenant_id,
                user_id=user_id,
                date=day,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=total,
                request_count=1,
                estimated_cost=cost,
            )
        )
        try:
            await db.flush()
        except IntegrityError:
            # Rolls back the session; callers commit earlier work first
            await db.rollback()
            logger.debug("Usage row created concurrently, bumping", tenant_id=tenant_id)
            await bump()
        return cost

    @staticmethod
    async def summarize(db: AsyncSession, tenant_id: str, days: int = 30) -> UsageSummary:
        end = _today()
        start = end - dt.timedelta(days=days - 1)
        result = await db.execute(
            select(UsageMetric)
            .where(
                UsageMetric.tenant_id == tenant_id,
                UsageMetric.date >= start,
                UsageMetric.date <= end,
            )
            .order_by(UsageMetric.date)
        )

        # Rows are per user; the summary is per tenant and day
        by_day: dict[dt.date, DailyUsage] = {}
        for row in result.scalars().all():
            entry = by_day.setdefault(
                row.date,
                DailyUsage(
                    date=row.date,
                    prompt_tokens=0,
                    completion_tokens=0,
                    total_tokens=0,
                    request_count=0,
                    estimated_cost=0.0,
                ),
            )
            entry.prompt_tokens += row.prompt_tokens
            entry.completion_tokens += row.completion_tokens
            entry.total_tokens += row.total_tokens
            entry.request_count += row.request_count
            entry.estimated_cost = round(entry.estimated_cost + row.estimated_cost, 6)

        daily = list(by_day.values())
        totals = UsageTotals(
            prompt_tokens=sum(d.prompt_tokens for d in daily),
            completion_tokens=sum(d.completion_tokens for d in daily),
            total_tokens=sum(d.total_tokens for d in daily),
            request_count=sum(d.request_count for d in daily),
            estimated_cost=round(sum(d.estimated_cost for d in daily), 6),
        )
        averages = UsageAverages()
        if totals.request_count:
            averages = UsageAverages(
                tokens_per_request=round(totals.total_tokens / totals.request_count, 2),
                cost_per_request=round(totals.estimated_cost / totals.request_count, 6),
            )
        return UsageSummary(
            tenant_id=tenant_id,
            start=start,
            end=end,
            totals=totals,
            averages=averages,
            daily=daily,
        )
