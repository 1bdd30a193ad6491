"""
schemas/usage.py
----------------
Usage summary returned by GET /api/usage.
"""

import datetime as dt

from pydantic import BaseModel


class DailyUsage(BaseModel):
    date: dt.date
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    request_count: int
    estimated_cost: float


class UsageTotals(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    request_count: int = 0
    estimated_cost: float = 0.0


class UsageAverages(BaseModel):
    tokens_per_request: float = 0.0
    cost_per_request: float = 0.0


class UsageSummary(BaseModel):
    tenant_id: str
    start: dt.date
    end: dt.date
    totals: UsageTotals
    averages: UsageAverages
    daily: list[DailyUsage]
