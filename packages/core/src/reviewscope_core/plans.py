"""Plan tiers and the limits they grant.

get_plan_limits is a pure function of (plan_id, expires_at, now): an unknown
or expired plan collapses to FREE.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime

UNLIMITED = 999_999


class PlanTier(str, enum.Enum):
    FREE = "FREE"
    PRO = "PRO"
    TEAM = "TEAM"


# Marketplace plan ids → tiers.
PLAN_ID_MAP: dict[int, PlanTier] = {
    3: PlanTier.FREE,
    7: PlanTier.PRO,
    8: PlanTier.TEAM,
}


@dataclass(frozen=True)
class PlanLimits:
    tier: PlanTier
    allow_ai: bool
    requires_custom_key: bool
    allow_rag: bool
    rag_k: int
    max_files: int
    max_repos: int
    chat_per_pr_limit: int | None  # None = unlimited
    daily_reviews_limit: int
    reviews_per_pr: int
    cooldown_minutes: int
    allow_custom_prompts: bool
    allow_batching: bool


_LIMITS: dict[PlanTier, PlanLimits] = {
    PlanTier.FREE: PlanLimits(
        tier=PlanTier.FREE,
        allow_ai=True,
        requires_custom_key=True,
        allow_rag=True,
        rag_k=2,
        max_files=30,
        max_repos=3,
        chat_per_pr_limit=3,
        daily_reviews_limit=10,
        reviews_per_pr=5,
        cooldown_minutes=5,
        allow_custom_prompts=False,
        allow_batching=False,
    ),
    PlanTier.PRO: PlanLimits(
        tier=PlanTier.PRO,
        allow_ai=True,
        requires_custom_key=False,
        allow_rag=True,
        rag_k=5,
        max_files=100,
        max_repos=5,
        chat_per_pr_limit=None,
        daily_reviews_limit=50,
        reviews_per_pr=20,
        cooldown_minutes=2,
        allow_custom_prompts=True,
        allow_batching=False,
    ),
    PlanTier.TEAM: PlanLimits(
        tier=PlanTier.TEAM,
        allow_ai=True,
        requires_custom_key=False,
        allow_rag=True,
        rag_k=8,
        max_files=UNLIMITED,
        max_repos=UNLIMITED,
        chat_per_pr_limit=None,
        daily_reviews_limit=500,
        reviews_per_pr=100,
        cooldown_minutes=1,
        allow_custom_prompts=True,
        allow_batching=True,
    ),
}


def get_tier(plan_id: int | None, expires_at: datetime | None = None, now: datetime | None = None) -> PlanTier:
    if not plan_id:
        return PlanTier.FREE
    if expires_at is not None and now is not None and expires_at <= now:
        return PlanTier.FREE
    return PLAN_ID_MAP.get(plan_id, PlanTier.FREE)


def get_plan_limits(plan_id: int | None, expires_at: datetime | None = None, now: datetime | None = None) -> PlanLimits:
    return _LIMITS[get_tier(plan_id, expires_at, now)]
