"""Rate-limit gates evaluated before any model call.

Three independent gates, checked in order, each raising RateLimitError with
the time at which the same request would be accepted:

  cooldown  — the last run for this PR must be at least ``cooldown_minutes`` old
  per_pr    — fewer than ``reviews_per_pr`` prior runs for this PR
  daily     — fewer than ``daily_reviews_limit`` runs for the installation
              in the trailing 24 hours

The daily reset is derived from the usage rows in the window, so capacity
frees up one run at a time as old runs age out.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from reviewscope_core.exceptions import QuotaError, RateLimitError
from reviewscope_store.models import UsageRecord

if TYPE_CHECKING:
    from reviewscope_core.job import ReviewJob
    from reviewscope_core.plans import PlanLimits
    from reviewscope_store.base import BaseStore

logger = logging.getLogger(__name__)

DAILY_WINDOW = timedelta(hours=24)
RESET_BUFFER = timedelta(seconds=60)
REVIEW_SERVICE = "review-run"


def _fmt(ts: datetime) -> str:
    return ts.strftime("%Y-%m-%d %H:%M UTC")


def check_rate_limits(
    store: BaseStore,
    installation_id: int,
    repository_id: int,
    pr_number: int,
    limits: PlanLimits,
    now: datetime,
) -> None:
    pr_runs = store.list_usage(repository_id=repository_id, pr_number=pr_number)

    if pr_runs and limits.cooldown_minutes > 0:
        reset_at = pr_runs[-1].created_at + timedelta(minutes=limits.cooldown_minutes)
        if now < reset_at:
            raise RateLimitError(
                "cooldown",
                f"This PR was reviewed less than {limits.cooldown_minutes} minute(s) ago. "
                f"Try again after {_fmt(reset_at)}.",
                reset_at,
            )

    if len(pr_runs) >= limits.reviews_per_pr:
        raise RateLimitError(
            "per_pr",
            f"This PR has reached its review limit ({limits.reviews_per_pr} reviews on the "
            f"{limits.tier.value} plan).",
            None,
        )

    window = store.list_usage(installation_id=installation_id, since=now - DAILY_WINDOW)
    if len(window) >= limits.daily_reviews_limit:
        # Once this row ages out the count drops below the limit.
        anchor = window[len(window) - limits.daily_reviews_limit]
        reset_at = anchor.created_at + DAILY_WINDOW + RESET_BUFFER
        raise RateLimitError(
            "daily",
            f"Daily review limit reached ({limits.daily_reviews_limit} reviews per 24h on the "
            f"{limits.tier.value} plan). Next review available after {_fmt(reset_at)}.",
            reset_at,
        )


def log_review_usage(store: BaseStore, job: ReviewJob, now: datetime) -> None:
    """Record one successful run under the same keys the gates count."""
    store.record_usage(
        UsageRecord(
            installation_id=job.installation_id,
            repository_id=job.repository_id,
            pr_number=job.pr_number,
            head_sha=job.head_sha,
            service=REVIEW_SERVICE,
            created_at=now,
        )
    )
    logger.debug("Logged review usage for %s#%d", job.repository_full_name, job.pr_number)


def check_repo_quota(store: BaseStore, installation_id: int, limits: PlanLimits) -> None:
    active = store.count_active_repositories(installation_id)
    if active > limits.max_repos:
        raise QuotaError(
            f"This installation has {active} active repositories; the {limits.tier.value} plan "
            f"allows {limits.max_repos}. Deactivate a repository or upgrade to continue."
        )
