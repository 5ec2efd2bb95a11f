"""Error taxonomy for a review job.

The pipeline maps each class onto a terminal Review state:

  ConfigurationError      → failed, comment posted, not retried
  RateLimitError,
  QuotaError              → completed with an explanatory result
  ProviderError, others   → failed, re-raised to the job system
"""

from __future__ import annotations

from datetime import datetime


class ReviewScopeError(Exception):
    """Base class for every error raised by reviewscope_core."""


class ConfigurationError(ReviewScopeError):
    """A job cannot run as configured (missing credentials, unknown tenant)."""


class ProviderError(ReviewScopeError):
    """An LLM provider call failed after all retries."""


class PlanLimitError(ReviewScopeError):
    """Base for tenant limits. These are expected outcomes, not failures."""

    kind = "plan"

    def __init__(self, message: str, reset_at: datetime | None = None):
        super().__init__(message)
        self.message = message
        self.reset_at = reset_at


class RateLimitError(PlanLimitError):
    """A rate-limit gate rejected the run.

    ``kind`` is one of ``cooldown``, ``per_pr`` or ``daily``. ``reset_at`` is
    when the same request would next be accepted, or None when it never will.
    """

    def __init__(self, kind: str, message: str, reset_at: datetime | None = None):
        super().__init__(message, reset_at)
        self.kind = kind


class QuotaError(PlanLimitError):
    kind = "quota"
