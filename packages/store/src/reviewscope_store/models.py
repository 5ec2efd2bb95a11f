"""Persisted entities shared by the worker pipeline and the CLI.

Decoupled from reviewscope_core so either layer can read and write review
state without importing the other. Timestamps are timezone-aware UTC
datetimes throughout.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReviewStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ThreadStatus:
    OPEN = "open"
    RESOLVED = "resolved"
    IGNORED = "ignored"


@dataclass
class Review:
    """One logical review per (repository_id, pr_number).

    Re-runs update this row in place; the ``id`` therefore identifies the
    whole review lineage of a pull request and is what comment threads hang off.
    """

    repository_id: int
    pr_number: int
    status: str = ReviewStatus.PENDING
    id: int | None = None
    delivery_id: str = ""
    context_hash: str | None = None
    result: dict = field(default_factory=dict)
    error: str | None = None
    processed_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class CommentThread:
    """Lifecycle record of one reported finding. Never deleted."""

    review_id: int
    issue_key: str
    file_path: str
    line: int
    severity: str = "MINOR"
    rule_id: str = ""
    status: str = ThreadStatus.OPEN
    id: int | None = None
    created_at: datetime = field(default_factory=utcnow)
    resolved_at: datetime | None = None


@dataclass
class UsageRecord:
    """One successful review run, counted by the rate-limit gates."""

    installation_id: int
    repository_id: int
    pr_number: int
    head_sha: str = ""
    service: str = "review-run"
    id: int | None = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Installation:
    installation_id: int
    plan_id: int | None = None
    plan_expires_at: datetime | None = None
    status: str = "active"
    provider: str | None = None  # "anthropic" | "openai" when the tenant brings a key
    api_key: str | None = None
    smart_routing: bool = False

    @property
    def has_custom_key(self) -> bool:
        return bool(self.api_key)


@dataclass
class Repository:
    repository_id: int
    installation_id: int
    full_name: str
    status: str = "active"
    indexed_at: datetime | None = None
