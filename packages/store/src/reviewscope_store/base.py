"""Abstract store interface.

The review pipeline and the CLI both depend on BaseStore, never on a
concrete backend. All writes are single-row operations keyed by a unique
constraint — (repository_id, pr_number) for reviews, (review_id, issue_key)
among open threads — so concurrent jobs need no locking beyond those keys.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from reviewscope_store.models import CommentThread, Installation, Repository, Review, UsageRecord


class BaseStore(ABC):
    """Relational view of review state.

    Implementations must be safe to share between worker threads; each
    method is expected to complete one atomic write or read.
    """

    # ------------------------------------------------------------------ #
    # Reviews                                                              #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def upsert_review(self, repository_id: int, pr_number: int, status: str, delivery_id: str = "") -> Review:
        """Create or re-enter the review row for a PR.

        On conflict the existing row keeps its id, takes the new status and
        delivery id, and has ``error`` and ``processed_at`` cleared.
        """

    @abstractmethod
    def update_review(
        self,
        review_id: int,
        *,
        status: str,
        result: dict | None = None,
        error: str | None = None,
        context_hash: str | None = None,
        processed_at: datetime | None = None,
    ) -> None:
        """Transition a review to a new status, recording its outcome."""

    @abstractmethod
    def get_review(self, repository_id: int, pr_number: int) -> Review | None:
        """Return the review row for a PR, or None."""

    @abstractmethod
    def list_reviews(self, repository_id: int | None = None) -> list[Review]:
        """Return reviews ordered by last update, oldest first."""

    # ------------------------------------------------------------------ #
    # Comment threads                                                      #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def list_threads(self, review_id: int, status: str | None = None) -> list[CommentThread]:
        """Return every thread of a review lineage, optionally filtered by status."""

    @abstractmethod
    def insert_threads(self, threads: Iterable[CommentThread]) -> int:
        """Insert new open threads, skipping keys that already have an open thread.

        Returns the number of rows actually inserted.
        """

    @abstractmethod
    def resolve_threads(self, review_id: int, issue_keys: Iterable[str], resolved_at: datetime) -> int:
        """Mark the open threads with the given keys as resolved. Returns the count."""

    # ------------------------------------------------------------------ #
    # Usage                                                                #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def record_usage(self, record: UsageRecord) -> None:
        """Append one usage row."""

    @abstractmethod
    def list_usage(
        self,
        *,
        installation_id: int | None = None,
        repository_id: int | None = None,
        pr_number: int | None = None,
        since: datetime | None = None,
    ) -> list[UsageRecord]:
        """Return usage rows matching every given filter, oldest first.

        ``since`` is exclusive: only rows created strictly after it are returned.
        """

    # ------------------------------------------------------------------ #
    # Tenants                                                              #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def get_installation(self, installation_id: int) -> Installation | None:
        """Return the tenant record, or None."""

    @abstractmethod
    def save_installation(self, installation: Installation) -> None:
        """Insert or replace a tenant record."""

    @abstractmethod
    def get_repository(self, repository_id: int) -> Repository | None:
        """Return the repository record, or None."""

    @abstractmethod
    def save_repository(self, repository: Repository) -> None:
        """Insert or replace a repository record."""

    @abstractmethod
    def count_active_repositories(self, installation_id: int) -> int:
        """Number of repositories with status ``active`` for an installation."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Default is a no-op so callers can always call close() safely.
        """
