"""MemoryStore — in-process store for local runs and tests.

Mirrors SQLiteStore's constraints (unique review per PR, one open thread
per key) so the pipeline behaves identically against either backend.
"""

from __future__ import annotations

import copy
import threading
from dataclasses import replace
from datetime import datetime
from typing import Iterable

from reviewscope_store.base import BaseStore
from reviewscope_store.models import (
    CommentThread,
    Installation,
    Repository,
    Review,
    ThreadStatus,
    UsageRecord,
    utcnow,
)


class MemoryStore(BaseStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._reviews: dict[tuple[int, int], Review] = {}
        self._threads: list[CommentThread] = []
        self._usage: list[UsageRecord] = []
        self._installations: dict[int, Installation] = {}
        self._repositories: dict[int, Repository] = {}
        self._next_review_id = 1
        self._next_thread_id = 1
        self._next_usage_id = 1

    def upsert_review(self, repository_id: int, pr_number: int, status: str, delivery_id: str = "") -> Review:
        now = utcnow()
        with self._lock:
            review = self._reviews.get((repository_id, pr_number))
            if review is None:
                review = Review(
                    id=self._next_review_id,
                    repository_id=repository_id,
                    pr_number=pr_number,
                    status=status,
                    delivery_id=delivery_id,
                    created_at=now,
                    updated_at=now,
                )
                self._next_review_id += 1
                self._reviews[(repository_id, pr_number)] = review
            else:
                review.status = status
                review.delivery_id = delivery_id
                review.error = None
                review.processed_at = None
                review.updated_at = now
            return copy.deepcopy(review)

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
        with self._lock:
            for review in self._reviews.values():
                if review.id != review_id:
                    continue
                review.status = status
                if result is not None:
                    review.result = copy.deepcopy(result)
                review.error = error
                if context_hash is not None:
                    review.context_hash = context_hash
                review.processed_at = processed_at
                review.updated_at = utcnow()
                return

    def get_review(self, repository_id: int, pr_number: int) -> Review | None:
        with self._lock:
            review = self._reviews.get((repository_id, pr_number))
            return copy.deepcopy(review) if review else None

    def list_reviews(self, repository_id: int | None = None) -> list[Review]:
        with self._lock:
            reviews = [
                copy.deepcopy(r)
                for r in self._reviews.values()
                if repository_id is None or r.repository_id == repository_id
            ]
        return sorted(reviews, key=lambda r: r.updated_at)

    def list_threads(self, review_id: int, status: str | None = None) -> list[CommentThread]:
        with self._lock:
            return [
                replace(t)
                for t in self._threads
                if t.review_id == review_id and (status is None or t.status == status)
            ]

    def insert_threads(self, threads: Iterable[CommentThread]) -> int:
        inserted = 0
        with self._lock:
            open_keys = {(t.review_id, t.issue_key) for t in self._threads if t.status == ThreadStatus.OPEN}
            for t in threads:
                if (t.review_id, t.issue_key) in open_keys:
                    continue
                self._threads.append(replace(t, id=self._next_thread_id, status=ThreadStatus.OPEN))
                self._next_thread_id += 1
                open_keys.add((t.review_id, t.issue_key))
                inserted += 1
        return inserted

    def resolve_threads(self, review_id: int, issue_keys: Iterable[str], resolved_at: datetime) -> int:
        keys = set(issue_keys)
        count = 0
        with self._lock:
            for t in self._threads:
                if t.review_id == review_id and t.status == ThreadStatus.OPEN and t.issue_key in keys:
                    t.status = ThreadStatus.RESOLVED
                    t.resolved_at = resolved_at
                    count += 1
        return count

    def record_usage(self, record: UsageRecord) -> None:
        with self._lock:
            self._usage.append(replace(record, id=self._next_usage_id))
            self._next_usage_id += 1

    def list_usage(
        self,
        *,
        installation_id: int | None = None,
        repository_id: int | None = None,
        pr_number: int | None = None,
        since: datetime | None = None,
    ) -> list[UsageRecord]:
        with self._lock:
            rows = [
                replace(u)
                for u in self._usage
                if (installation_id is None or u.installation_id == installation_id)
                and (repository_id is None or u.repository_id == repository_id)
                and (pr_number is None or u.pr_number == pr_number)
                and (since is None or u.created_at > since)
            ]
        return sorted(rows, key=lambda u: (u.created_at, u.id))

    def get_installation(self, installation_id: int) -> Installation | None:
        with self._lock:
            inst = self._installations.get(installation_id)
            return replace(inst) if inst else None

    def save_installation(self, installation: Installation) -> None:
        with self._lock:
            self._installations[installation.installation_id] = replace(installation)

    def get_repository(self, repository_id: int) -> Repository | None:
        with self._lock:
            repo = self._repositories.get(repository_id)
            return replace(repo) if repo else None

    def save_repository(self, repository: Repository) -> None:
        with self._lock:
            self._repositories[repository.repository_id] = replace(repository)

    def count_active_repositories(self, installation_id: int) -> int:
        with self._lock:
            return sum(
                1
                for r in self._repositories.values()
                if r.installation_id == installation_id and r.status == "active"
            )
