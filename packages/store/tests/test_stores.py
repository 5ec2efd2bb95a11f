"""Tests for reviewscope-store implementations."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from reviewscope_store.memory import MemoryStore
from reviewscope_store.models import (
    CommentThread,
    Installation,
    Repository,
    ReviewStatus,
    ThreadStatus,
    UsageRecord,
)
from reviewscope_store.sqlite import SQLiteStore

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        s = MemoryStore()
    else:
        s = SQLiteStore(db_path=str(tmp_path / "test.db"))
    yield s
    s.close()


def _thread(review_id, key, line=10):
    return CommentThread(review_id=review_id, issue_key=key, file_path="src/a.ts", line=line, rule_id="todo-fixme")


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


class TestReviews:
    def test_upsert_creates_row(self, store):
        review = store.upsert_review(1, 7, ReviewStatus.PROCESSING, delivery_id="d1")
        assert review.id is not None
        assert review.status == ReviewStatus.PROCESSING
        assert review.delivery_id == "d1"

    def test_upsert_reuses_row_for_same_pr(self, store):
        first = store.upsert_review(1, 7, ReviewStatus.PROCESSING)
        second = store.upsert_review(1, 7, ReviewStatus.PROCESSING, delivery_id="d2")
        assert first.id == second.id
        assert len(store.list_reviews()) == 1

    def test_upsert_clears_error_and_processed_at(self, store):
        review = store.upsert_review(1, 7, ReviewStatus.PROCESSING)
        store.update_review(review.id, status=ReviewStatus.FAILED, error="boom", processed_at=T0)

        again = store.upsert_review(1, 7, ReviewStatus.PROCESSING)
        assert again.status == ReviewStatus.PROCESSING
        assert again.error is None
        assert again.processed_at is None

    def test_update_records_result_and_hash(self, store):
        review = store.upsert_review(1, 7, ReviewStatus.PROCESSING)
        store.update_review(
            review.id,
            status=ReviewStatus.COMPLETED,
            result={"summary": "ok", "comments": 2},
            context_hash="abc",
            processed_at=T0,
        )
        saved = store.get_review(1, 7)
        assert saved.status == ReviewStatus.COMPLETED
        assert saved.result == {"summary": "ok", "comments": 2}
        assert saved.context_hash == "abc"
        assert saved.processed_at == T0

    def test_update_without_hash_keeps_previous_hash(self, store):
        review = store.upsert_review(1, 7, ReviewStatus.PROCESSING)
        store.update_review(review.id, status=ReviewStatus.COMPLETED, context_hash="abc")
        store.update_review(review.id, status=ReviewStatus.FAILED, error="later failure")
        assert store.get_review(1, 7).context_hash == "abc"

    def test_get_review_missing_returns_none(self, store):
        assert store.get_review(1, 99) is None

    def test_list_reviews_filters_by_repository(self, store):
        store.upsert_review(1, 1, ReviewStatus.PENDING)
        store.upsert_review(2, 1, ReviewStatus.PENDING)
        assert [r.repository_id for r in store.list_reviews(repository_id=2)] == [2]


# ---------------------------------------------------------------------------
# Comment threads
# ---------------------------------------------------------------------------


class TestThreads:
    def test_insert_and_list(self, store):
        review = store.upsert_review(1, 7, ReviewStatus.PROCESSING)
        assert store.insert_threads([_thread(review.id, "k1"), _thread(review.id, "k2")]) == 2
        keys = [t.issue_key for t in store.list_threads(review.id)]
        assert keys == ["k1", "k2"]

    def test_insert_skips_key_with_open_thread(self, store):
        review = store.upsert_review(1, 7, ReviewStatus.PROCESSING)
        store.insert_threads([_thread(review.id, "k1")])
        assert store.insert_threads([_thread(review.id, "k1", line=20)]) == 0
        assert len(store.list_threads(review.id)) == 1

    def test_resolve_marks_only_open_matching_keys(self, store):
        review = store.upsert_review(1, 7, ReviewStatus.PROCESSING)
        store.insert_threads([_thread(review.id, "k1"), _thread(review.id, "k2")])

        assert store.resolve_threads(review.id, ["k1", "missing"], T0) == 1
        by_key = {t.issue_key: t for t in store.list_threads(review.id)}
        assert by_key["k1"].status == ThreadStatus.RESOLVED
        assert by_key["k1"].resolved_at == T0
        assert by_key["k2"].status == ThreadStatus.OPEN

    def test_resolve_with_no_keys_is_noop(self, store):
        review = store.upsert_review(1, 7, ReviewStatus.PROCESSING)
        assert store.resolve_threads(review.id, [], T0) == 0

    def test_resolved_key_reopens_as_new_row(self, store):
        review = store.upsert_review(1, 7, ReviewStatus.PROCESSING)
        store.insert_threads([_thread(review.id, "k1")])
        store.resolve_threads(review.id, ["k1"], T0)

        assert store.insert_threads([_thread(review.id, "k1")]) == 1
        threads = store.list_threads(review.id)
        assert [t.status for t in threads] == [ThreadStatus.RESOLVED, ThreadStatus.OPEN]
        assert len(store.list_threads(review.id, status=ThreadStatus.OPEN)) == 1


# ---------------------------------------------------------------------------
# Usage
# ---------------------------------------------------------------------------


class TestUsage:
    def test_list_usage_filters_and_orders(self, store):
        store.record_usage(UsageRecord(installation_id=1, repository_id=10, pr_number=2, created_at=T0 + timedelta(1)))
        store.record_usage(UsageRecord(installation_id=1, repository_id=10, pr_number=1, created_at=T0))
        store.record_usage(UsageRecord(installation_id=2, repository_id=20, pr_number=1, created_at=T0))

        rows = store.list_usage(installation_id=1)
        assert [r.pr_number for r in rows] == [1, 2]
        assert [r.pr_number for r in store.list_usage(repository_id=10, pr_number=2)] == [2]

    def test_since_is_exclusive(self, store):
        store.record_usage(UsageRecord(installation_id=1, repository_id=10, pr_number=1, created_at=T0))
        store.record_usage(
            UsageRecord(installation_id=1, repository_id=10, pr_number=1, created_at=T0 + timedelta(seconds=1))
        )
        rows = store.list_usage(installation_id=1, since=T0)
        assert len(rows) == 1
        assert rows[0].created_at == T0 + timedelta(seconds=1)


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------


class TestTenants:
    def test_installation_roundtrip(self, store):
        store.save_installation(
            Installation(installation_id=5, plan_id=7, plan_expires_at=T0, api_key="sk-x", provider="openai")
        )
        inst = store.get_installation(5)
        assert inst.plan_id == 7
        assert inst.plan_expires_at == T0
        assert inst.has_custom_key is True

    def test_missing_installation_returns_none(self, store):
        assert store.get_installation(404) is None

    def test_count_active_repositories(self, store):
        store.save_repository(Repository(repository_id=1, installation_id=5, full_name="o/a"))
        store.save_repository(Repository(repository_id=2, installation_id=5, full_name="o/b", status="inactive"))
        store.save_repository(Repository(repository_id=3, installation_id=6, full_name="x/c"))
        assert store.count_active_repositories(5) == 1
        assert store.get_repository(2).status == "inactive"


class TestSQLitePersistence:
    def test_persists_across_connections(self, tmp_path):
        path = str(tmp_path / "test.db")
        first = SQLiteStore(db_path=path)
        review = first.upsert_review(1, 7, ReviewStatus.PROCESSING)
        first.insert_threads([_thread(review.id, "k1")])
        first.close()

        second = SQLiteStore(db_path=path)
        assert second.get_review(1, 7).id == review.id
        assert [t.issue_key for t in second.list_threads(review.id)] == ["k1"]
        second.close()

    def test_naive_timestamps_are_treated_as_utc(self, tmp_path):
        s = SQLiteStore(db_path=str(tmp_path / "test.db"))
        s.record_usage(UsageRecord(installation_id=1, repository_id=1, pr_number=1, created_at=datetime(2026, 3, 1)))
        assert s.list_usage()[0].created_at == datetime(2026, 3, 1, tzinfo=timezone.utc)
        s.close()
