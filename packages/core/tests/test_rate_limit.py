"""Tests for the rate-limit gates and the repository quota."""

from datetime import datetime, timedelta, timezone

import pytest

from reviewscope_core.exceptions import QuotaError, RateLimitError
from reviewscope_core.job import ReviewJob
from reviewscope_core.plans import get_plan_limits
from reviewscope_core.rate_limit import DAILY_WINDOW, check_rate_limits, check_repo_quota, log_review_usage
from reviewscope_store.memory import MemoryStore
from reviewscope_store.models import Repository, UsageRecord

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
FREE = get_plan_limits(None)  # cooldown 5 min, 5 per PR, 10 per day


@pytest.fixture
def store():
    return MemoryStore()


def record(store, pr_number, at, installation_id=1, repository_id=10):
    store.record_usage(
        UsageRecord(installation_id=installation_id, repository_id=repository_id, pr_number=pr_number, created_at=at)
    )


def check(store, pr_number, now):
    check_rate_limits(store, 1, 10, pr_number, FREE, now)


class TestCooldown:
    def test_recent_run_blocks(self, store):
        record(store, 7, T0)
        with pytest.raises(RateLimitError) as exc:
            check(store, 7, T0 + timedelta(minutes=1))
        assert exc.value.kind == "cooldown"
        assert exc.value.reset_at == T0 + timedelta(minutes=FREE.cooldown_minutes)

    def test_cooldown_is_per_pr(self, store):
        record(store, 7, T0)
        check(store, 8, T0 + timedelta(minutes=1))

    def test_passes_after_cooldown(self, store):
        record(store, 7, T0)
        check(store, 7, T0 + timedelta(minutes=FREE.cooldown_minutes))


class TestPerPrCap:
    def test_cap_reached(self, store):
        for i in range(FREE.reviews_per_pr):
            record(store, 7, T0 + timedelta(minutes=10 * i))
        with pytest.raises(RateLimitError) as exc:
            check(store, 7, T0 + timedelta(hours=2))
        assert exc.value.kind == "per_pr"
        assert exc.value.reset_at is None

    def test_under_cap(self, store):
        for i in range(FREE.reviews_per_pr - 1):
            record(store, 7, T0 + timedelta(minutes=10 * i))
        check(store, 7, T0 + timedelta(hours=2))


class TestDailyCap:
    def test_other_installations_do_not_count(self, store):
        for i in range(FREE.daily_reviews_limit):
            record(store, 100 + i, T0, installation_id=2)
        check(store, 7, T0 + timedelta(hours=1))

    def test_runs_older_than_a_day_do_not_count(self, store):
        for i in range(FREE.daily_reviews_limit):
            record(store, 100 + i, T0)
        check(store, 7, T0 + DAILY_WINDOW + timedelta(seconds=1))

    @pytest.mark.parametrize("extra", [0, 1, 3])
    def test_reset_is_exactly_when_capacity_frees_up(self, store, extra):
        runs = FREE.daily_reviews_limit + extra
        for i in range(runs):
            record(store, 100 + i, T0 + timedelta(minutes=10 * i))
        now = T0 + timedelta(hours=2)

        with pytest.raises(RateLimitError) as exc:
            check(store, 7, now)
        assert exc.value.kind == "daily"
        reset_at = exc.value.reset_at

        # The anchoring run is still inside the window just before it ages out.
        anchor = T0 + timedelta(minutes=10 * extra)
        with pytest.raises(RateLimitError):
            check(store, 7, anchor + DAILY_WINDOW - timedelta(seconds=1))
        # And the gate opens by the advertised reset time.
        check(store, 7, reset_at)
        assert reset_at > anchor + DAILY_WINDOW


class TestRepoQuota:
    def test_over_quota(self, store):
        for i in range(FREE.max_repos + 1):
            store.save_repository(Repository(repository_id=i, installation_id=1, full_name=f"acme/r{i}"))
        with pytest.raises(QuotaError) as exc:
            check_repo_quota(store, 1, FREE)
        assert exc.value.kind == "quota"

    def test_inactive_repositories_do_not_count(self, store):
        for i in range(FREE.max_repos):
            store.save_repository(Repository(repository_id=i, installation_id=1, full_name=f"acme/r{i}"))
        store.save_repository(Repository(repository_id=99, installation_id=1, full_name="acme/old", status="inactive"))
        check_repo_quota(store, 1, FREE)


def test_log_review_usage_counts_towards_gates(store):
    job = ReviewJob(installation_id=1, repository_id=10, repository_full_name="acme/api", pr_number=7, head_sha="abc")
    log_review_usage(store, job, T0)
    with pytest.raises(RateLimitError):
        check(store, 7, T0 + timedelta(seconds=30))
