"""Tests for the in-process job worker."""

import threading

import pytest

from reviewscope_core.job import ReviewJob
from reviewscope_core.worker import Worker


def test_requires_at_least_one_slot():
    with pytest.raises(ValueError):
        Worker(workers=0)


class TestDispatch:
    def test_handler_receives_payload(self):
        seen = []
        worker = Worker({"review": seen.append})
        assert worker.dispatch({"type": "review", "payload": {"pr_number": 7}}) is True
        assert seen == [{"pr_number": 7}]
        assert worker.processed == 1

    def test_unknown_type_is_dropped(self):
        worker = Worker({"review": lambda payload: None})
        assert worker.dispatch({"type": "deploy", "payload": {}}) is False
        assert worker.dispatch("not an envelope") is False
        assert (worker.processed, worker.failed) == (0, 0)

    def test_handler_failure_is_counted(self):
        def boom(payload):
            raise RuntimeError("bad job")

        worker = Worker({"review": boom})
        assert worker.dispatch({"type": "review", "payload": {}}) is False
        assert worker.failed == 1

    def test_register(self):
        worker = Worker()
        worker.register("indexing", lambda payload: None)
        assert worker.dispatch({"type": "indexing"}) is True


class TestSlots:
    def test_single_slot_runs_in_order(self):
        order = []
        with Worker({"review": lambda p: order.append(p["n"])}, workers=1) as worker:
            for n in range(5):
                worker.submit({"type": "review", "payload": {"n": n}})
            worker.join()
        assert order == [0, 1, 2, 3, 4]
        assert worker.processed == 5

    def test_slots_run_concurrently(self):
        barrier = threading.Barrier(2, timeout=5)
        with Worker({"review": lambda p: barrier.wait()}, workers=2) as worker:
            worker.submit({"type": "review", "payload": {}})
            worker.submit({"type": "review", "payload": {}})
            worker.join()
        # Both handlers reached the barrier together; neither timed out.
        assert (worker.processed, worker.failed) == (2, 0)

    def test_failure_does_not_stop_the_slot(self):
        def handler(payload):
            if payload["n"] == 1:
                raise RuntimeError("bad job")

        with Worker({"review": handler}, workers=1) as worker:
            for n in range(3):
                worker.submit({"type": "review", "payload": {"n": n}})
            worker.join()
        assert (worker.processed, worker.failed) == (2, 1)

    def test_stop_is_idempotent(self):
        worker = Worker(workers=1)
        worker.start()
        worker.stop()
        worker.stop()


def test_review_payload_round_trips_through_envelope():
    job = ReviewJob(installation_id=1, repository_id=10, repository_full_name="acme/api", pr_number=7, head_sha="abc")
    received = []
    worker = Worker({"review": lambda p: received.append(ReviewJob.from_dict(p))})
    worker.dispatch({"type": "review", "payload": job.to_dict()})
    assert received == [job]
