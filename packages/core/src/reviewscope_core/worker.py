"""In-process job worker.

Envelopes of the form ``{"type": "review", "payload": {...}}`` are put on a
queue and consumed by N long-running slots in a thread pool. A slot runs one
job to completion before taking the next; there is no cancellation.
"""

from __future__ import annotations

import concurrent.futures
import logging
import queue
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)

JOB_TYPES = ("review", "indexing", "chat")

Handler = Callable[[dict], Any]

_STOP = object()


class Worker:
    def __init__(self, handlers: dict[str, Handler] | None = None, workers: int = 4):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.workers = workers
        self.handlers: dict[str, Handler] = dict(handlers or {})
        self.queue: queue.Queue = queue.Queue()
        self.processed = 0
        self.failed = 0
        self._counter_lock = threading.Lock()
        self._executor: concurrent.futures.ThreadPoolExecutor | None = None
        self._slots: list[concurrent.futures.Future] = []

    def register(self, job_type: str, handler: Handler) -> None:
        self.handlers[job_type] = handler

    def submit(self, envelope: dict) -> None:
        self.queue.put(envelope)

    def start(self) -> None:
        if self._executor is not None:
            return
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.workers, thread_name_prefix="reviewscope-worker"
        )
        self._slots = [self._executor.submit(self._slot_loop) for _ in range(self.workers)]
        logger.info("Worker started with %d slot(s).", self.workers)

    def join(self) -> None:
        """Block until every submitted envelope has been handled."""
        self.queue.join()

    def stop(self) -> None:
        """Let running jobs finish, then shut the slots down."""
        if self._executor is None:
            return
        for _ in self._slots:
            self.queue.put(_STOP)
        self._executor.shutdown(wait=True)
        self._executor = None
        self._slots = []
        logger.info("Worker stopped: %d processed, %d failed.", self.processed, self.failed)

    def __enter__(self) -> Worker:
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()

    # ------------------------------------------------------------------ #
    # Internal                                                             #
    # ------------------------------------------------------------------ #

    def _slot_loop(self) -> None:
        while True:
            envelope = self.queue.get()
            try:
                if envelope is _STOP:
                    return
                self.dispatch(envelope)
            finally:
                self.queue.task_done()

    def dispatch(self, envelope: dict) -> bool:
        """Run the handler for one envelope. Returns True when it completed."""
        job_type = envelope.get("type") if isinstance(envelope, dict) else None
        handler = self.handlers.get(job_type)
        if handler is None:
            logger.warning("Dropping job with unknown type %r.", job_type)
            return False

        try:
            handler(envelope.get("payload") or {})
        except Exception:
            logger.exception("%s job failed.", job_type)
            with self._counter_lock:
                self.failed += 1
            return False

        with self._counter_lock:
            self.processed += 1
        return True
