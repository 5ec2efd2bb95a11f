"""SQLiteStore — file-backed relational store for the worker and the CLI.

Schema:
  reviews          — one row per (repository_id, pr_number), upserted per run.
  comment_threads  — one row per reported finding; a partial unique index
                     allows a single OPEN thread per (review_id, issue_key)
                     while keeping resolved rows as an audit trail.
  usage_logs       — one row per successful review run.
  installations,
  repositories     — tenant records read during job validation.

Timestamps are stored as fixed-width UTC ISO-8601 strings so that string
comparison in SQL matches chronological order.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
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

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS reviews (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    repository_id   INTEGER NOT NULL,
    pr_number       INTEGER NOT NULL,
    status          TEXT NOT NULL DEFAULT 'pending',
    delivery_id     TEXT,
    context_hash    TEXT,
    result_json     TEXT DEFAULT '{}',
    error           TEXT,
    processed_at    TEXT,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL,
    UNIQUE (repository_id, pr_number)
);
CREATE TABLE IF NOT EXISTS comment_threads (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    review_id       INTEGER NOT NULL REFERENCES reviews (id),
    issue_key       TEXT NOT NULL,
    file_path       TEXT NOT NULL,
    line            INTEGER NOT NULL,
    severity        TEXT,
    rule_id         TEXT,
    status          TEXT NOT NULL DEFAULT 'open',
    created_at      TEXT NOT NULL,
    resolved_at     TEXT
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_threads_open_key
    ON comment_threads (review_id, issue_key) WHERE status = 'open';
CREATE INDEX IF NOT EXISTS idx_threads_review ON comment_threads (review_id);
CREATE TABLE IF NOT EXISTS usage_logs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    installation_id INTEGER NOT NULL,
    repository_id   INTEGER NOT NULL,
    pr_number       INTEGER NOT NULL,
    head_sha        TEXT,
    service         TEXT NOT NULL,
    created_at      TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_usage_installation ON usage_logs (installation_id, created_at);
CREATE INDEX IF NOT EXISTS idx_usage_pr ON usage_logs (repository_id, pr_number);
CREATE TABLE IF NOT EXISTS installations (
    installation_id INTEGER PRIMARY KEY,
    plan_id         INTEGER,
    plan_expires_at TEXT,
    status          TEXT NOT NULL DEFAULT 'active',
    provider        TEXT,
    api_key         TEXT,
    smart_routing   INTEGER DEFAULT 0
);
CREATE TABLE IF NOT EXISTS repositories (
    repository_id   INTEGER PRIMARY KEY,
    installation_id INTEGER NOT NULL,
    full_name       TEXT NOT NULL,
    status          TEXT NOT NULL DEFAULT 'active',
    indexed_at      TEXT
);
"""


def _ts(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteStore(BaseStore):
    """Stores review state in a local SQLite database file.

    The connection is shared across worker threads and guarded by a lock;
    every public method performs its statement(s) and commits before
    releasing it.
    """

    def __init__(self, db_path: str = ".reviewscope.db"):
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    # ------------------------------------------------------------------ #
    # Reviews                                                              #
    # ------------------------------------------------------------------ #

    def upsert_review(self, repository_id: int, pr_number: int, status: str, delivery_id: str = "") -> Review:
        now = _ts(utcnow())
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO reviews (repository_id, pr_number, status, delivery_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (repository_id, pr_number) DO UPDATE SET
                    status = excluded.status,
                    delivery_id = excluded.delivery_id,
                    error = NULL,
                    processed_at = NULL,
                    updated_at = excluded.updated_at
                """,
                (repository_id, pr_number, status, delivery_id, now, now),
            )
            self._conn.commit()
            row = self._conn.execute(
                "SELECT * FROM reviews WHERE repository_id=? AND pr_number=?",
                (repository_id, pr_number),
            ).fetchone()
        return self._row_to_review(row)

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
            self._conn.execute(
                """
                UPDATE reviews SET
                    status = ?,
                    result_json = COALESCE(?, result_json),
                    error = ?,
                    context_hash = COALESCE(?, context_hash),
                    processed_at = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    status,
                    json.dumps(result) if result is not None else None,
                    error,
                    context_hash,
                    _ts(processed_at),
                    _ts(utcnow()),
                    review_id,
                ),
            )
            self._conn.commit()

    def get_review(self, repository_id: int, pr_number: int) -> Review | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM reviews WHERE repository_id=? AND pr_number=?",
                (repository_id, pr_number),
            ).fetchone()
        return self._row_to_review(row) if row else None

    def list_reviews(self, repository_id: int | None = None) -> list[Review]:
        with self._lock:
            if repository_id is not None:
                rows = self._conn.execute(
                    "SELECT * FROM reviews WHERE repository_id=? ORDER BY updated_at",
                    (repository_id,),
                ).fetchall()
            else:
                rows = self._conn.execute("SELECT * FROM reviews ORDER BY updated_at").fetchall()
        return [self._row_to_review(r) for r in rows]

    # ------------------------------------------------------------------ #
    # Comment threads                                                      #
    # ------------------------------------------------------------------ #

    def list_threads(self, review_id: int, status: str | None = None) -> list[CommentThread]:
        with self._lock:
            if status is not None:
                rows = self._conn.execute(
                    "SELECT * FROM comment_threads WHERE review_id=? AND status=? ORDER BY id",
                    (review_id, status),
                ).fetchall()
            else:
                rows = self._conn.execute(
                    "SELECT * FROM comment_threads WHERE review_id=? ORDER BY id",
                    (review_id,),
                ).fetchall()
        return [self._row_to_thread(r) for r in rows]

    def insert_threads(self, threads: Iterable[CommentThread]) -> int:
        inserted = 0
        with self._lock:
            for t in threads:
                # OR IGNORE leans on the partial unique index: a key that already
                # has an open thread in this lineage is skipped, not duplicated.
                cursor = self._conn.execute(
                    """
                    INSERT OR IGNORE INTO comment_threads
                      (review_id, issue_key, file_path, line, severity, rule_id, status, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        t.review_id,
                        t.issue_key,
                        t.file_path,
                        t.line,
                        t.severity,
                        t.rule_id,
                        ThreadStatus.OPEN,
                        _ts(t.created_at),
                    ),
                )
                inserted += cursor.rowcount
            self._conn.commit()
        return inserted

    def resolve_threads(self, review_id: int, issue_keys: Iterable[str], resolved_at: datetime) -> int:
        keys = list(issue_keys)
        if not keys:
            return 0
        placeholders = ",".join("?" for _ in keys)
        with self._lock:
            cursor = self._conn.execute(
                f"UPDATE comment_threads SET status=?, resolved_at=? "
                f"WHERE review_id=? AND status=? AND issue_key IN ({placeholders})",
                (ThreadStatus.RESOLVED, _ts(resolved_at), review_id, ThreadStatus.OPEN, *keys),
            )
            self._conn.commit()
        return cursor.rowcount

    # ------------------------------------------------------------------ #
    # Usage                                                                #
    # ------------------------------------------------------------------ #

    def record_usage(self, record: UsageRecord) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO usage_logs (installation_id, repository_id, pr_number, head_sha, service, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record.installation_id,
                    record.repository_id,
                    record.pr_number,
                    record.head_sha,
                    record.service,
                    _ts(record.created_at),
                ),
            )
            self._conn.commit()

    def list_usage(
        self,
        *,
        installation_id: int | None = None,
        repository_id: int | None = None,
        pr_number: int | None = None,
        since: datetime | None = None,
    ) -> list[UsageRecord]:
        clauses: list[str] = []
        params: list = []
        if installation_id is not None:
            clauses.append("installation_id=?")
            params.append(installation_id)
        if repository_id is not None:
            clauses.append("repository_id=?")
            params.append(repository_id)
        if pr_number is not None:
            clauses.append("pr_number=?")
            params.append(pr_number)
        if since is not None:
            clauses.append("created_at > ?")
            params.append(_ts(since))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._lock:
            rows = self._conn.execute(f"SELECT * FROM usage_logs {where} ORDER BY created_at, id", params).fetchall()
        return [
            UsageRecord(
                id=r["id"],
                installation_id=r["installation_id"],
                repository_id=r["repository_id"],
                pr_number=r["pr_number"],
                head_sha=r["head_sha"] or "",
                service=r["service"],
                created_at=_dt(r["created_at"]),
            )
            for r in rows
        ]

    # ------------------------------------------------------------------ #
    # Tenants                                                              #
    # ------------------------------------------------------------------ #

    def get_installation(self, installation_id: int) -> Installation | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM installations WHERE installation_id=?", (installation_id,)
            ).fetchone()
        if row is None:
            return None
        return Installation(
            installation_id=row["installation_id"],
            plan_id=row["plan_id"],
            plan_expires_at=_dt(row["plan_expires_at"]),
            status=row["status"],
            provider=row["provider"],
            api_key=row["api_key"],
            smart_routing=bool(row["smart_routing"]),
        )

    def save_installation(self, installation: Installation) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO installations
                  (installation_id, plan_id, plan_expires_at, status, provider, api_key, smart_routing)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    installation.installation_id,
                    installation.plan_id,
                    _ts(installation.plan_expires_at),
                    installation.status,
                    installation.provider,
                    installation.api_key,
                    int(installation.smart_routing),
                ),
            )
            self._conn.commit()

    def get_repository(self, repository_id: int) -> Repository | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM repositories WHERE repository_id=?", (repository_id,)).fetchone()
        if row is None:
            return None
        return Repository(
            repository_id=row["repository_id"],
            installation_id=row["installation_id"],
            full_name=row["full_name"],
            status=row["status"],
            indexed_at=_dt(row["indexed_at"]),
        )

    def save_repository(self, repository: Repository) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO repositories (repository_id, installation_id, full_name, status, indexed_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    repository.repository_id,
                    repository.installation_id,
                    repository.full_name,
                    repository.status,
                    _ts(repository.indexed_at),
                ),
            )
            self._conn.commit()

    def count_active_repositories(self, installation_id: int) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) AS n FROM repositories WHERE installation_id=? AND status='active'",
                (installation_id,),
            ).fetchone()
        return row["n"]

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _row_to_review(row: sqlite3.Row) -> Review:
        return Review(
            id=row["id"],
            repository_id=row["repository_id"],
            pr_number=row["pr_number"],
            status=row["status"],
            delivery_id=row["delivery_id"] or "",
            context_hash=row["context_hash"],
            result=json.loads(row["result_json"] or "{}"),
            error=row["error"],
            processed_at=_dt(row["processed_at"]),
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
        )

    @staticmethod
    def _row_to_thread(row: sqlite3.Row) -> CommentThread:
        return CommentThread(
            id=row["id"],
            review_id=row["review_id"],
            issue_key=row["issue_key"],
            file_path=row["file_path"],
            line=row["line"],
            severity=row["severity"] or "MINOR",
            rule_id=row["rule_id"] or "",
            status=row["status"],
            created_at=_dt(row["created_at"]),
            resolved_at=_dt(row["resolved_at"]),
        )
