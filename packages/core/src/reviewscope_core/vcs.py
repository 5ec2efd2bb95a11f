"""Version-control client contract consumed by the pipeline.

Posting is additive: every ``post_review`` call creates a new review
submission. The pipeline is responsible for never re-submitting a comment
that already has an open thread.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class IssueInfo:
    number: int
    title: str
    body: str | None
    state: str


@dataclass(frozen=True)
class ExistingComment:
    path: str
    line: int | None
    body: str
    author: str = ""
    comment_id: int | None = None


class VersionControlClient(ABC):
    @abstractmethod
    def get_diff(self, pr_number: int) -> str:
        """Return the unified diff of the pull request."""

    @abstractmethod
    def get_file_content(self, path: str, ref: str) -> str | None:
        """Return the file at ``ref``, or None when it does not exist there."""

    @abstractmethod
    def post_review(self, pr_number: int, commit_sha: str, summary: str, comments: list[dict]) -> None:
        """Submit one review with inline comments.

        Each comment is ``{"path", "line", "side", "body"}`` plus
        ``"start_line"``/``"start_side"`` for multi-line ranges.
        """

    @abstractmethod
    def list_review_comments(self, pr_number: int) -> list[ExistingComment]: ...

    @abstractmethod
    def resolve_thread(self, pr_number: int, comment: ExistingComment, body: str) -> None:
        """Mark the thread started by ``comment`` as fixed, replying with ``body``."""

    @abstractmethod
    def post_comment(self, pr_number: int, body: str) -> None:
        """Post a plain conversation comment on the pull request."""

    @abstractmethod
    def get_issue(self, number: int) -> IssueInfo | None: ...
