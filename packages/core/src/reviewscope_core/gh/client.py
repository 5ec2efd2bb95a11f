from __future__ import annotations

import logging
from dataclasses import dataclass

from github import Github, GithubException, UnknownObjectException

from reviewscope_core.diff import build_unified_diff
from reviewscope_core.vcs import ExistingComment, IssueInfo, VersionControlClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PullInfo:
    number: int
    title: str
    body: str
    head_sha: str
    base_sha: str
    draft: bool


def get_repo(repo_name: str, token: str):
    return Github(token).get_repo(repo_name)


class GitHubClient(VersionControlClient):
    """VersionControlClient backed by PyGithub, bound to one repository."""

    def __init__(self, repo):
        self.repo = repo

    @classmethod
    def from_token(cls, repo_name: str, token: str) -> GitHubClient:
        return cls(get_repo(repo_name, token))

    @staticmethod
    def _pull_info(pr) -> PullInfo:
        return PullInfo(
            number=pr.number,
            title=pr.title or "",
            body=pr.body or "",
            head_sha=pr.head.sha,
            base_sha=pr.base.sha,
            draft=bool(pr.draft),
        )

    def get_pull_info(self, pr_number: int) -> PullInfo:
        return self._pull_info(self.repo.get_pull(pr_number))

    def list_open_pulls(self) -> list[PullInfo]:
        return [self._pull_info(pr) for pr in self.repo.get_pulls(state="open", sort="created")]

    def get_diff(self, pr_number: int) -> str:
        files = sorted(self.repo.get_pull(pr_number).get_files(), key=lambda f: f.filename)
        return build_unified_diff(files)

    def get_file_content(self, path: str, ref: str) -> str | None:
        try:
            contents = self.repo.get_contents(path, ref=ref)
        except UnknownObjectException:
            return None
        if isinstance(contents, list):
            # A directory, not a file.
            return None
        return contents.decoded_content.decode("utf-8", errors="replace")

    def post_review(self, pr_number: int, commit_sha: str, summary: str, comments: list[dict]) -> None:
        pr = self.repo.get_pull(pr_number)
        commit = self.repo.get_commit(commit_sha)
        pr.create_review(commit=commit, body=summary, event="COMMENT", comments=comments)

    def list_review_comments(self, pr_number: int) -> list[ExistingComment]:
        result = []
        for c in self.repo.get_pull(pr_number).get_review_comments():
            # c.line is None once the line is no longer part of the diff (force push).
            line = c.line if c.line is not None else getattr(c, "original_line", None)
            author = c.user.login if c.user is not None else ""
            result.append(
                ExistingComment(path=c.path, line=line, body=c.body or "", author=author, comment_id=c.id)
            )
        return result

    def resolve_thread(self, pr_number: int, comment: ExistingComment, body: str) -> None:
        # REST has no resolve endpoint; reply on the root comment instead.
        self.repo.get_pull(pr_number).create_review_comment_reply(comment.comment_id, body)

    def post_comment(self, pr_number: int, body: str) -> None:
        self.repo.get_pull(pr_number).create_issue_comment(body)

    def get_issue(self, number: int) -> IssueInfo | None:
        try:
            issue = self.repo.get_issue(number)
        except UnknownObjectException:
            return None
        except GithubException as e:
            logger.warning("Could not fetch issue #%d: %s", number, e)
            return None
        return IssueInfo(number=issue.number, title=issue.title or "", body=issue.body, state=issue.state)
