"""Shared fakes for reviewscope_core tests."""

import pytest

from reviewscope_core.vcs import ExistingComment, IssueInfo, VersionControlClient


class FakeVCS(VersionControlClient):
    """In-memory pull request. Posted reviews show up as existing comments."""

    def __init__(self, diff="", files=None, issues=None):
        self.diff = diff
        self.files = dict(files or {})
        self.issues = dict(issues or {})
        self.failing_paths = set()
        self.existing = []
        self.reviews = []
        self.comments = []
        self.resolved = []
        self.failing_resolves = set()

    def get_diff(self, pr_number):
        return self.diff

    def get_file_content(self, path, ref):
        if path in self.failing_paths:
            raise ConnectionError(f"cannot fetch {path}")
        return self.files.get(path)

    def post_review(self, pr_number, commit_sha, summary, comments):
        self.reviews.append(
            {"pr_number": pr_number, "commit_sha": commit_sha, "summary": summary, "comments": comments}
        )
        for c in comments:
            self.existing.append(
                ExistingComment(path=c["path"], line=c["line"], body=c["body"], comment_id=len(self.existing) + 1)
            )

    def list_review_comments(self, pr_number):
        return list(self.existing)

    def resolve_thread(self, pr_number, comment, body):
        if comment.comment_id in self.failing_resolves:
            raise ConnectionError("thread is locked")
        self.resolved.append((comment.comment_id, body))

    def post_comment(self, pr_number, body):
        self.comments.append(body)

    def get_issue(self, number):
        issue = self.issues.get(number)
        if isinstance(issue, Exception):
            raise issue
        return issue


@pytest.fixture
def vcs():
    return FakeVCS()


@pytest.fixture
def make_issue():
    def _make(number, title="Bug", body="", state="open"):
        return IssueInfo(number=number, title=title, body=body, state=state)

    return _make
