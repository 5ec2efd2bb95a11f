"""Linked-issue context for the review prompt."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from reviewscope_core.vcs import VersionControlClient

logger = logging.getLogger(__name__)

# GitHub's closing keywords only. A bare "#123" is too noisy to count as a link.
_ISSUE_REF_RE = re.compile(r"(?:fix|fixes|fixed|resolve|resolves|resolved|close|closes|closed)\s+#(\d+)", re.IGNORECASE)

_MD_IMAGE_RE = re.compile(r"!\[.*?\]\(.*?\)")
_HTML_IMAGE_RE = re.compile(r"<img[^>]*>", re.IGNORECASE)
_VIDEO_RE = re.compile(r"https?://\S+\.(mp4|mov|webm|gif)", re.IGNORECASE)
_GH_ASSET_RE = re.compile(r"https://github\.com/\S*/assets/\d+", re.IGNORECASE)
_PLACEHOLDER_RE = re.compile(r"\[(?:image|video|media) attached\]")

# Fewer meaningful words than this and the issue is too vague to anchor a review.
_MIN_MEANINGFUL_WORDS = 10
MAX_LINKED_ISSUES = 3


@dataclass(frozen=True)
class CleanedIssue:
    text: str
    has_media: bool
    is_vague: bool


def parse_issue_references(pr_body: str | None) -> list[int]:
    """Return the issue numbers a PR body closes, deduplicated, in order of appearance."""
    if not pr_body:
        return []
    seen: dict[int, None] = {}
    for match in _ISSUE_REF_RE.finditer(pr_body):
        seen.setdefault(int(match.group(1)), None)
    return list(seen)


def clean_issue_body(body: str | None) -> CleanedIssue:
    """Replace media that a text model cannot read with placeholders."""
    if not body or not body.strip():
        return CleanedIssue(text="", has_media=False, is_vague=True)

    cleaned = body
    has_media = False
    for pattern, placeholder in (
        (_MD_IMAGE_RE, "[image attached]"),
        (_HTML_IMAGE_RE, "[image attached]"),
        (_VIDEO_RE, "[video attached]"),
        (_GH_ASSET_RE, "[media attached]"),
    ):
        cleaned, count = pattern.subn(placeholder, cleaned)
        has_media = has_media or count > 0

    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned).strip()
    words = [w for w in _PLACEHOLDER_RE.sub("", cleaned).split() if len(w) > 2]
    return CleanedIssue(text=cleaned, has_media=has_media, is_vague=len(words) < _MIN_MEANINGFUL_WORDS)


def _render_issue(number: int, title: str, state: str, cleaned: CleanedIssue) -> str:
    parts = [f"Issue #{number}: {title}", f"Status: {state}"]
    if cleaned.is_vague and cleaned.has_media:
        parts.append(
            "Note: this issue has minimal text and relies on attached images or videos that cannot be analyzed."
        )
    elif cleaned.is_vague:
        parts.append("Note: this issue has a vague description. Focus on the PR changes and title for context.")
    elif cleaned.has_media:
        parts.append("Note: this issue contains images or videos that cannot be analyzed.")
    if cleaned.text:
        parts.append(f"Description:\n{cleaned.text}")
    else:
        parts.append("Description: (empty or media-only)")
    return "\n".join(parts)


def fetch_issue_context(vcs: VersionControlClient, numbers: Iterable[int]) -> str:
    """Fetch and render linked issues. A failed fetch is logged and skipped."""
    rendered: list[str] = []
    for number in list(numbers)[:MAX_LINKED_ISSUES]:
        try:
            issue = vcs.get_issue(number)
        except Exception as e:
            logger.warning("Could not fetch linked issue #%d: %s", number, e)
            continue
        if issue is None:
            continue
        rendered.append(_render_issue(number, issue.title, issue.state, clean_issue_body(issue.body)))
    return "\n\n---\n\n".join(rendered)
