"""Rendering and posting of review comments and the review summary."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Iterable, Sequence

from reviewscope_core.findings import SEVERITIES, severity_rank

if TYPE_CHECKING:
    from reviewscope_core.findings import Finding
    from reviewscope_core.job import ReviewJob
    from reviewscope_core.vcs import VersionControlClient

logger = logging.getLogger(__name__)

# Hidden marker carrying the issue key, so a comment posted before a crash
# is recognised on the next run even if its thread row was never written.
_KEY_MARKER = "<!-- reviewscope-key: {key} -->"
_KEY_MARKER_RE = re.compile(r"<!-- reviewscope-key: ([0-9a-f]{16}) -->")

_SUMMARY_HEADER = "## ReviewScope Analysis"
_FOOTER = "_Generated by ReviewScope_"
_RESOLVED_REPLY = "Resolved: this issue no longer appears in the latest changes."


def format_comment_body(finding: Finding) -> str:
    lines = [f"**[{finding.severity.upper()}]** {finding.message}"]
    if finding.why and finding.why != finding.message:
        lines += ["", finding.why]
    if finding.fix:
        lines += ["", f"**Fix:** {finding.fix}"]
    if finding.suggestion:
        lines += ["", "**Suggested change**", "```suggestion", finding.suggestion, "```"]
    elif finding.diff:
        lines += ["", "**Suggested change**", "```diff", finding.diff, "```"]
    elif finding.snippet:
        lines += ["", "```", finding.snippet, "```"]
    if finding.source == "static":
        lines += ["", f"_rule: `{finding.rule_id}`_"]
    if finding.issue_key:
        lines.append(_KEY_MARKER.format(key=finding.issue_key))
    return "\n".join(lines)


def to_review_comment(finding: Finding) -> dict:
    comment = {
        "path": finding.file,
        "line": finding.line,
        "side": "RIGHT",
        "body": format_comment_body(finding),
    }
    if finding.end_line and finding.end_line > finding.line:
        comment["start_line"] = finding.line
        comment["start_side"] = "RIGHT"
        comment["line"] = finding.end_line
    return comment


def build_summary(
    ai_summary: str,
    findings: Sequence[Finding],
    assessment: dict | None = None,
    notes: Iterable[str] = (),
    suppressed: int = 0,
    resolved: int = 0,
) -> str:
    """Build the top-level review body.

    ``findings`` are the comments posted in this run. ``suppressed`` counts
    findings already reported by an earlier run and ``resolved`` the threads
    this run closed.
    """
    file_counts: dict[str, dict[str, int]] = {}
    totals = {s: 0 for s in SEVERITIES}
    for f in findings:
        sev = f.severity.upper() if f.severity.upper() in totals else "MINOR"
        file_counts.setdefault(f.file, {s: 0 for s in SEVERITIES})[sev] += 1
        totals[sev] += 1
    total = sum(totals.values())

    lines = [_SUMMARY_HEADER, ""]
    if assessment:
        lines.append(
            f"**Risk:** {assessment.get('risk_level', '?')} · "
            f"**Merge readiness:** {assessment.get('merge_readiness', '?')} · "
            f"**Confidence:** {assessment.get('confidence', '?')}"
        )
        lines.append("")

    if total == 0:
        verdict = "No new issues found."
    else:
        issue_str = ", ".join(f"{totals[s]} {s.lower()}" for s in SEVERITIES if totals[s])
        flagged = sorted(file_counts, key=lambda p: sum(file_counts[p].values()), reverse=True)
        top = f"`{flagged[0]}`"
        if any(totals[s] for s in ("BLOCKER", "CRITICAL", "MAJOR")):
            verdict = f"{issue_str} issue(s), changes required. Most flagged: {top}."
        else:
            verdict = f"{issue_str} suggestion(s). Most flagged: {top}."
    lines.append(f"> {verdict}")
    lines.append("")

    stats = f"**{total}** new comment(s)"
    if suppressed:
        stats += f" · **{suppressed}** already reported"
    if resolved:
        stats += f" · **{resolved}** resolved"
    lines.append(stats)

    if ai_summary:
        lines += ["", ai_summary]

    if file_counts:
        lines += [
            "",
            "| File | Blocker | Critical | Major | Minor | Info | Total |",
            "|------|:-------:|:--------:|:-----:|:-----:|:----:|:-----:|",
        ]
        for path in sorted(file_counts, key=lambda p: min(severity_rank(s) for s, n in file_counts[p].items() if n)):
            fc = file_counts[path]
            cells = " | ".join(str(fc[s] or "—") for s in SEVERITIES)
            lines.append(f"| `{path}` | {cells} | {sum(fc.values())} |")

    for note in notes:
        lines += ["", f"_{note}_"]

    lines += ["", "---", _FOOTER]
    return "\n".join(lines)


def posted_issue_keys(vcs: VersionControlClient, pr_number: int) -> set[str]:
    keys = set()
    for comment in vcs.list_review_comments(pr_number):
        keys.update(_KEY_MARKER_RE.findall(comment.body))
    return keys


def post_findings(
    vcs: VersionControlClient,
    job: ReviewJob,
    summary: str,
    findings: Sequence[Finding],
) -> list[Finding]:
    """Submit one review carrying the summary and one inline comment per finding.

    Findings whose key marker is already present on the PR are not posted
    again. Returns the findings that were posted.
    """
    already = posted_issue_keys(vcs, job.pr_number)
    to_post = [f for f in findings if f.issue_key not in already]
    if len(to_post) < len(findings):
        logger.info("Skipping %d comment(s) already present on the PR.", len(findings) - len(to_post))

    vcs.post_review(job.pr_number, job.head_sha, summary, [to_review_comment(f) for f in to_post])
    logger.info("Posted review on %s#%d with %d comment(s).", job.repository_full_name, job.pr_number, len(to_post))
    return to_post


def resolve_fixed_threads(vcs: VersionControlClient, pr_number: int, issue_keys: Iterable[str]) -> int:
    """Reply "resolved" on the PR comment of every fixed finding.

    Comments are matched through their key marker. A failure on one thread is
    logged and does not stop the others. Returns the number of threads marked.
    """
    wanted = set(issue_keys)
    if not wanted:
        return 0
    marked = 0
    for comment in vcs.list_review_comments(pr_number):
        keys = set(_KEY_MARKER_RE.findall(comment.body)) & wanted
        if not keys or comment.comment_id is None:
            continue
        wanted -= keys
        try:
            vcs.resolve_thread(pr_number, comment, _RESOLVED_REPLY)
        except Exception as e:
            logger.error("Failed to resolve thread at %s:%s: %s", comment.path, comment.line, e)
            continue
        marked += 1
    return marked
