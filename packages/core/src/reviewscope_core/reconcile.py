"""Finding reconciliation against prior runs of the same PR.

A finding's issue key is its identity across runs. A key that already has
an open thread is suppressed (already reported); an open thread whose key
is missing from the current run is resolved. Threads are never deleted, and
a resolved key that shows up again gets a new thread row.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Iterable, Sequence

from reviewscope_core.filters import is_test_file
from reviewscope_core.findings import Finding, generate_issue_key, severity_rank

if TYPE_CHECKING:
    from reviewscope_core.diff import ParsedFile
    from reviewscope_store.models import CommentThread

logger = logging.getLogger(__name__)

# Test and config files never carry more than this severity on a posted comment.
LOW_STAKES_CEILING = "MINOR"

_CONFIG_RE = re.compile(
    r"(^|/)[^/]*config\.|tsconfig\.json$|package\.json$|\.eslintrc|\.prettierrc|\.github/workflows/"
    r"|\.(ya?ml|toml|ini|cfg)$",
    re.IGNORECASE,
)


@dataclass
class Reconciliation:
    new: list[Finding] = field(default_factory=list)
    suppressed: list[Finding] = field(default_factory=list)
    resolved: list[str] = field(default_factory=list)


def merge_findings(
    static: Iterable[Finding],
    ai: Iterable[Finding],
    repository_id: int,
    pr_number: int,
) -> list[Finding]:
    """Concatenate static then AI findings, drop exact repeats, and assign issue keys.

    Two findings repeat each other when they share file, line and message;
    the first one wins, so a static finding beats an AI restatement of it.
    """
    merged: list[Finding] = []
    seen: set[tuple] = set()
    for finding in [*static, *ai]:
        key = (finding.file, finding.line, finding.message)
        if key in seen:
            continue
        seen.add(key)
        issue_key = generate_issue_key(repository_id, pr_number, finding.file, finding.rule_id, finding.message)
        merged.append(replace(finding, issue_key=issue_key))
    return merged


def reconcile(findings: Sequence[Finding], open_threads: Iterable[CommentThread]) -> Reconciliation:
    open_keys = {t.issue_key for t in open_threads}
    current_keys = {f.issue_key for f in findings}

    result = Reconciliation()
    for finding in findings:
        if finding.issue_key in open_keys:
            result.suppressed.append(finding)
        else:
            result.new.append(finding)
    result.resolved = sorted(open_keys - current_keys)
    return result


def is_config_file(path: str) -> bool:
    return bool(_CONFIG_RE.search(path))


def _normalize_code(code: str) -> str:
    return re.sub(r"\s+", "", code)


def validate_against_diff(
    findings: Iterable[Finding], files: Sequence[ParsedFile]
) -> tuple[list[Finding], list[Finding]]:
    """Keep only findings the code-review API will accept.

    A finding survives when its file is part of the diff and its whole
    line range lies inside one hunk on the new side. Suggestions are kept
    only when every targeted line is an added line; a suggestion identical
    to the current code (ignoring whitespace) drops the finding. Findings on
    test and config files are capped at MINOR.

    Returns ``(valid, dropped)``.
    """
    by_path = {f.path: f for f in files}
    valid: list[Finding] = []
    dropped: list[Finding] = []

    for finding in findings:
        parsed = by_path.get(finding.file)
        if parsed is None or finding.line < 1:
            dropped.append(finding)
            continue
        end = finding.end_line if finding.end_line and finding.end_line > finding.line else finding.line
        if not parsed.covers(finding.line, "RIGHT", end):
            dropped.append(finding)
            continue

        if finding.suggestion is not None:
            added = {a.line_number: a.content for a in parsed.additions}
            targeted = range(finding.line, end + 1)
            if all(n in added for n in targeted):
                current = "\n".join(added[n] for n in targeted)
                if _normalize_code(current) == _normalize_code(finding.suggestion):
                    dropped.append(finding)
                    continue
            else:
                # Context lines are not stored, so the suggestion cannot be checked.
                finding = replace(finding, suggestion=None, fix=None)

        if (is_test_file(finding.file) or is_config_file(finding.file)) and severity_rank(
            finding.severity
        ) < severity_rank(LOW_STAKES_CEILING):
            finding = replace(finding, severity=LOW_STAKES_CEILING)

        valid.append(finding)

    if dropped:
        logger.info("Dropped %d finding(s) that failed diff validation.", len(dropped))
    return valid, dropped
