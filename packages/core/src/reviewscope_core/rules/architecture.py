from __future__ import annotations

import re
from typing import TYPE_CHECKING

from reviewscope_core.findings import Finding
from reviewscope_core.rules.base import Rule, RuleContext

if TYPE_CHECKING:
    from reviewscope_core.diff import ParsedFile

_CONTROLLER_PATH_RE = re.compile(r"controller|route|api", re.IGNORECASE)
_DIRECT_DB_RE = re.compile(r"db\.|repository\.|findMany|findOne|executeQuery|session\.query|\.objects\.")
_LARGE_CONTROLLER_ADDITIONS = 50

# Number of consecutive non-trivial added lines that must match to count as a duplicate block.
DUPLICATE_WINDOW = 4
_MIN_SIGNIFICANT_CHARS = 8
_PUNCTUATION_ONLY_RE = re.compile(r"^[\s{}()\[\];,]*$")


class FatControllerRule(Rule):
    id = "fat-controller"
    description = "Business logic or data access in a controller/route layer"
    severity = "MINOR"
    applies_to = ("*controller*", "*route*", "*/api/*")

    def detect(self, ctx: RuleContext) -> list[Finding]:
        if not _CONTROLLER_PATH_RE.search(ctx.file.path):
            return []
        additions = ctx.file.additions
        results = []
        if len(additions) > _LARGE_CONTROLLER_ADDITIONS:
            results.append(
                self.finding(
                    ctx,
                    additions[0].line_number,
                    "Large logic block detected in Controller/Route layer. "
                    "Consider moving business logic to a service.",
                    snippet=f"+{len(additions)} lines",
                )
            )
        for a in additions:
            if _DIRECT_DB_RE.search(a.content):
                results.append(
                    self.finding(
                        ctx,
                        a.line_number,
                        "Direct database access detected in Controller. Use a Service layer.",
                        snippet=a.content.strip(),
                    )
                )
        return results


def _normalize(line: str) -> str | None:
    text = " ".join(line.split())
    if len(text) < _MIN_SIGNIFICANT_CHARS or _PUNCTUATION_ONLY_RE.match(text):
        return None
    return text


def _windows(file: ParsedFile) -> list[tuple[tuple[str, ...], int, int]]:
    """Every run of DUPLICATE_WINDOW significant added lines as (key, first_line, last_line)."""
    additions = file.additions
    normalized = [_normalize(a.content) for a in additions]
    out = []
    for i in range(len(additions) - DUPLICATE_WINDOW + 1):
        chunk = normalized[i : i + DUPLICATE_WINDOW]
        if any(c is None for c in chunk):
            continue
        out.append((tuple(chunk), additions[i].line_number, additions[i + DUPLICATE_WINDOW - 1].line_number))
    return out


def merge_ranges(ranges: list[tuple[int, int]]) -> list[tuple[int, int]]:
    """Merge overlapping or adjacent inclusive line ranges."""
    merged: list[tuple[int, int]] = []
    for start, end in sorted(ranges):
        if merged and start <= merged[-1][1] + 1:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


class DuplicateLogicRule(Rule):
    """Identical blocks of added code appearing in more than one file.

    A duplicated block is reported once per PR: only the lexicographically
    first of the files sharing it (the leader) emits the finding. Matching
    windows inside the leader are merged into contiguous spans so one copied
    block yields one finding. If the leader is later dropped from the set
    the duplicate goes unreported.
    """

    id = "duplicate-logic"
    description = "Identical code blocks detected in multiple files"
    severity = "MINOR"
    applies_to = ("*",)

    def detect(self, ctx: RuleContext) -> list[Finding]:
        path = ctx.file.path
        others: dict[tuple[str, ...], set[str]] = {}
        for other in ctx.files:
            if other.path == path:
                continue
            for key, _, _ in _windows(other):
                others.setdefault(key, set()).add(other.path)

        ranges: list[tuple[int, int]] = []
        partners: list[tuple[int, int, set[str]]] = []
        for key, start, end in _windows(ctx.file):
            sharing = others.get(key)
            if not sharing or min(sharing) < path:
                continue
            ranges.append((start, end))
            partners.append((start, end, sharing))

        results = []
        for start, end in merge_ranges(ranges):
            files = sorted(set().union(*(s for a, b, s in partners if start <= a and b <= end)))
            results.append(
                self.finding(
                    ctx,
                    start,
                    f"Duplicated block also appears in {', '.join(files)}. Extract it into a shared helper.",
                    end_line=end if end != start else None,
                )
            )
        return results
