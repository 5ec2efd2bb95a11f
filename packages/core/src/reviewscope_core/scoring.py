"""Path-based risk scoring and the per-plan file budget.

A higher score means the file is more worth a model's attention. Scores are
computed from the path and the diff size only, never from file content, so
they are stable across re-runs of the same diff.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from reviewscope_core.diff import ParsedFile

logger = logging.getLogger(__name__)

_BACKEND_DIRS = ("src/", "api/", "server/", "worker/")
_HIGH_RISK_RE = re.compile(r"auth|security|permission|secret|middleware|apikey|token")
_INFRA_RE = re.compile(r"\.env|docker|\.github/workflows|tsconfig|package\.json|netlify\.toml|vercel\.json")
_SOURCE_RE = re.compile(r"\.(ts|tsx|js|jsx|py|go|rs|java|c|cpp|h|hpp|rb|php)$")
_DATABASE_MARKERS = ("db/", "schema", "model")
_UI_DIRS = ("components/", "ui/", "styles/")
_TEST_RE = re.compile(r"test|spec|__tests__")

# Generated and lock files always score zero, whatever their path suggests.
_ZERO_SCORE_RE = re.compile(
    r"(package-lock\.json|yarn\.lock|pnpm-lock\.yaml|poetry\.lock|cargo\.lock|\.lock)$"
    r"|(^|/)(generated|codegen)/"
    r"|\.(pb\.go|gen\.ts|min\.js|min\.css|map)$"
)

LARGE_FILE_LINES = 300


def score_file(file: ParsedFile) -> int:
    path = file.path.lower()
    if _ZERO_SCORE_RE.search(path):
        return 0

    score = 0
    if any(d in path for d in _BACKEND_DIRS):
        score += 3
    if _HIGH_RISK_RE.search(path):
        score += 7
    if _INFRA_RE.search(path):
        score += 5
    if _SOURCE_RE.search(path):
        score += 2
    if file.line_count > LARGE_FILE_LINES:
        score += 2
    if any(m in path for m in _DATABASE_MARKERS):
        score += 5
    if any(d in path for d in _UI_DIRS):
        score -= 2
    if _TEST_RE.search(path):
        score -= 5
    if path.endswith(".md"):
        score -= 8
    return max(0, score)


def sort_and_limit_files(files: Sequence[ParsedFile], max_files: int) -> list[ParsedFile]:
    """Return the ``max_files`` highest-scoring files, highest first.

    ``sorted`` is stable, so files with equal scores keep their diff order.
    """
    ranked = sorted(files, key=score_file, reverse=True)
    if len(ranked) > max_files:
        logger.warning(
            "Capped review at %d files. Skipped %d lower-priority file(s).",
            max_files,
            len(ranked) - max_files,
        )
    return ranked[:max_files]
