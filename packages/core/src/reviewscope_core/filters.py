"""Ignore globs and noise suppression.

Two file sets come out of filtering. The static set only honours the
repository's ignore globs: rules are cheap and deterministic, so they see
docs and tests too. The AI set additionally drops noise (lock files, build
output, assets, generated code) and, when the PR contains real logic, the
documentation and test files as well.
"""

from __future__ import annotations

import fnmatch
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Sequence

from reviewscope_core.scoring import score_file

if TYPE_CHECKING:
    from reviewscope_core.diff import ParsedFile

logger = logging.getLogger(__name__)

IGNORE_FILE = ".reviewscopeignore"

# A file scoring at least this much counts as logic or infrastructure.
LOGIC_SCORE_THRESHOLD = 3

_NOISE_RE = re.compile(
    "|".join(
        [
            # lock files
            r"(^|/)(package-lock\.json|yarn\.lock|pnpm-lock\.yaml|bun\.lockb|poetry\.lock|Pipfile\.lock|Cargo\.lock)$",
            # build output
            r"^(dist|build|out|coverage|\.next|\.nuxt|\.output)/",
            # minified code and source maps
            r"\.min\.(js|css)$",
            r"\.map$",
            # binary and static assets
            r"\.(svg|png|jpe?g|gif|ico|webp|bmp|pdf|zip|tar|gz|woff2?|ttf|eot|otf|mp[34]|webm|wav)$",
            # data dumps
            r"\.(geojson|csv|tsv|xlsx?)$",
            # vendored dependencies
            r"(^|/)(vendor|node_modules|third_party)/",
            # environment files
            r"(^|/)\.env(\..*)?$",
            # generated code
            r"(^|/)(generated|codegen)/",
            r"\.(pb\.go|gen\.ts|pb2\.py)$",
            # prompt and system-message assets
            r"(^|/)prompts/",
            r"system-messages?",
        ]
    ),
    re.IGNORECASE,
)
_DOC_RE = re.compile(r"\.(md|markdown|rst|txt)$|(^|/)(LICENSE|CHANGELOG|docs/)", re.IGNORECASE)
_TEST_RE = re.compile(r"\.(test|spec)\.|(^|/)(__tests__|tests?)/|(^|/)test_[^/]*\.py$|_test\.(py|go)$", re.IGNORECASE)


@dataclass
class ReviewSets:
    static_files: list[ParsedFile] = field(default_factory=list)
    ai_files: list[ParsedFile] = field(default_factory=list)


def parse_ignore_file(text: str | None) -> list[str]:
    """Return the glob patterns of a ``.reviewscopeignore`` file, skipping blanks and comments."""
    if not text:
        return []
    patterns = []
    for raw in text.splitlines():
        line = raw.strip()
        if line and not line.startswith("#"):
            patterns.append(line)
    return patterns


def is_excluded(path: str, patterns: Iterable[str]) -> bool:
    """Return True if path matches any ignore pattern.

    Supports:
    - fnmatch globs on the full path: "src/generated/*.py"
    - fnmatch globs on the basename: "*.lock", "*.min.js"
    - Directory names/prefixes: "migrations/", "tests" (matches any file within that tree)
    """
    for pattern in patterns:
        if fnmatch.fnmatch(path, pattern):
            return True
        if fnmatch.fnmatch(path.rsplit("/", 1)[-1], pattern):
            return True
        prefix = pattern.rstrip("/") + "/"
        if path.startswith(prefix) or ("/" + prefix) in path:
            return True
    return False


def is_noise(path: str) -> bool:
    return bool(_NOISE_RE.search(path))


def is_documentation(path: str) -> bool:
    return bool(_DOC_RE.search(path))


def is_test_file(path: str) -> bool:
    return bool(_TEST_RE.search(path))


def select_review_sets(files: Sequence[ParsedFile], ignore_patterns: Iterable[str] = ()) -> ReviewSets:
    patterns = list(ignore_patterns)
    kept = [f for f in files if not is_excluded(f.path, patterns)]
    if len(kept) < len(files):
        logger.info("Ignored %d file(s) via ignore patterns.", len(files) - len(kept))

    ai_files = [f for f in kept if not is_noise(f.path)]
    if any(score_file(f) >= LOGIC_SCORE_THRESHOLD for f in ai_files):
        ai_files = [f for f in ai_files if not (is_documentation(f.path) or is_test_file(f.path))]

    return ReviewSets(static_files=kept, ai_files=ai_files)
