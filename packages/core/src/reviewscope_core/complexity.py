"""PR complexity scoring used to pick a model tier.

  trivial  (0-2)   config, docs, one-line fixes   → cheapest model
  simple   (3-6)   isolated fixes, small refactors → cheapest model
  complex  (7-10)  multi-file or risky changes     → strongest model
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from reviewscope_core.diff import ParsedFile

TRIVIAL = "trivial"
SIMPLE = "simple"
COMPLEX = "complex"

HIGH_RISK_FILE_SCORE = 7

_PATH_RISK = [
    (re.compile(r"\b(auth|security|crypto|password|secret|token|key)\b", re.IGNORECASE), 9),
    (re.compile(r"\b(db|database|schema|migration|sql)\b", re.IGNORECASE), 8),
    (re.compile(r"\b(api|routes|handlers|middleware|core|service)\b", re.IGNORECASE), 7),
    (re.compile(r"\.(json|yaml|toml|lock|config)$", re.IGNORECASE), 4),
    (re.compile(r"\.(test|spec)\.|__tests__|test/"), 1),
    (re.compile(r"\.(md|txt|rst)$|^(README|CHANGELOG|docs?)/", re.IGNORECASE), 0),
    (re.compile(r"\.(js|ts|tsx|jsx|py|go|rb|php|java|cs)$"), 5),
]
_DEFAULT_PATH_RISK = 3

_LANGUAGE_ALIASES = {"js": "javascript", "ts": "typescript", "tsx": "typescript", "py": "python", "yml": "yaml"}

_RISK_PATTERNS = [
    (re.compile(r"\b(eval|exec|system|shell|spawn)\s*\(", re.IGNORECASE), 2),
    (re.compile(r"\binnerHTML\s*=|dangerouslySetInnerHTML", re.IGNORECASE), 2),
    (re.compile(r"\b(password|secret|token|key|apiKey)\s*[:=]", re.IGNORECASE), 3),
    (re.compile(r"\bcatch\s*\(\w+\)\s*\{\s*\}"), 1),
    (re.compile(r"\b(INSERT|UPDATE|DELETE|DROP|ALTER)\b", re.IGNORECASE), 2),
    (re.compile(r"\basync\s+\w+|await|Promise\.all|\.then\("), 1),
]


@dataclass
class ComplexityFactors:
    file_count: int = 0
    lines_changed: int = 0
    file_risk: float = 0.0
    language_diversity: int = 0
    risk_patterns: int = 0


@dataclass
class ComplexityScore:
    score: int
    tier: str
    reason: str
    factors: ComplexityFactors = field(default_factory=ComplexityFactors)

    def to_dict(self) -> dict:
        return asdict(self)


def path_risk(path: str) -> int:
    for pattern, risk in _PATH_RISK:
        if pattern.search(path):
            return risk
    return _DEFAULT_PATH_RISK


def language_of(path: str) -> str:
    match = re.search(r"\.(\w+)$", path)
    if not match:
        return "unknown"
    ext = match.group(1).lower()
    return _LANGUAGE_ALIASES.get(ext, ext)


def count_risk_patterns(additions: Sequence[str]) -> int:
    content = "\n".join(additions)
    return sum(weight for pattern, weight in _RISK_PATTERNS if pattern.search(content))


def calculate_complexity(file_count: int, files: Sequence[ParsedFile]) -> ComplexityScore:
    """Score a PR from 0 to 10.

    file count (0-3) + added lines (0-2) + high-risk files (0-3)
    + more than one language (0-1) + risky code patterns (0-2).
    """
    lines_changed = sum(len(f.additions) for f in files)
    risks = [path_risk(f.path) for f in files]
    patterns = sum(count_risk_patterns([a.content for a in f.additions]) for f in files)
    high_risk = sum(1 for r in risks if r >= HIGH_RISK_FILE_SCORE)
    avg_risk = sum(risks) / len(risks) if risks else 0.0
    diversity = 1 if len({language_of(f.path) for f in files}) > 1 else 0

    score = 0
    if file_count <= 1:
        score += 0
    elif file_count <= 3:
        score += 1
    elif file_count <= 7:
        score += 2
    else:
        score += 3

    if lines_changed > 100:
        score += 2
    elif lines_changed > 20:
        score += 1

    score += min(3, high_risk)
    score += diversity

    if patterns > 5:
        score += 2
    elif patterns > 2:
        score += 1

    score = min(10, max(0, score))

    if score <= 2:
        tier, reason = TRIVIAL, "Config, docs, or single-line changes"
    elif score <= 6:
        tier, reason = SIMPLE, "Isolated bug fixes or small refactors"
    else:
        tier, reason = COMPLEX, "Multi-file changes or architectural updates"

    return ComplexityScore(
        score=score,
        tier=tier,
        reason=reason,
        factors=ComplexityFactors(
            file_count=file_count,
            lines_changed=lines_changed,
            file_risk=round(avg_risk, 1),
            language_diversity=diversity,
            risk_patterns=patterns,
        ),
    )
