from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass

# Lower rank = more severe.
SEVERITY_RANK = {"BLOCKER": 0, "CRITICAL": 1, "MAJOR": 2, "MINOR": 3, "INFO": 4}
SEVERITIES = tuple(SEVERITY_RANK)

AI_RULE_ID = "ai-review"


def severity_rank(severity: str) -> int:
    return SEVERITY_RANK.get(severity.upper(), 99)


@dataclass
class Finding:
    """A single reportable issue, from a static rule or from the model."""

    source: str  # "static" | "ai"
    rule_id: str
    file: str
    line: int
    severity: str
    message: str
    end_line: int | None = None
    why: str | None = None
    fix: str | None = None
    diff: str | None = None
    suggestion: str | None = None
    snippet: str | None = None
    issue_key: str = ""

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "rule_id": self.rule_id,
            "file": self.file,
            "line": self.line,
            "end_line": self.end_line,
            "severity": self.severity,
            "message": self.message,
            "issue_key": self.issue_key,
        }


def normalize_message(message: str) -> str:
    # Cut at the first code fence before backticks are stripped; afterwards the fence is gone.
    normalized = message.split("```")[0].lower()
    normalized = re.sub(r"\d+", "", normalized)
    normalized = re.sub(r"['\"`]", "", normalized)
    return re.sub(r"\s+", " ", normalized).strip()


def generate_issue_key(repository_id: int | str, pr_number: int, file_path: str, rule_id: str, message: str) -> str:
    """Deterministic identity of a finding across runs of the same PR.

    Digits and quotes are removed from the message before hashing so that a
    count or a line number inside the wording does not change the key.
    """
    raw = f"{repository_id}:{pr_number}:{file_path}:{rule_id}:{normalize_message(message)}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]
