"""Lenient parsing and normalization of model output.

Model output is untrusted text. parse_review_response never raises: when no
JSON object can be recovered it returns a Blocked/High-risk result with no
comments.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Iterable, Sequence

from reviewscope_core.findings import AI_RULE_ID, SEVERITIES, Finding, severity_rank

logger = logging.getLogger(__name__)

DEFAULT_MAX_COMMENTS = 7
MUST_INCLUDE = frozenset({"BLOCKER", "CRITICAL"})

FALLBACK_SUMMARY = "Failed to parse AI response."

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")

_IGNORED_PATH_MARKERS = ("prompts/", "system-messages", "system-message")
_INFO_MARKERS = ("console.", "logging", "print statement", "test coverage", "missing test", "naming")
_OPINION_MARKERS = ("should be split", "architecture", "structure", "reusability")
_CRITICAL_MARKERS = (
    "crash",
    "leak",
    "security",
    "vulnerab",
    "race condition",
    "corrupt",
    "integrity",
    "data loss",
    "unhandled promise",
    "injection",
)
_CRITICAL_WHY_MARKERS = ("crash", "exploit", "data loss")


@dataclass
class RuleValidation:
    rule_id: str
    file: str
    line: int
    status: str  # "valid" | "false-positive" | "contextual"
    severity: str | None = None
    explanation: str | None = None


@dataclass
class ReviewResponse:
    summary: str
    risk_level: str = "Medium"
    merge_readiness: str = "Needs Changes"
    comments: list[Finding] = field(default_factory=list)
    rule_validations: list[RuleValidation] = field(default_factory=list)
    parse_failed: bool = False
    omitted: int = 0


def _fallback() -> ReviewResponse:
    return ReviewResponse(
        summary=FALLBACK_SUMMARY,
        risk_level="High",
        merge_readiness="Blocked",
        parse_failed=True,
    )


def _balanced_object(text: str) -> str | None:
    """Return the first brace-balanced ``{...}`` span, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        start = text.find("{", start + 1)
    return None


def extract_json_object(raw: str) -> dict | None:
    candidates = []
    fence = _FENCE_RE.search(raw)
    if fence:
        candidates.append(fence.group(1).strip())
    candidates.append(raw.strip())
    balanced = _balanced_object(raw)
    if balanced:
        candidates.append(balanced)

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def _as_int(value, default: int | None = 0) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_text(value) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def normalize_severity(finding: Finding) -> Finding | None:
    """Apply the severity policy to one model finding.

    Returns None for findings on prompt or system-message files. Logging,
    naming and test-coverage remarks become INFO; architecture opinions
    become MINOR; CRITICAL survives only when the wording describes a crash,
    a security problem, a leak or data loss. BLOCKER is left to the model.
    """
    path = finding.file.lower()
    if any(marker in path for marker in _IGNORED_PATH_MARKERS):
        return None

    message = finding.message.lower()
    why = (finding.why or "").lower()
    severity = finding.severity.upper()
    if severity not in SEVERITIES:
        severity = "MINOR"

    if any(marker in message for marker in _INFO_MARKERS) or "naming" in why:
        severity = "INFO"

    if severity != "INFO" and any(marker in message for marker in _OPINION_MARKERS):
        severity = "MINOR"

    if severity == "CRITICAL":
        justified = any(marker in message for marker in _CRITICAL_MARKERS) or any(
            marker in why for marker in _CRITICAL_WHY_MARKERS
        )
        if not justified:
            severity = "MAJOR"

    return replace(finding, severity=severity)


def prioritize_comments(
    comments: Sequence[Finding], max_comments: int = DEFAULT_MAX_COMMENTS
) -> tuple[list[Finding], int]:
    """Keep every BLOCKER/CRITICAL, then fill up to ``max_comments`` by severity.

    Returns the kept findings (most severe first, stable within a severity)
    and the number of lower-priority findings dropped.
    """
    ordered = sorted(comments, key=lambda c: severity_rank(c.severity))
    must = [c for c in ordered if c.severity in MUST_INCLUDE]
    optional = [c for c in ordered if c.severity not in MUST_INCLUDE]
    slots = max(0, max_comments - len(must))
    return must + optional[:slots], max(0, len(optional) - slots)


def _parse_comment(item: dict) -> Finding | None:
    message = _as_text(item.get("message")) or ""
    why = _as_text(item.get("why"))
    if not message and not why:
        return None
    end_line = _as_int(item.get("endLine", item.get("end_line")), default=None)
    return Finding(
        source="ai",
        rule_id=AI_RULE_ID,
        file=_as_text(item.get("file")) or "unknown",
        line=_as_int(item.get("line")) or 0,
        end_line=end_line or None,
        severity=(_as_text(item.get("severity")) or "MINOR").upper(),
        message=message or (why or "").split("\n")[0],
        why=why,
        fix=_as_text(item.get("fix")),
        diff=_as_text(item.get("diff")),
        suggestion=_as_text(item.get("suggestion")),
    )


def _parse_validation(item: dict) -> RuleValidation | None:
    rule_id = _as_text(item.get("ruleId", item.get("rule_id")))
    if not rule_id:
        return None
    severity = _as_text(item.get("severity"))
    return RuleValidation(
        rule_id=rule_id,
        file=_as_text(item.get("file")) or "",
        line=_as_int(item.get("line")) or 0,
        status=(_as_text(item.get("status")) or "valid").lower(),
        severity=severity.upper() if severity else None,
        explanation=_as_text(item.get("explanation") or item.get("message")),
    )


def parse_review_response(raw: str | None, max_comments: int = DEFAULT_MAX_COMMENTS) -> ReviewResponse:
    if not raw:
        logger.warning("Empty AI response; using fallback result.")
        return _fallback()

    parsed = extract_json_object(raw)
    if parsed is None:
        logger.warning("Could not parse AI response as JSON: %s", raw[:200])
        return _fallback()

    comments: list[Finding] = []
    raw_comments = parsed.get("comments")
    for item in raw_comments if isinstance(raw_comments, list) else []:
        if not isinstance(item, dict):
            continue
        finding = _parse_comment(item)
        if finding is None:
            continue
        normalized = normalize_severity(finding)
        if normalized is not None:
            comments.append(normalized)

    validations: list[RuleValidation] = []
    raw_validations = parsed.get("ruleValidations")
    for item in raw_validations if isinstance(raw_validations, list) else []:
        if isinstance(item, dict):
            validation = _parse_validation(item)
            if validation is not None:
                validations.append(validation)

    kept, omitted = prioritize_comments(comments, max_comments)

    summary = _as_text(parsed.get("summary")) or "Review completed."
    if omitted:
        summary += f" ({omitted} lower-priority findings omitted)"

    assessment = parsed.get("assessment")
    if not isinstance(assessment, dict):
        assessment = {}
    return ReviewResponse(
        summary=summary,
        risk_level=_as_text(assessment.get("riskLevel")) or "Medium",
        merge_readiness=_as_text(assessment.get("mergeReadiness")) or "Needs Changes",
        comments=kept,
        rule_validations=validations,
        omitted=omitted,
    )


def apply_rule_validations(static: Iterable[Finding], validations: Sequence[RuleValidation]) -> list[Finding]:
    """Apply the model's verdicts to static findings.

    ``false-positive`` drops a finding unless it is BLOCKER or CRITICAL;
    ``contextual`` replaces the severity with the model's override. Findings
    without a verdict are kept as they are.
    """
    verdicts = {(v.rule_id, v.file, v.line): v for v in validations}
    result: list[Finding] = []
    for finding in static:
        verdict = verdicts.get((finding.rule_id, finding.file, finding.line))
        if verdict is None or verdict.status == "valid":
            result.append(finding)
        elif verdict.status == "false-positive":
            if finding.severity in MUST_INCLUDE:
                result.append(finding)
            else:
                logger.debug(
                    "Dropping static finding %s at %s:%d as a false positive.",
                    finding.rule_id,
                    finding.file,
                    finding.line,
                )
        elif verdict.status == "contextual" and verdict.severity in SEVERITIES:
            result.append(replace(finding, severity=verdict.severity))
        else:
            result.append(finding)
    return result
