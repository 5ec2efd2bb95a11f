"""Tests for model-output parsing, the severity policy and rule validations."""

import json

import pytest

from reviewscope_core.findings import Finding
from reviewscope_core.response import (
    FALLBACK_SUMMARY,
    RuleValidation,
    apply_rule_validations,
    extract_json_object,
    normalize_severity,
    parse_review_response,
    prioritize_comments,
)


def ai_finding(message, severity="MAJOR", why=None, file="src/a.py", line=3):
    return Finding(source="ai", rule_id="ai-review", file=file, line=line, severity=severity, message=message, why=why)


def static_finding(rule_id="todo-fixme", severity="MINOR", line=3):
    return Finding(source="static", rule_id=rule_id, file="src/a.py", line=line, severity=severity, message="m")


class TestExtractJson:
    def test_plain(self):
        assert extract_json_object('{"summary": "ok"}') == {"summary": "ok"}

    def test_fenced(self):
        assert extract_json_object('Here:\n```json\n{"summary": "ok"}\n```\nThanks') == {"summary": "ok"}

    def test_embedded_with_braces_in_strings(self):
        raw = 'Sure! {"summary": "use {x}", "comments": []} hope that helps'
        assert extract_json_object(raw) == {"summary": "use {x}", "comments": []}

    def test_not_json(self):
        assert extract_json_object("I could not review this.") is None

    def test_array_is_rejected(self):
        assert extract_json_object("[1, 2]") is None


class TestNormalizeSeverity:
    def test_unjustified_critical_is_downgraded(self):
        assert normalize_severity(ai_finding("Variable could be renamed", "CRITICAL")).severity == "MAJOR"

    def test_justified_critical_is_kept(self):
        finding = ai_finding("SQL injection through the name parameter", "CRITICAL")
        assert normalize_severity(finding).severity == "CRITICAL"

    def test_justified_by_why(self):
        finding = ai_finding("Unchecked index", "CRITICAL", why="This will crash on empty input")
        assert normalize_severity(finding).severity == "CRITICAL"

    def test_blocker_is_not_capped(self):
        assert normalize_severity(ai_finding("Rename this variable for clarity", "BLOCKER")).severity == "BLOCKER"

    def test_logging_remark_becomes_info(self):
        assert normalize_severity(ai_finding("Remove console.log before merge", "MAJOR")).severity == "INFO"

    def test_architecture_opinion_capped(self):
        assert normalize_severity(ai_finding("This module structure is hard to follow", "MAJOR")).severity == "MINOR"

    def test_unknown_severity(self):
        assert normalize_severity(ai_finding("Off-by-one in loop", "URGENT")).severity == "MINOR"

    def test_prompt_files_are_dropped(self):
        assert normalize_severity(ai_finding("Prompt is unclear", file="server/prompts/review.md")) is None


class TestPrioritizeComments:
    def test_must_include_exceed_limit(self):
        comments = [ai_finding(f"crash {i}", "CRITICAL") for i in range(4)] + [ai_finding("minor", "MINOR")]
        kept, omitted = prioritize_comments(comments, max_comments=2)
        assert [c.severity for c in kept] == ["CRITICAL"] * 4
        assert omitted == 1

    def test_fills_by_severity(self):
        comments = [ai_finding("a", "INFO"), ai_finding("b", "MAJOR"), ai_finding("c", "MINOR")]
        kept, omitted = prioritize_comments(comments, max_comments=2)
        assert [c.message for c in kept] == ["b", "c"]
        assert omitted == 1


class TestParseReviewResponse:
    def test_full_response(self):
        raw = json.dumps(
            {
                "assessment": {"riskLevel": "Low", "mergeReadiness": "Looks Good"},
                "summary": "Small safe change.",
                "comments": [
                    {
                        "file": "src/a.py",
                        "line": 4,
                        "endLine": 6,
                        "severity": "minor",
                        "message": "Edge case",
                        "fix": "Guard it",
                    }
                ],
                "ruleValidations": [
                    {"ruleId": "todo-fixme", "file": "src/a.py", "line": 3, "status": "False-Positive"}
                ],
            }
        )
        result = parse_review_response(raw)
        assert not result.parse_failed
        assert (result.risk_level, result.merge_readiness) == ("Low", "Looks Good")
        assert len(result.comments) == 1
        comment = result.comments[0]
        assert (comment.file, comment.line, comment.end_line, comment.severity) == ("src/a.py", 4, 6, "MINOR")
        assert comment.source == "ai"
        assert comment.rule_id == "ai-review"
        assert result.rule_validations[0].status == "false-positive"

    @pytest.mark.parametrize("raw", [None, "", "not json at all"])
    def test_fallback(self, raw):
        result = parse_review_response(raw)
        assert result.parse_failed
        assert result.summary == FALLBACK_SUMMARY
        assert (result.risk_level, result.merge_readiness) == ("High", "Blocked")
        assert result.comments == []

    def test_malformed_entries_are_skipped(self):
        raw = json.dumps({"summary": "s", "comments": ["oops", {"line": "x"}, {"message": "Real issue", "line": "7"}]})
        result = parse_review_response(raw)
        assert [(c.message, c.line) for c in result.comments] == [("Real issue", 7)]

    def test_omitted_count_in_summary(self):
        comments = [{"file": "a.py", "line": i, "severity": "MINOR", "message": f"m{i}"} for i in range(1, 10)]
        result = parse_review_response(json.dumps({"summary": "Done.", "comments": comments}), max_comments=7)
        assert len(result.comments) == 7
        assert result.omitted == 2
        assert result.summary == "Done. (2 lower-priority findings omitted)"

    def test_missing_assessment_defaults(self):
        result = parse_review_response('{"summary": "s"}')
        assert (result.risk_level, result.merge_readiness) == ("Medium", "Needs Changes")


class TestApplyRuleValidations:
    def test_false_positive_dropped(self):
        validations = [RuleValidation("todo-fixme", "src/a.py", 3, "false-positive")]
        assert apply_rule_validations([static_finding()], validations) == []

    def test_false_positive_on_critical_kept(self):
        finding = static_finding("hardcoded-secret", "CRITICAL")
        validations = [RuleValidation("hardcoded-secret", "src/a.py", 3, "false-positive")]
        assert apply_rule_validations([finding], validations) == [finding]

    def test_contextual_overrides_severity(self):
        validations = [RuleValidation("todo-fixme", "src/a.py", 3, "contextual", severity="INFO")]
        assert apply_rule_validations([static_finding()], validations)[0].severity == "INFO"

    def test_verdict_for_other_line_ignored(self):
        validations = [RuleValidation("todo-fixme", "src/a.py", 99, "false-positive")]
        assert len(apply_rule_validations([static_finding()], validations)) == 1
