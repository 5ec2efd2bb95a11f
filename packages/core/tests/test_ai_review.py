"""Tests for AI review orchestration: batching, prompt inputs and confidence."""

import json

import pytest

from reviewscope_core.ai_review import AIReviewer, assess_confidence, batch_files, lower_confidence
from reviewscope_core.complexity import COMPLEX, SIMPLE, TRIVIAL, ComplexityScore
from reviewscope_core.diff import DiffLine, Hunk, ParsedFile
from reviewscope_core.exceptions import ProviderError
from reviewscope_core.findings import Finding
from reviewscope_core.job import ReviewJob
from reviewscope_core.plans import get_plan_limits
from reviewscope_core.providers.base import BaseProvider, ChatResponse
from reviewscope_core.routing import ModelRoute

JOB = ReviewJob(installation_id=1, repository_id=10, repository_full_name="acme/api", pr_number=7, head_sha="abc")
ROUTE = ModelRoute("openai", "gpt-4o-mini", 9_000, "Simple changes")
FREE, PRO, TEAM = get_plan_limits(None), get_plan_limits(7), get_plan_limits(8)


def make_files(n):
    return [
        ParsedFile(path=f"src/m{i}.py", hunks=[Hunk(1, 0, 1, 1)], additions=[DiffLine(1, "x = compute()")])
        for i in range(n)
    ]


def response(summary="Looks fine.", comments=(), risk="Low", readiness="Looks Good"):
    return json.dumps(
        {
            "assessment": {"riskLevel": risk, "mergeReadiness": readiness},
            "summary": summary,
            "comments": list(comments),
        }
    )


class ScriptedProvider(BaseProvider):
    def __init__(self, replies):
        self.replies = list(replies)
        self.prompts = []

    def _call_api(self, messages, model, temperature, response_format):
        self.prompts.append(messages[-1]["content"])
        return ChatResponse(content=self.replies.pop(0), usage={"input_tokens": 100, "output_tokens": 10})


class FailingProvider(BaseProvider):
    MAX_RETRIES = 1

    def _call_api(self, messages, model, temperature, response_format):
        raise TimeoutError("upstream timeout")


def simple():
    return ComplexityScore(score=4, tier=SIMPLE, reason="Isolated change")


class TestAIReviewer:
    def test_single_call(self):
        comment = {"file": "src/m0.py", "line": 1, "severity": "MAJOR", "message": "compute() result unchecked"}
        provider = ScriptedProvider([response("One issue.", [comment], risk="Medium", readiness="Needs Changes")])
        result = AIReviewer(provider, ROUTE).review(JOB, make_files(3), PRO, simple(), related_context="ctx")

        assert len(provider.prompts) == 1
        assert result.summary == "One issue."
        assert [c.message for c in result.comments] == ["compute() result unchecked"]
        assert result.assessment == {"risk_level": "Medium", "merge_readiness": "Needs Changes", "confidence": "high"}
        assert result.usage == {"input_tokens": 100, "output_tokens": 10}
        assert result.batches == 1

    def test_batches_on_team_plan(self):
        provider = ScriptedProvider([response("A"), response("B"), response("C", risk="High", readiness="Blocked")])
        result = AIReviewer(provider, ROUTE, batch_size=10).review(JOB, make_files(23), TEAM, simple())

        assert len(provider.prompts) == 3
        assert result.batches == 3
        assert result.summary.startswith("Automated review for 23 files split into 3 batches.")
        assert "### Batch 2 Review\nB" in result.summary
        assert (result.risk_level, result.merge_readiness) == ("High", "Blocked")
        assert result.usage == {"input_tokens": 300, "output_tokens": 30}

    def test_no_batching_without_plan_support(self):
        provider = ScriptedProvider([response()])
        AIReviewer(provider, ROUTE, batch_size=10).review(JOB, make_files(23), PRO, simple())
        assert len(provider.prompts) == 1

    def test_static_findings_only_sent_with_their_batch(self):
        finding = Finding(
            source="static", rule_id="todo-fixme", file="src/m15.py", line=1, severity="INFO", message="TODO"
        )
        provider = ScriptedProvider([response(), response()])
        reviewer = AIReviewer(provider, ROUTE, batch_size=10)
        reviewer.review(JOB, make_files(20), TEAM, simple(), static_findings=[finding])
        assert "src/m15.py:1" not in provider.prompts[0]
        assert "src/m15.py:1" in provider.prompts[1]

    @pytest.mark.parametrize("limits,included", [(FREE, False), (PRO, True)])
    def test_custom_guidelines_follow_plan(self, limits, included):
        provider = ScriptedProvider([response()])
        AIReviewer(provider, ROUTE).review(JOB, make_files(1), limits, simple(), guidelines="Always check tenancy.")
        assert ("Always check tenancy." in provider.prompts[0]) is included

    def test_unparseable_output_gives_low_confidence(self):
        provider = ScriptedProvider(["Sorry, I cannot help with that."])
        result = AIReviewer(provider, ROUTE).review(JOB, make_files(1), PRO, simple())
        assert result.confidence == "low"
        assert result.comments == []

    def test_provider_error_propagates(self):
        with pytest.raises(ProviderError):
            AIReviewer(FailingProvider(), ROUTE).review(JOB, make_files(1), PRO, simple())


class TestConfidence:
    def test_high_with_context(self):
        assert assess_confidence(simple(), ROUTE, has_context=True) == "high"

    def test_trivial_change_needs_no_context(self):
        trivial = ComplexityScore(score=1, tier=TRIVIAL, reason="docs")
        assert assess_confidence(trivial, ROUTE, has_context=False) == "high"

    def test_missing_context_lowers(self):
        assert assess_confidence(simple(), ROUTE, has_context=False) == "medium"

    def test_complex_on_cheap_model(self):
        complex_ = ComplexityScore(score=8, tier=COMPLEX, reason="big")
        assert assess_confidence(complex_, ROUTE, has_context=True) == "medium"
        strong = ModelRoute("openai", "gpt-4o", 20_000, "Complex changes")
        assert assess_confidence(complex_, strong, has_context=True) == "high"

    def test_degraded_lowers(self):
        assert assess_confidence(simple(), ROUTE, has_context=False, degraded=True) == "low"

    def test_lower_confidence_floors_at_low(self):
        assert lower_confidence("low") == "low"


def test_batch_files():
    batches = batch_files(make_files(23), 10)
    assert [len(b) for b in batches] == [10, 10, 3]
