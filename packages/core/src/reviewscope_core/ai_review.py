"""AI review orchestration: prompt → provider → parsed, normalized findings.

Large PRs on plans with batching are split into fixed-size batches that are
reviewed one after another. Batch summaries are concatenated; the risk and
merge-readiness assessment of the last batch is taken as the overall one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

from reviewscope_core.complexity import COMPLEX, TRIVIAL
from reviewscope_core.prompts import REVIEW_SYSTEM_PROMPT, build_review_prompt, render_diff
from reviewscope_core.response import DEFAULT_MAX_COMMENTS, RuleValidation, parse_review_response
from reviewscope_core.routing import MODELS

if TYPE_CHECKING:
    from reviewscope_core.complexity import ComplexityScore
    from reviewscope_core.diff import ParsedFile
    from reviewscope_core.findings import Finding
    from reviewscope_core.job import ReviewJob
    from reviewscope_core.plans import PlanLimits
    from reviewscope_core.providers.base import BaseProvider
    from reviewscope_core.routing import ModelRoute

logger = logging.getLogger(__name__)

BATCH_SIZE = 10
CONFIDENCE_LEVELS = ("low", "medium", "high")


@dataclass
class AIReviewResult:
    summary: str
    comments: list[Finding] = field(default_factory=list)
    rule_validations: list[RuleValidation] = field(default_factory=list)
    risk_level: str = "Medium"
    merge_readiness: str = "Needs Changes"
    confidence: str = "high"
    model: str = ""
    batches: int = 1
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def assessment(self) -> dict:
        return {
            "risk_level": self.risk_level,
            "merge_readiness": self.merge_readiness,
            "confidence": self.confidence,
        }


def lower_confidence(level: str) -> str:
    idx = CONFIDENCE_LEVELS.index(level) if level in CONFIDENCE_LEVELS else 0
    return CONFIDENCE_LEVELS[max(0, idx - 1)]


def _is_strong(model: str) -> bool:
    return any(m.name == model and m.strong for m in MODELS)


def assess_confidence(
    complexity: ComplexityScore,
    route: ModelRoute,
    has_context: bool,
    degraded: bool = False,
    parse_failed: bool = False,
) -> str:
    """high by default, then lowered for each reason to trust the review less."""
    if parse_failed:
        return "low"
    confidence = "high"
    if complexity.tier == COMPLEX and not _is_strong(route.model):
        confidence = "medium"
    if not has_context and complexity.tier != TRIVIAL:
        confidence = lower_confidence(confidence)
    if degraded:
        confidence = lower_confidence(confidence)
    return confidence


def batch_files(files: Sequence[ParsedFile], size: int = BATCH_SIZE) -> list[list[ParsedFile]]:
    return [list(files[i : i + size]) for i in range(0, len(files), size)]


class AIReviewer:
    """Run the model review for one job with an injected provider client."""

    def __init__(
        self,
        provider: BaseProvider,
        route: ModelRoute,
        temperature: float | None = None,
        max_comments: int = DEFAULT_MAX_COMMENTS,
        batch_size: int = BATCH_SIZE,
    ):
        self.provider = provider
        self.route = route
        self.temperature = temperature
        self.max_comments = max_comments
        self.batch_size = batch_size

    def review(
        self,
        job: ReviewJob,
        files: Sequence[ParsedFile],
        limits: PlanLimits,
        complexity: ComplexityScore,
        static_findings: Sequence[Finding] = (),
        issue_context: str = "",
        related_context: str = "",
        rag_context: str = "",
        guidelines: str | None = None,
        degraded: bool = False,
    ) -> AIReviewResult:
        if not limits.allow_custom_prompts:
            guidelines = None

        if limits.allow_batching and len(files) > self.batch_size:
            batches = batch_files(files, self.batch_size)
        else:
            batches = [list(files)]

        comments: list[Finding] = []
        validations: list[RuleValidation] = []
        summaries: list[str] = []
        usage: dict[str, int] = {}
        last = None
        parse_failed = False

        for idx, batch in enumerate(batches, 1):
            paths = {f.path for f in batch}
            prompt = build_review_prompt(
                pr_title=job.pr_title,
                pr_body=job.pr_body,
                diff=render_diff(batch),
                issue_context=issue_context,
                related_context=related_context,
                rag_context=rag_context,
                complexity=complexity,
                static_findings=[f for f in static_findings if f.file in paths],
                guidelines=guidelines,
                context_budget=self.route.context_budget,
            )
            if len(batches) > 1:
                logger.info("Reviewing batch %d/%d (%d files) with %s", idx, len(batches), len(batch), self.route.model)
            response = self.provider.chat(
                [
                    {"role": "system", "content": REVIEW_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                model=self.route.model,
                temperature=self.temperature,
                response_format="json",
            )
            for key, value in response.usage.items():
                usage[key] = usage.get(key, 0) + value

            parsed = parse_review_response(response.content, self.max_comments)
            parse_failed = parse_failed or parsed.parse_failed
            comments.extend(parsed.comments)
            validations.extend(parsed.rule_validations)
            summaries.append(parsed.summary)
            last = parsed

        if len(batches) > 1:
            summary = (
                f"Automated review for {len(files)} files split into {len(batches)} batches.\n"
                + "".join(f"\n\n### Batch {i} Review\n{s}" for i, s in enumerate(summaries, 1))
            )
        else:
            summary = summaries[0]

        return AIReviewResult(
            summary=summary,
            comments=comments,
            rule_validations=validations,
            risk_level=last.risk_level,
            merge_readiness=last.merge_readiness,
            confidence=assess_confidence(
                complexity,
                self.route,
                has_context=bool(rag_context or related_context),
                degraded=degraded,
                parse_failed=parse_failed,
            ),
            model=self.route.model,
            batches=len(batches),
            usage=usage,
        )
