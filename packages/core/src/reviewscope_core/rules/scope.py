"""PR-level scope checks: does the change match its issue and its size."""

from __future__ import annotations

import re

from reviewscope_core.findings import Finding
from reviewscope_core.rules.base import Rule, RuleContext, first_added_line

_MIN_KEYWORD_LENGTH = 6
_OVERENGINEERING_ADDITIONS = 100
_OVERENGINEERING_MAX_DELETIONS = 5


class IssueMismatchRule(Rule):
    """Flags a PR whose linked issue shares no keywords with the change.

    Runs once per PR, on the first file of the set.
    """

    id = "issue-mismatch"
    description = "PR changes do not seem to align with the linked issue"
    severity = "MAJOR"
    applies_to = ("*",)

    def detect(self, ctx: RuleContext) -> list[Finding]:
        if ctx.files and ctx.file.path != ctx.files[0].path:
            return []
        if not ctx.pr_body or not ctx.issue_context:
            return []

        issue_keywords = [w for w in re.split(r"\s+", ctx.issue_context.lower()) if len(w) >= _MIN_KEYWORD_LENGTH]
        if not issue_keywords:
            return []
        pr_body = ctx.pr_body.lower()
        changed = " ".join(f.path.lower() for f in (ctx.files or [ctx.file]))
        if any(k in changed or k in pr_body for k in issue_keywords):
            return []
        return [
            self.finding(
                ctx,
                first_added_line(ctx.file),
                "PR seems unrelated to the linked issue (no shared keywords found in changed files or description).",
            )
        ]


class OverengineeringRule(Rule):
    id = "overengineering"
    description = "Large amount of new code with almost no deletions"
    severity = "INFO"
    applies_to = ("*",)

    def detect(self, ctx: RuleContext) -> list[Finding]:
        additions = len(ctx.file.additions)
        deletions = len(ctx.file.deletions)
        if additions <= _OVERENGINEERING_ADDITIONS or deletions >= _OVERENGINEERING_MAX_DELETIONS:
            return []
        if "test" in ctx.file.path.lower():
            return []
        return [
            self.finding(
                ctx,
                first_added_line(ctx.file),
                "Large amount of new code added with few deletions. Verify if this complexity is needed.",
                snippet=f"+{additions} / -{deletions}",
            )
        ]
