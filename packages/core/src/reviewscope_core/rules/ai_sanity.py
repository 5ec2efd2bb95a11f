from __future__ import annotations

import re

from reviewscope_core.findings import Finding
from reviewscope_core.rules.base import Rule, RuleContext

_EVAL_RE = re.compile(r"\beval\s*\(")
_PARSE_MODEL_OUTPUT_RE = re.compile(
    r"(JSON\.parse|json\.loads)\((.*(response|output|completion|content|choice).*)\)", re.IGNORECASE
)
_LOGIC_IN_PROMPT_RE = re.compile(r"['\"`].*if user.*then.*return.*['\"`]", re.IGNORECASE)


class UnsafeAiOutputRule(Rule):
    id = "unsafe-ai-output"
    description = "Model output executed or parsed without validation"
    severity = "CRITICAL"
    applies_to = ("*.ts", "*.js", "*.py")

    def detect(self, ctx: RuleContext) -> list[Finding]:
        results = []
        for a in ctx.file.additions:
            if _EVAL_RE.search(a.content):
                results.append(
                    self.finding(
                        ctx,
                        a.line_number,
                        "Use of eval() detected. Ensure AI output is never passed to eval().",
                        snippet=a.content.strip(),
                    )
                )
            if _PARSE_MODEL_OUTPUT_RE.search(a.content) and "try" not in a.content:
                results.append(
                    self.finding(
                        ctx,
                        a.line_number,
                        "Parsing potential AI output without validation or error handling.",
                        snippet=a.content.strip(),
                    )
                )
        return results


class PromptAsLogicRule(Rule):
    id = "prompt-as-logic"
    description = "Control-flow instructions embedded in prompt strings"
    severity = "INFO"
    applies_to = ("*.ts", "*.js", "*.py")

    def detect(self, ctx: RuleContext) -> list[Finding]:
        return [
            self.finding(
                ctx,
                a.line_number,
                "Detected logic-like instructions in a string. Keep control flow in code, not prompts.",
                snippet=a.content.strip()[:50] + "...",
            )
            for a in ctx.file.additions
            if _LOGIC_IN_PROMPT_RE.search(a.content)
        ]
