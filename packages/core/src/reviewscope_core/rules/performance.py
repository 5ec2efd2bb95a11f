from __future__ import annotations

import re

from reviewscope_core.findings import Finding
from reviewscope_core.rules.base import Rule, RuleContext

_BRACE_LOOP_RE = re.compile(r"for\s*\(|while\s*\(|\.map\(|\.forEach\(")
_PY_LOOP_RE = re.compile(r"^(\s*)(async\s+)?(for|while)\b.*:\s*(#.*)?$")
_BRACE_IO_RE = re.compile(r"await |fetch\(|db\.|repository\.")
_PY_IO_RE = re.compile(r"await |requests\.|httpx\.|session\.(query|execute)|\.objects\.|db\.|cursor\.execute")

_BRACE_UNBOUNDED_RE = re.compile(r"while\s*\(\s*true\s*\)|for\s*\(\s*;\s*;\s*\)")
_PY_UNBOUNDED_RE = re.compile(r"while\s+(True|1)\s*:")


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())


class NPlusOneRule(Rule):
    """I/O inside a loop body, tracked line by line over the added code.

    Brace languages track loop depth by ``{``/``}``; Python tracks it by
    indentation relative to the loop header.
    """

    id = "n-plus-one"
    description = "API or database call inside a loop"
    severity = "MAJOR"
    applies_to = ("*.ts", "*.js", "*.py", "*.go", "*.java")

    def detect(self, ctx: RuleContext) -> list[Finding]:
        if ctx.is_python:
            return self._detect_indented(ctx)
        return self._detect_braces(ctx)

    def _report(self, ctx, a) -> Finding:
        return self.finding(
            ctx,
            a.line_number,
            "Potential N+1 problem: async/DB call inside a loop. Batch the calls instead.",
            snippet=a.content.strip(),
        )

    def _detect_braces(self, ctx: RuleContext) -> list[Finding]:
        results = []
        depth = 0
        for a in ctx.file.additions:
            if _BRACE_LOOP_RE.search(a.content):
                depth += 1
            if depth and _BRACE_IO_RE.search(a.content) and "Promise.all" not in a.content:
                results.append(self._report(ctx, a))
            if "}" in a.content:
                depth = max(0, depth - 1)
        return results

    def _detect_indented(self, ctx: RuleContext) -> list[Finding]:
        results = []
        loop_indents: list[int] = []
        for a in ctx.file.additions:
            if not a.content.strip():
                continue
            indent = _indent(a.content)
            while loop_indents and indent <= loop_indents[-1]:
                loop_indents.pop()
            if loop_indents and _PY_IO_RE.search(a.content) and "gather(" not in a.content:
                results.append(self._report(ctx, a))
            match = _PY_LOOP_RE.match(a.content)
            if match:
                loop_indents.append(len(match.group(1)))
        return results


class UnboundedLoopRule(Rule):
    id = "unbounded-loop"
    description = "Loop without an explicit termination condition"
    severity = "MAJOR"
    applies_to = ("*.ts", "*.js", "*.py", "*.go", "*.java")

    def detect(self, ctx: RuleContext) -> list[Finding]:
        pattern = _PY_UNBOUNDED_RE if ctx.is_python else _BRACE_UNBOUNDED_RE
        return [
            self.finding(
                ctx,
                a.line_number,
                "Unbounded loop detected. Ensure there is a break condition.",
                snippet=a.content.strip(),
            )
            for a in ctx.file.additions
            if pattern.search(a.content)
        ]
