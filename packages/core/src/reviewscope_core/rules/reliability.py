from __future__ import annotations

import ast
import re

from reviewscope_core.findings import Finding
from reviewscope_core.rules.base import JS_GLOBS, PY_GLOBS, Rule, RuleContext, python_tree

_JS_SILENT_CATCH_RE = re.compile(r"catch\s*(\(\s*\w*\s*\))?\s*\{\s*(//.*?)?\}")
_PY_SILENT_EXCEPT_RE = re.compile(r"except\b[^:]*:\s*pass\b")


class SilentCatchRule(Rule):
    """Exception handlers that swallow errors without a trace.

    Python uses the AST when it parses (any handler whose body is only
    ``pass`` or ``...``) and falls back to a single-line regex otherwise.
    """

    id = "silent-catch"
    description = "Empty or silent catch block"
    severity = "MAJOR"
    applies_to = JS_GLOBS + PY_GLOBS + ("*.java",)

    def detect(self, ctx: RuleContext) -> list[Finding]:
        if ctx.is_python:
            return self._detect_python(ctx)
        return [
            self.finding(
                ctx,
                a.line_number,
                "Silent catch block detected. Always handle or log errors.",
                snippet=a.content.strip(),
            )
            for a in ctx.file.additions
            if _JS_SILENT_CATCH_RE.search(a.content)
        ]

    def _detect_python(self, ctx: RuleContext) -> list[Finding]:
        view = python_tree(ctx)
        if view is None:
            return [
                self.finding(ctx, a.line_number, "Silent exception handling detected (except: pass).")
                for a in ctx.file.additions
                if _PY_SILENT_EXCEPT_RE.search(a.content)
            ]
        results = []
        for node in ast.walk(view.tree):
            if not isinstance(node, ast.ExceptHandler) or not _is_silent(node.body):
                continue
            line = view.added_line(node.lineno)
            if line is not None:
                results.append(self.finding(ctx, line, "Silent exception handling detected (except: pass)."))
        return results


def _is_silent(body: list[ast.stmt]) -> bool:
    if len(body) != 1:
        return False
    stmt = body[0]
    if isinstance(stmt, ast.Pass):
        return True
    return isinstance(stmt, ast.Expr) and isinstance(stmt.value, ast.Constant) and stmt.value.value is Ellipsis
