from __future__ import annotations

import ast
import re

from reviewscope_core.findings import Finding
from reviewscope_core.rules.base import JS_GLOBS, PY_GLOBS, Rule, RuleContext, python_tree

_TRY_NODES = tuple(t for t in (ast.Try, getattr(ast, "TryStar", None)) if t is not None)
_JS_ASYNC_FN_RE = re.compile(r"async\s+function\s+(\w+)|(\w+)\s*=\s*async\s*\(|async\s+(?!function\b)(\w+)\s*\(")
_NEARBY_LINES = 20


class MissingAwaitRule(Rule):
    id = "missing-await"
    description = "Promise chain with .then() but no .catch()"
    severity = "CRITICAL"
    applies_to = JS_GLOBS

    def detect(self, ctx: RuleContext) -> list[Finding]:
        return [
            self.finding(
                ctx,
                a.line_number,
                "Promise chain using .then() should handle errors with .catch()",
                snippet=a.content.strip(),
            )
            for a in ctx.file.additions
            if ".then(" in a.content and ".catch(" not in a.content
        ]


class UnsafeJsonParseRule(Rule):
    id = "unsafe-json-parse"
    description = "JSON.parse() used without a surrounding try/catch"
    severity = "CRITICAL"
    applies_to = JS_GLOBS

    def detect(self, ctx: RuleContext) -> list[Finding]:
        return [
            self.finding(
                ctx,
                a.line_number,
                "Unsafe JSON.parse() detected. Ensure this is wrapped in a try-catch block.",
                snippet=a.content.strip(),
            )
            for a in ctx.file.additions
            if "JSON.parse(" in a.content and "try" not in a.content
        ]


class MissingErrorHandlingRule(Rule):
    """Async functions that await something with no error handling around it.

    Python files are checked structurally: an ``async def`` whose body awaits
    and contains no ``try`` anywhere. Other languages fall back to a
    proximity heuristic over the added lines.
    """

    id = "missing-error-handling"
    description = "Async operations without error handling"
    severity = "MAJOR"
    applies_to = JS_GLOBS + PY_GLOBS

    def detect(self, ctx: RuleContext) -> list[Finding]:
        if ctx.is_python:
            return self._detect_python(ctx)
        return self._detect_js(ctx)

    def _detect_python(self, ctx: RuleContext) -> list[Finding]:
        view = python_tree(ctx)
        if view is None:
            return []
        results = []
        for node in ast.walk(view.tree):
            if not isinstance(node, ast.AsyncFunctionDef):
                continue
            line = view.added_line(node.lineno)
            if line is None:
                continue
            inner = list(ast.walk(node))
            has_await = any(isinstance(n, ast.Await) for n in inner)
            has_try = any(isinstance(n, _TRY_NODES) for n in inner)
            if has_await and not has_try:
                results.append(
                    self.finding(
                        ctx,
                        line,
                        f"Async function '{node.name}' awaits without any try/except; failures propagate unhandled.",
                    )
                )
        return results

    def _detect_js(self, ctx: RuleContext) -> list[Finding]:
        additions = ctx.file.additions
        results = []
        for i, a in enumerate(additions):
            match = _JS_ASYNC_FN_RE.search(a.content)
            if not match:
                continue
            name = next(g for g in match.groups() if g)
            window = additions[i : i + _NEARBY_LINES]
            has_await = any("await " in w.content for w in window)
            has_try = any(re.search(r"\btry\s*\{|\.catch\(", w.content) for w in window)
            if has_await and not has_try:
                results.append(
                    self.finding(
                        ctx,
                        a.line_number,
                        f"Async function '{name}' uses await but has no try-catch block nearby.",
                        snippet=a.content.strip(),
                    )
                )
        return results


class MutableDefaultArgRule(Rule):
    id = "mutable-default-arg"
    description = "Function parameter defaults to a mutable object shared across calls"
    severity = "MAJOR"
    applies_to = PY_GLOBS

    _MUTABLE = (ast.List, ast.Dict, ast.Set, ast.ListComp, ast.DictComp, ast.SetComp)

    def detect(self, ctx: RuleContext) -> list[Finding]:
        view = python_tree(ctx)
        if view is None:
            return []
        results = []
        for node in ast.walk(view.tree):
            if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                continue
            defaults = list(node.args.defaults) + [d for d in node.args.kw_defaults if d is not None]
            for default in defaults:
                if not isinstance(default, self._MUTABLE):
                    continue
                line = view.added_line(default.lineno)
                if line is None:
                    continue
                results.append(
                    self.finding(
                        ctx,
                        line,
                        f"Function '{node.name}' uses a mutable default argument; use None and create it inside.",
                    )
                )
        return results
