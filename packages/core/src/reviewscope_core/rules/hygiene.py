from __future__ import annotations

import ast
import re

from reviewscope_core.filters import is_test_file
from reviewscope_core.findings import Finding
from reviewscope_core.rules.base import JS_GLOBS, PY_GLOBS, Rule, RuleContext, python_tree

_TODO_RE = re.compile(r"\b(TODO|FIXME|HACK|XXX)\b", re.IGNORECASE)
_CONSOLE_RE = re.compile(r"\bconsole\.(log|debug|info|warn|error|trace)\s*\(")
_PRINT_RE = re.compile(r"^\s*print\s*\(")

_UNSAFE_PATTERNS = [
    (re.compile(r"\beval\s*\("), "Avoid using eval() - it is a critical security risk.", "CRITICAL"),
    (
        re.compile(r"\.innerHTML\s*="),
        "Assignment to innerHTML can lead to XSS attacks - use textContent or a framework binding.",
        "MAJOR",
    ),
    (
        re.compile(r"dangerouslySetInnerHTML\s*[=:]"),
        "Usage of dangerouslySetInnerHTML should be avoided unless content is sanitized.",
        "MAJOR",
    ),
    (re.compile(r"document\.write\s*\("), "document.write() is discouraged - use DOM manipulation instead.", "MINOR"),
    (
        re.compile(r"\bpickle\.loads?\s*\("),
        "Unpickling data can execute arbitrary code - never unpickle untrusted input.",
        "MAJOR",
    ),
    (
        re.compile(r"\byaml\.load\s*\((?!.*SafeLoader)"),
        "yaml.load() without SafeLoader can construct arbitrary objects - use yaml.safe_load().",
        "MAJOR",
    ),
    (re.compile(r"shell\s*=\s*True"), "subprocess with shell=True is open to command injection.", "MAJOR"),
    (
        re.compile(r"\bos\.system\s*\("),
        "os.system() is open to command injection - use subprocess with a list.",
        "MAJOR",
    ),
]
_COMMENT_PREFIXES = ("//", "*", "#")

_OBJECT_KEY_RE = re.compile(r"^\s*[\"']?([A-Za-z0-9_$-]+)[\"']?\s*:(?!:)")


class TodoFixmeRule(Rule):
    id = "todo-fixme"
    description = "TODO/FIXME markers in new code"
    severity = "INFO"
    applies_to = ("*",)

    def detect(self, ctx: RuleContext) -> list[Finding]:
        results = []
        for a in ctx.file.additions:
            match = _TODO_RE.search(a.content)
            if match:
                results.append(
                    self.finding(
                        ctx,
                        a.line_number,
                        f"Found {match.group(1).upper()} comment - consider tracking in issue tracker",
                        snippet=a.content.strip(),
                    )
                )
        return results


class ConsoleLogRule(Rule):
    """Debug output left in production code: ``console.*`` calls and bare ``print()``.

    Test files are skipped. Python prints inside a function named ``debug*``
    or ``main`` are treated as intentional.
    """

    id = "console-log"
    description = "Debug output in production code"
    severity = "MINOR"
    applies_to = JS_GLOBS + PY_GLOBS

    def detect(self, ctx: RuleContext) -> list[Finding]:
        if is_test_file(ctx.file.path):
            return []
        if ctx.is_python:
            return self._detect_python(ctx)
        results = []
        for a in ctx.file.additions:
            match = _CONSOLE_RE.search(a.content)
            if match and not a.content.strip().startswith("//"):
                results.append(
                    self.finding(
                        ctx,
                        a.line_number,
                        f"console.{match.group(1)}() found in production code - use a logger instead",
                        snippet=a.content.strip(),
                    )
                )
        return results

    def _detect_python(self, ctx: RuleContext) -> list[Finding]:
        view = python_tree(ctx)
        if view is None:
            return [
                self.finding(ctx, a.line_number, "print() found in production code - use logging instead")
                for a in ctx.file.additions
                if _PRINT_RE.search(a.content)
            ]
        results = []
        for func in [n for n in ast.walk(view.tree) if isinstance(n, (ast.FunctionDef, ast.AsyncFunctionDef))]:
            if func.name.startswith("debug") or func.name == "main":
                continue
            for node in ast.walk(func):
                if not (isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and node.func.id == "print"):
                    continue
                line = view.added_line(node.lineno)
                if line is not None:
                    results.append(self.finding(ctx, line, "print() found in production code - use logging instead"))
        return results


class UnsafePatternsRule(Rule):
    id = "unsafe-patterns"
    description = "eval, innerHTML, unsafe deserialization and shell injection"
    severity = "MAJOR"
    applies_to = JS_GLOBS + PY_GLOBS

    def detect(self, ctx: RuleContext) -> list[Finding]:
        if is_test_file(ctx.file.path):
            return []
        results = []
        for a in ctx.file.additions:
            if a.content.strip().startswith(_COMMENT_PREFIXES):
                continue
            for pattern, message, severity in _UNSAFE_PATTERNS:
                if pattern.search(a.content):
                    results.append(
                        self.finding(ctx, a.line_number, message, severity=severity, snippet=a.content.strip())
                    )
        return results


class DuplicateObjectKeyRule(Rule):
    """The same key defined twice in one object literal; the earlier value is silently lost.

    Keys are tracked per brace scope over the added lines, so identical keys
    in sibling objects are not reported.
    """

    id = "duplicate-object-key"
    description = "Duplicate key in an object literal"
    severity = "MAJOR"
    applies_to = JS_GLOBS + ("*.json",)

    def detect(self, ctx: RuleContext) -> list[Finding]:
        scopes: list[dict[str, list[int]]] = [{}]
        closed: list[dict[str, list[int]]] = []

        def pop(n: int) -> None:
            for _ in range(n):
                if len(scopes) > 1:
                    closed.append(scopes.pop())

        for a in ctx.file.additions:
            stripped = a.content.strip()
            rest = stripped.lstrip("}")
            pop(len(stripped) - len(rest))
            match = _OBJECT_KEY_RE.match(a.content)
            if match:
                scopes[-1].setdefault(match.group(1), []).append(a.line_number)
            net = rest.count("{") - rest.count("}")
            if net > 0:
                scopes.extend({} for _ in range(net))
            else:
                pop(-net)

        results = []
        for scope in closed + scopes:
            for key, lines in scope.items():
                if len(lines) > 1:
                    results.append(
                        self.finding(
                            ctx,
                            lines[0],
                            f'Duplicate key "{key}" defined multiple times. Earlier value will be ignored.',
                        )
                    )
        return results
