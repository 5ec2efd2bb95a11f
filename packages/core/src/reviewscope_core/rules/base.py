"""Detector interface shared by every static rule.

Rules are plain classes with four class attributes and one method:

    id, description, severity, applies_to  →  detect(ctx) → list[Finding]

Most detectors scan the added lines of a file with regular expressions.
Python files additionally get an ``ast`` view through python_tree(); when
the source does not parse, python_tree() returns None and AST detectors
return no findings for that file instead of raising.
"""

from __future__ import annotations

import ast
import fnmatch
import logging
import textwrap
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from reviewscope_core.findings import Finding

if TYPE_CHECKING:
    from reviewscope_core.diff import DiffLine, ParsedFile

logger = logging.getLogger(__name__)

JS_GLOBS = ("*.ts", "*.tsx", "*.js", "*.jsx")
PY_GLOBS = ("*.py",)


@dataclass
class RuleContext:
    file: ParsedFile
    # Every file in the static set, in diff order; cross-file detectors read this.
    files: list[ParsedFile] = field(default_factory=list)
    pr_body: str = ""
    issue_context: str = ""
    _python: dict = field(default_factory=dict, repr=False)

    @property
    def is_python(self) -> bool:
        return self.file.path.endswith(".py")


@dataclass
class PythonTree:
    """A parsed Python module plus the mapping from AST lines to file lines."""

    tree: ast.Module
    from_content: bool
    additions: list[DiffLine]
    _added: set[int] = field(init=False, repr=False)

    def __post_init__(self):
        self._added = {a.line_number for a in self.additions}

    def added_line(self, lineno: int) -> int | None:
        """File line number for an AST ``lineno``, or None when that line is not newly added."""
        if self.from_content:
            return lineno if lineno in self._added else None
        index = lineno - 1
        if 0 <= index < len(self.additions):
            return self.additions[index].line_number
        return None


def python_tree(ctx: RuleContext) -> PythonTree | None:
    """Parse the file under review, preferring the full head content over the added lines."""
    if "tree" in ctx._python:
        return ctx._python["tree"]

    result: PythonTree | None = None
    if ctx.is_python:
        if ctx.file.content is not None:
            source, from_content = ctx.file.content, True
        else:
            source = textwrap.dedent("\n".join(a.content for a in ctx.file.additions))
            from_content = False
        try:
            result = PythonTree(ast.parse(source), from_content, ctx.file.additions)
        except (SyntaxError, ValueError) as e:
            logger.debug("Skipping AST detectors for %s: %s", ctx.file.path, e)
    ctx._python["tree"] = result
    return result


def matches_glob(path: str, glob: str) -> bool:
    return fnmatch.fnmatch(path, glob) or fnmatch.fnmatch(path.rsplit("/", 1)[-1], glob)


class Rule(ABC):
    id: str = ""
    description: str = ""
    severity: str = "MINOR"
    applies_to: tuple[str, ...] = ("*",)

    def applies(self, path: str) -> bool:
        return any(matches_glob(path, g) for g in self.applies_to)

    @abstractmethod
    def detect(self, ctx: RuleContext) -> list[Finding]:
        """Return the findings for ``ctx.file``. May raise; the engine contains it."""

    def finding(
        self,
        ctx: RuleContext,
        line: int,
        message: str,
        *,
        snippet: str | None = None,
        severity: str | None = None,
        end_line: int | None = None,
    ) -> Finding:
        return Finding(
            source="static",
            rule_id=self.id,
            file=ctx.file.path,
            line=line,
            end_line=end_line,
            severity=severity or self.severity,
            message=message,
            snippet=snippet,
        )


def first_added_line(file: ParsedFile) -> int:
    return file.additions[0].line_number if file.additions else 1
