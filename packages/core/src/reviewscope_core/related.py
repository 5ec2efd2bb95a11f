"""Related-file context built from the imports of the changed files.

Every fetch is pinned to the PR's head SHA so the related files belong to
the same snapshot as the diff. Only imports that resolve inside the
repository are followed; third-party packages are ignored.
"""

from __future__ import annotations

import logging
import posixpath
import re
from typing import TYPE_CHECKING, Sequence

from reviewscope_core.complexity import language_of

if TYPE_CHECKING:
    from reviewscope_core.diff import ParsedFile
    from reviewscope_core.vcs import VersionControlClient

logger = logging.getLogger(__name__)

# Per-file cap on the summarized content of one related file.
_RELATED_CHAR_LIMIT = 3_000

# Hard ceiling on the rendered section. When breached, the files imported
# by the fewest changed files are dropped first.
_MAX_CONTEXT_CHARS = 12_000

_SUMMARY_HEADER_LINES = 10
_SUMMARY_MAX_LINES = 200
_LOOKUP_FACTOR = 3

_JS_IMPORT_RE = re.compile(
    r"import\s+(?:type\s+)?(?:[\w*{}\s,]+\s+from\s+)?['\"]([^'\"]+)['\"]"
    r"|require\(\s*['\"]([^'\"]+)['\"]\s*\)"
    r"|import\(\s*['\"]([^'\"]+)['\"]\s*\)"
)
_PY_FROM_RE = re.compile(r"^\s*from\s+(\.*[\w.]*)\s+import\s+([\w., ()]+)", re.MULTILINE)
_PY_IMPORT_RE = re.compile(r"^\s*import\s+([\w., ]+)", re.MULTILINE)
_GO_IMPORT_RE = re.compile(r"\"([^\"]+)\"")
_GO_BLOCK_RE = re.compile(r"import\s*\(([\s\S]*?)\)|import\s+\"[^\"]+\"")
_JAVA_IMPORT_RE = re.compile(r"^import\s+([\w.]+);", re.MULTILINE)
_C_INCLUDE_RE = re.compile(r"#include\s+\"(.+?)\"")

_JS_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", "/index.ts", "/index.js")
_DEFINITION_PREFIXES = ("export", "interface", "type", "class", "function", "def ", "async def", "/**", "*", "//", "#")


def extract_imports(content: str, path: str) -> list[str]:
    """Return the module specifiers imported by a file, in source order."""
    language = language_of(path)
    if language == "python":
        modules = []
        for match in _PY_FROM_RE.finditer(content):
            base = match.group(1)
            if base.strip("."):
                modules.append(base)
            else:
                # "from . import a, b" imports sibling modules
                names = match.group(2).replace("(", "").replace(")", "")
                modules.extend(base + n.strip().split(" ")[0] for n in names.split(",") if n.strip())
        for match in _PY_IMPORT_RE.finditer(content):
            modules.extend(m.strip().split(" ")[0] for m in match.group(1).split(",") if m.strip())
        return modules
    if language == "go":
        modules = []
        for block in _GO_BLOCK_RE.finditer(content):
            modules.extend(_GO_IMPORT_RE.findall(block.group(0)))
        return modules
    if language == "java":
        return _JAVA_IMPORT_RE.findall(content)
    if language in ("c", "cpp", "h", "hpp"):
        return _C_INCLUDE_RE.findall(content)
    return [next(g for g in match.groups() if g) for match in _JS_IMPORT_RE.finditer(content)]


def resolve_import_candidates(current_path: str, module: str) -> list[str]:
    """Map an import specifier onto repository paths worth trying, best first."""
    directory = posixpath.dirname(current_path)
    language = language_of(current_path)

    if language == "python":
        if module.startswith("."):
            dots = len(module) - len(module.lstrip("."))
            base = directory
            for _ in range(dots - 1):
                base = posixpath.dirname(base)
            rel = module.lstrip(".").replace(".", "/")
            target = posixpath.join(base, rel) if rel else base
        else:
            target = module.replace(".", "/")
        return [f"{target}.py", f"{target}/__init__.py", f"src/{target}.py"]

    if language in ("c", "cpp", "h", "hpp"):
        return [posixpath.normpath(posixpath.join(directory, module))]

    if not module.startswith("."):
        return []
    resolved = posixpath.normpath(posixpath.join(directory, module))
    if posixpath.splitext(resolved)[1]:
        # "./util.js" is commonly written for a TypeScript "util.ts" source.
        stem = posixpath.splitext(resolved)[0]
        return [resolved, stem + ".ts", stem + ".tsx"]
    return [resolved + ext for ext in _JS_EXTENSIONS]


def summarize_content(content: str) -> str:
    """Keep a file's header and its definition-looking lines."""
    lines = content.splitlines()
    header = lines[:_SUMMARY_HEADER_LINES]
    body = [line for line in lines[_SUMMARY_HEADER_LINES:] if line.strip().startswith(_DEFINITION_PREFIXES)]

    # Too little survived the filter; a plain prefix carries more signal.
    if len(body) < 5 and len(lines) > 20:
        text = "\n".join(lines[:100])
        return text + ("\n... (truncated)" if len(lines) > 100 else "")

    if len(body) > _SUMMARY_MAX_LINES:
        return "\n".join(header) + "\n...\n" + "\n".join(body[:_SUMMARY_MAX_LINES]) + "\n... (truncated)"
    if not body:
        return "\n".join(header)
    return "\n".join(header) + "\n...\n" + "\n".join(body)


def gather_related_files(
    vcs: VersionControlClient,
    files: Sequence[ParsedFile],
    head_sha: str,
    max_files: int = 5,
) -> dict[str, str]:
    """Fetch and summarize the in-repo files imported by the changed files.

    Files imported by more changed files come first. Changed files are never
    included since their diff is already in the prompt. A file that cannot be
    fetched is skipped.
    """
    changed = {f.path for f in files}
    votes: dict[str, int] = {}
    candidates: dict[str, list[str]] = {}
    for f in files:
        if not f.content:
            continue
        for module in extract_imports(f.content, f.path):
            options = [p for p in resolve_import_candidates(f.path, module) if p not in changed]
            if not options:
                continue
            key = options[0]
            candidates.setdefault(key, options)
            votes[key] = votes.get(key, 0) + 1

    related: dict[str, str] = {}
    # Unresolvable absolute imports (stdlib, packages) would otherwise cost a fetch each.
    ranked = sorted(votes, key=lambda k: votes[k], reverse=True)[: max_files * _LOOKUP_FACTOR]
    for key in ranked:
        if len(related) >= max_files:
            break
        for path in candidates[key]:
            try:
                content = vcs.get_file_content(path, head_sha)
            except Exception as e:
                logger.warning("Could not fetch related file %s: %s", path, e)
                break
            if content:
                related[path] = summarize_content(content)[:_RELATED_CHAR_LIMIT]
                break
    return related


def build_related_section(related: dict[str, str], max_chars: int = _MAX_CONTEXT_CHARS) -> str:
    """Render related files, dropping the lowest-priority ones until the section fits."""
    blocks = [f"### {path}\n```\n{content}\n```" for path, content in related.items()]
    while blocks:
        rendered = "\n\n".join(blocks)
        if len(rendered) <= max_chars:
            return rendered
        blocks.pop()
    if related:
        logger.warning("Related-file context exceeds budget (%d chars) even with a single file.", max_chars)
    return ""
