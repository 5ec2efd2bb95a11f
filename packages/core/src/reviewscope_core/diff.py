"""Unified-diff parsing.

Every downstream stage works from ParsedFile: the rule engine reads added
and deleted lines, the scorer counts them, and comment validation checks a
target line against the hunk ranges. Line numbers are tracked per side so a
comment on the new file (RIGHT) and one on the old file (LEFT) can both be
validated.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_FILE_HEADER_RE = re.compile(r"^diff --git a/(.*) b/(.*)$")
_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


@dataclass(frozen=True)
class DiffLine:
    line_number: int
    content: str


@dataclass(frozen=True)
class Hunk:
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int

    def contains(self, start: int, end: int, side: str = "RIGHT") -> bool:
        if side == "LEFT":
            first, count = self.old_start, self.old_lines
        else:
            first, count = self.new_start, self.new_lines
        return count > 0 and first <= start and end <= first + count - 1


@dataclass(frozen=True)
class ParsedFile:
    path: str
    hunks: list[Hunk] = field(default_factory=list)
    additions: list[DiffLine] = field(default_factory=list)
    deletions: list[DiffLine] = field(default_factory=list)
    old_path: str | None = None
    # Full head-revision content, attached after parsing when it could be fetched.
    content: str | None = None

    @property
    def line_count(self) -> int:
        return len(self.additions) + len(self.deletions)

    def covers(self, line: int, side: str = "RIGHT", end_line: int | None = None) -> bool:
        """True when ``line`` through ``end_line`` lies inside a single hunk on ``side``."""
        end = end_line if end_line is not None else line
        if end < line:
            return False
        return any(h.contains(line, end, side) for h in self.hunks)


def parse_diff(text: str) -> list[ParsedFile]:
    """Split unified-diff text into one ParsedFile per ``diff --git`` section.

    Hunk headers without a count (``@@ -3 +3 @@``) mean a count of 1.
    ``+++``/``---`` file headers are only recognised before the first hunk
    of a file, so an added line whose content begins with ``++`` is kept.
    Files with no hunks (pure renames, mode changes, binaries) are returned
    with empty hunk and line lists.
    """
    files: list[ParsedFile] = []
    current: ParsedFile | None = None
    old_line = new_line = 0
    in_hunk = False

    for line in text.splitlines():
        header = _FILE_HEADER_RE.match(line)
        if header:
            if current is not None:
                files.append(current)
            old_path, new_path = header.group(1), header.group(2)
            current = ParsedFile(path=new_path, old_path=old_path if old_path != new_path else None)
            old_line = new_line = 0
            in_hunk = False
            continue
        if current is None:
            continue

        if line.startswith("@@"):
            match = _HUNK_HEADER_RE.match(line)
            if not match:
                continue
            old_line = int(match.group(1))
            new_line = int(match.group(3))
            current.hunks.append(
                Hunk(
                    old_start=old_line,
                    old_lines=int(match.group(2)) if match.group(2) is not None else 1,
                    new_start=new_line,
                    new_lines=int(match.group(4)) if match.group(4) is not None else 1,
                )
            )
            in_hunk = True
            continue

        if not in_hunk:
            # index, mode, rename, similarity and ---/+++ header lines
            continue

        if line.startswith("+"):
            current.additions.append(DiffLine(new_line, line[1:]))
            new_line += 1
        elif line.startswith("-"):
            current.deletions.append(DiffLine(old_line, line[1:]))
            old_line += 1
        elif line.startswith(" "):
            old_line += 1
            new_line += 1

    if current is not None:
        files.append(current)
    return files


def build_unified_diff(files) -> str:
    """Assemble unified-diff text from per-file patches.

    Accepts objects shaped like GitHub's pull-request files API entries
    (``filename``, ``previous_filename``, ``patch``). Entries without a patch
    (binary files, pure renames) contribute only their header.
    """
    sections: list[str] = []
    for f in files:
        new_path = f.filename
        old_path = getattr(f, "previous_filename", None) or new_path
        sections.append(f"diff --git a/{old_path} b/{new_path}")
        patch = getattr(f, "patch", None)
        if patch:
            sections.append(f"--- a/{old_path}")
            sections.append(f"+++ b/{new_path}")
            sections.append(patch.rstrip("\n"))
    return "\n".join(sections) + ("\n" if sections else "")
