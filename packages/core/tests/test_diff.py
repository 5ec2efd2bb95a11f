"""Tests for unified-diff parsing and hunk coverage."""

import types

from reviewscope_core.diff import Hunk, build_unified_diff, parse_diff

TWO_FILE_DIFF = """\
diff --git a/src/app.py b/src/app.py
index 1111111..2222222 100644
--- a/src/app.py
+++ b/src/app.py
@@ -1,3 +1,4 @@
 import os
+import sys
 VERSION = 1
 def main():
@@ -10,2 +11,3 @@ def helper():
     x = 1
-    y = 2
+    y = 3
+    z = 4
diff --git a/old/name.ts b/new/name.ts
similarity index 100%
rename from old/name.ts
rename to new/name.ts
"""


class TestParseDiff:
    def test_splits_files(self):
        files = parse_diff(TWO_FILE_DIFF)
        assert [f.path for f in files] == ["src/app.py", "new/name.ts"]

    def test_tracks_new_side_line_numbers(self):
        app = parse_diff(TWO_FILE_DIFF)[0]
        assert [(a.line_number, a.content) for a in app.additions] == [
            (2, "import sys"),
            (12, "    y = 3"),
            (13, "    z = 4"),
        ]

    def test_tracks_old_side_line_numbers(self):
        app = parse_diff(TWO_FILE_DIFF)[0]
        assert [(d.line_number, d.content) for d in app.deletions] == [(11, "    y = 2")]

    def test_hunk_headers(self):
        app = parse_diff(TWO_FILE_DIFF)[0]
        assert app.hunks == [Hunk(1, 3, 1, 4), Hunk(10, 2, 11, 3)]

    def test_rename_without_hunks(self):
        renamed = parse_diff(TWO_FILE_DIFF)[1]
        assert renamed.old_path == "old/name.ts"
        assert renamed.hunks == []
        assert renamed.additions == []

    def test_missing_count_means_one(self):
        text = "diff --git a/a.py b/a.py\n@@ -3 +3 @@\n-old\n+new\n"
        f = parse_diff(text)[0]
        assert f.hunks == [Hunk(3, 1, 3, 1)]
        assert f.additions[0].line_number == 3

    def test_added_line_starting_with_plus_plus_is_kept(self):
        text = "diff --git a/a.c b/a.c\n--- a/a.c\n+++ b/a.c\n@@ -1,1 +1,2 @@\n i = 0;\n+++i;\n"
        f = parse_diff(text)[0]
        assert [a.content for a in f.additions] == ["++i;"]

    def test_empty_text(self):
        assert parse_diff("") == []

    def test_line_count(self):
        app = parse_diff(TWO_FILE_DIFF)[0]
        assert app.line_count == 4


class TestCovers:
    def setup_method(self):
        self.file = parse_diff(TWO_FILE_DIFF)[0]

    def test_line_inside_hunk(self):
        assert self.file.covers(2)
        assert self.file.covers(11)

    def test_context_line_inside_hunk(self):
        # Line 1 is a context line, still commentable.
        assert self.file.covers(1)

    def test_line_between_hunks(self):
        assert not self.file.covers(6)

    def test_range_spanning_two_hunks_rejected(self):
        assert not self.file.covers(3, end_line=12)

    def test_range_inside_one_hunk(self):
        assert self.file.covers(11, end_line=13)

    def test_range_past_hunk_end(self):
        assert not self.file.covers(12, end_line=14)

    def test_inverted_range(self):
        assert not self.file.covers(13, end_line=11)

    def test_left_side(self):
        assert self.file.covers(11, side="LEFT")
        assert not self.file.covers(13, side="LEFT")


class TestBuildUnifiedDiff:
    def test_round_trips_through_parser(self):
        gh_files = [
            types.SimpleNamespace(filename="a.py", previous_filename=None, patch="@@ -1,1 +1,2 @@\n x\n+y"),
            types.SimpleNamespace(filename="img.png", previous_filename=None, patch=None),
        ]
        files = parse_diff(build_unified_diff(gh_files))
        assert [f.path for f in files] == ["a.py", "img.png"]
        assert files[0].additions[0].line_number == 2
        assert files[1].hunks == []

    def test_rename_uses_previous_filename(self):
        gh_files = [types.SimpleNamespace(filename="b.py", previous_filename="a.py", patch="@@ -1 +1 @@\n-x\n+y")]
        assert build_unified_diff(gh_files).startswith("diff --git a/a.py b/b.py\n")

    def test_no_files(self):
        assert build_unified_diff([]) == ""
