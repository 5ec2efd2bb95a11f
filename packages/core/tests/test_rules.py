"""Tests for the static rule engine and its detectors."""

import pytest

from reviewscope_core.diff import DiffLine, Hunk, ParsedFile
from reviewscope_core.rules.architecture import DuplicateLogicRule, merge_ranges
from reviewscope_core.rules.base import Rule
from reviewscope_core.rules.engine import ALL_RULES, RULE_IDS, run_rules
from reviewscope_core.rules.hygiene import TodoFixmeRule
from reviewscope_core.rules.scope import IssueMismatchRule, OverengineeringRule


def make_file(path, lines, start=1, content=None):
    additions = [DiffLine(start + i, line) for i, line in enumerate(lines)]
    return ParsedFile(path=path, hunks=[Hunk(start, 0, start, len(lines))], additions=additions, content=content)


def rule_ids(findings):
    return [f.rule_id for f in findings]


class ExplodingRule(Rule):
    id = "exploding"
    applies_to = ("*",)

    def detect(self, ctx):
        raise RuntimeError("detector bug")


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class TestRunRules:
    def test_registry_ids_are_unique(self):
        assert len(RULE_IDS) == len(ALL_RULES)

    def test_finds_todo(self):
        findings = run_rules([make_file("src/a.py", ["x = 1  # TODO: tidy up"])])
        todo = [f for f in findings if f.rule_id == "todo-fixme"]
        assert len(todo) == 1
        assert todo[0].line == 1
        assert todo[0].severity == "INFO"
        assert todo[0].source == "static"

    def test_disabled_rule_is_skipped(self):
        findings = run_rules([make_file("src/a.py", ["x = 1  # TODO: tidy up"])], disabled_rules=["todo-fixme"])
        assert "todo-fixme" not in rule_ids(findings)

    def test_failing_detector_does_not_stop_others(self):
        findings = run_rules(
            [make_file("src/a.py", ["# FIXME later"])],
            rules=[ExplodingRule(), TodoFixmeRule()],
        )
        assert rule_ids(findings) == ["todo-fixme"]

    def test_duplicate_findings_collapse(self):
        findings = run_rules([make_file("src/a.py", ["# TODO"])], rules=[TodoFixmeRule(), TodoFixmeRule()])
        assert len(findings) == 1

    def test_rule_only_runs_on_matching_paths(self):
        findings = run_rules([make_file("README.md", ["while True:"])])
        assert "unbounded-loop" not in rule_ids(findings)


# ---------------------------------------------------------------------------
# Safety
# ---------------------------------------------------------------------------


class TestSafetyRules:
    def test_hardcoded_secret_is_redacted_in_snippet(self):
        findings = run_rules([make_file("settings.py", ['API_KEY = "abcdefghijklmnopqrstuvwxyz123456"'])])
        secret = [f for f in findings if f.rule_id == "hardcoded-secret"]
        assert len(secret) == 1
        assert secret[0].severity == "CRITICAL"
        assert "abcdefghijklmnop" not in secret[0].snippet

    def test_unvalidated_python_input(self):
        findings = run_rules([make_file("app.py", ["payload = request.json"])])
        assert "unvalidated-input" in rule_ids(findings)

    def test_validated_input_is_fine(self):
        findings = run_rules([make_file("app.py", ["payload = Body.model_validate(request.json)"])])
        assert "unvalidated-input" not in rule_ids(findings)

    def test_unsafe_patterns(self):
        findings = run_rules([make_file("src/load.py", ["data = pickle.loads(blob)", "# eval(x) is bad"])])
        unsafe = [f for f in findings if f.rule_id == "unsafe-patterns"]
        assert [f.line for f in unsafe] == [1]
        assert unsafe[0].severity == "MAJOR"

    def test_yaml_safe_loader_is_fine(self):
        findings = run_rules([make_file("src/load.py", ["cfg = yaml.load(f, Loader=yaml.SafeLoader)"])])
        assert "unsafe-patterns" not in rule_ids(findings)


# ---------------------------------------------------------------------------
# Python AST detectors
# ---------------------------------------------------------------------------


class TestPythonDetectors:
    def test_mutable_default_from_full_content(self):
        content = "def f(a, items=[]):\n    return items\n"
        findings = run_rules([make_file("lib/f.py", ["def f(a, items=[]):"], content=content)])
        hits = [f for f in findings if f.rule_id == "mutable-default-arg"]
        assert [f.line for f in hits] == [1]

    def test_mutable_default_on_unchanged_line_not_reported(self):
        content = "def f(a, items=[]):\n    return items\n"
        findings = run_rules([make_file("lib/f.py", ["    return items"], start=2, content=content)])
        assert "mutable-default-arg" not in rule_ids(findings)

    def test_mutable_default_from_added_lines(self):
        findings = run_rules([make_file("lib/g.py", ["    def g(x={}):", "        return x"], start=40)])
        hits = [f for f in findings if f.rule_id == "mutable-default-arg"]
        assert [f.line for f in hits] == [40]

    def test_silent_except(self):
        lines = ["try:", "    run()", "except Exception:", "    pass"]
        findings = run_rules([make_file("lib/h.py", lines)])
        hits = [f for f in findings if f.rule_id == "silent-catch"]
        assert [f.line for f in hits] == [3]

    def test_silent_except_falls_back_to_regex_on_syntax_error(self):
        findings = run_rules([make_file("lib/h.py", ["except ValueError: pass"])])
        assert "silent-catch" in rule_ids(findings)

    def test_async_without_try(self):
        content = "async def load():\n    return await fetch()\n"
        findings = run_rules([make_file("svc/load.py", content.splitlines(), content=content)])
        assert "missing-error-handling" in rule_ids(findings)

    def test_async_with_try(self):
        content = "async def load():\n    try:\n        return await fetch()\n    except IOError:\n        raise\n"
        findings = run_rules([make_file("svc/load.py", content.splitlines(), content=content)])
        assert "missing-error-handling" not in rule_ids(findings)

    def test_print_outside_main(self):
        findings = run_rules([make_file("svc/run.py", ["def handler():", "    print('x')"])])
        hits = [f for f in findings if f.rule_id == "console-log"]
        assert [f.line for f in hits] == [2]

    def test_print_in_main_is_intentional(self):
        findings = run_rules([make_file("svc/run.py", ["def main():", "    print('x')"])])
        assert "console-log" not in rule_ids(findings)


# ---------------------------------------------------------------------------
# Performance
# ---------------------------------------------------------------------------


class TestPerformanceRules:
    def test_io_inside_python_loop(self):
        findings = run_rules([make_file("svc/sync.py", ["for user in users:", "    profile = requests.get(url)"])])
        hits = [f for f in findings if f.rule_id == "n-plus-one"]
        assert [f.line for f in hits] == [2]

    def test_io_after_loop_body(self):
        lines = ["for user in users:", "    count += 1", "profile = requests.get(url)"]
        findings = run_rules([make_file("svc/sync.py", lines)])
        assert "n-plus-one" not in rule_ids(findings)

    def test_io_inside_js_loop(self):
        lines = ["for (const id of ids) {", "  const row = await db.find(id);", "}"]
        findings = run_rules([make_file("src/sync.ts", lines)])
        assert [f.line for f in findings if f.rule_id == "n-plus-one"] == [2]

    def test_unbounded_loop(self):
        findings = run_rules([make_file("svc/poll.py", ["while True:", "    poll()"])])
        assert "unbounded-loop" in rule_ids(findings)


# ---------------------------------------------------------------------------
# JS hygiene and correctness
# ---------------------------------------------------------------------------


class TestJsRules:
    def test_console_log(self):
        findings = run_rules([make_file("src/app.ts", ["console.log('debug');"])])
        assert "console-log" in rule_ids(findings)

    def test_console_log_in_test_file_ignored(self):
        findings = run_rules([make_file("src/app.test.ts", ["console.log('debug');"])])
        assert "console-log" not in rule_ids(findings)

    def test_then_without_catch(self):
        findings = run_rules([make_file("src/app.js", ["fetch(url).then(r => r.json());"])])
        assert "missing-await" in rule_ids(findings)

    def test_silent_js_catch(self):
        findings = run_rules([make_file("src/app.js", ["} catch (e) {}"])])
        assert "silent-catch" in rule_ids(findings)

    def test_duplicate_object_key(self):
        lines = ["const a = {", "  name: 1,", "  name: 2,", "};"]
        findings = run_rules([make_file("src/a.ts", lines)])
        hits = [f for f in findings if f.rule_id == "duplicate-object-key"]
        assert [f.line for f in hits] == [2]

    def test_same_key_in_sibling_objects(self):
        lines = ["const a = {", "  name: 1,", "};", "const b = {", "  name: 2,", "};"]
        findings = run_rules([make_file("src/a.ts", lines)])
        assert "duplicate-object-key" not in rule_ids(findings)

    def test_ai_output_parsed_without_guard(self):
        findings = run_rules([make_file("src/llm.py", ["data = json.loads(response.text)"])])
        assert "unsafe-ai-output" in rule_ids(findings)


# ---------------------------------------------------------------------------
# Cross-file and PR-level rules
# ---------------------------------------------------------------------------

BLOCK = ["result = compute(a)", "total = result + offset", "value = transform(total)", "return value * factor"]


class TestDuplicateLogic:
    def test_reported_once_on_leader(self):
        files = [make_file("pkg/b.py", BLOCK, start=20), make_file("pkg/a.py", BLOCK, start=5)]
        findings = run_rules(files, rules=[DuplicateLogicRule()])
        assert len(findings) == 1
        assert findings[0].file == "pkg/a.py"
        assert (findings[0].line, findings[0].end_line) == (5, 8)
        assert "pkg/b.py" in findings[0].message

    def test_distinct_blocks(self):
        files = [make_file("pkg/a.py", BLOCK), make_file("pkg/b.py", [line + "  # v2" for line in BLOCK])]
        assert run_rules(files, rules=[DuplicateLogicRule()]) == []

    @pytest.mark.parametrize(
        "ranges,expected",
        [
            ([(1, 4), (2, 5)], [(1, 5)]),
            ([(1, 4), (5, 8)], [(1, 8)]),
            ([(10, 13), (1, 4)], [(1, 4), (10, 13)]),
        ],
    )
    def test_merge_ranges(self, ranges, expected):
        assert merge_ranges(ranges) == expected


class TestScopeRules:
    def test_issue_mismatch(self):
        findings = run_rules(
            [make_file("src/parser.py", ["x = 1"])],
            rules=[IssueMismatchRule()],
            pr_body="Refactor the parser",
            issue_context="Authentication tokens expire prematurely",
        )
        assert rule_ids(findings) == ["issue-mismatch"]

    def test_issue_keywords_in_description(self):
        findings = run_rules(
            [make_file("src/parser.py", ["x = 1"])],
            rules=[IssueMismatchRule()],
            pr_body="Fix authentication expiry",
            issue_context="Authentication tokens expire prematurely",
        )
        assert findings == []

    def test_issue_mismatch_reported_once_per_pr(self):
        files = [make_file("src/a.py", ["x = 1"]), make_file("src/b.py", ["y = 2"])]
        findings = run_rules(
            files, rules=[IssueMismatchRule()], pr_body="Refactor", issue_context="Authentication tokens expire"
        )
        assert [f.file for f in findings] == ["src/a.py"]

    def test_overengineering(self):
        big = make_file("src/big.py", [f"x{i} = {i}" for i in range(101)])
        findings = run_rules([big], rules=[OverengineeringRule()])
        assert rule_ids(findings) == ["overengineering"]
        assert findings[0].snippet == "+101 / -0"
