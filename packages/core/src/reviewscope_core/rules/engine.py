"""Static rule registry and runner.

ALL_RULES is a fixed list built at import time. Adding a detector means
adding its instance here; nothing is discovered at runtime.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Sequence

from reviewscope_core.rules.ai_sanity import PromptAsLogicRule, UnsafeAiOutputRule
from reviewscope_core.rules.architecture import DuplicateLogicRule, FatControllerRule
from reviewscope_core.rules.base import Rule, RuleContext
from reviewscope_core.rules.correctness import (
    MissingAwaitRule,
    MissingErrorHandlingRule,
    MutableDefaultArgRule,
    UnsafeJsonParseRule,
)
from reviewscope_core.rules.hygiene import (
    ConsoleLogRule,
    DuplicateObjectKeyRule,
    TodoFixmeRule,
    UnsafePatternsRule,
)
from reviewscope_core.rules.performance import NPlusOneRule, UnboundedLoopRule
from reviewscope_core.rules.reliability import SilentCatchRule
from reviewscope_core.rules.safety import HardcodedSecretRule, UnvalidatedInputRule
from reviewscope_core.rules.scope import IssueMismatchRule, OverengineeringRule

if TYPE_CHECKING:
    from reviewscope_core.diff import ParsedFile
    from reviewscope_core.findings import Finding

logger = logging.getLogger(__name__)

ALL_RULES: tuple[Rule, ...] = (
    # correctness
    MissingAwaitRule(),
    UnsafeJsonParseRule(),
    MissingErrorHandlingRule(),
    MutableDefaultArgRule(),
    # safety
    HardcodedSecretRule(),
    UnvalidatedInputRule(),
    # reliability
    SilentCatchRule(),
    # architecture
    FatControllerRule(),
    DuplicateLogicRule(),
    # AI sanity
    UnsafeAiOutputRule(),
    PromptAsLogicRule(),
    # performance
    NPlusOneRule(),
    UnboundedLoopRule(),
    # scope
    IssueMismatchRule(),
    OverengineeringRule(),
    # hygiene
    TodoFixmeRule(),
    ConsoleLogRule(),
    UnsafePatternsRule(),
    DuplicateObjectKeyRule(),
)

RULE_IDS = frozenset(r.id for r in ALL_RULES)


def run_rules(
    files: Sequence[ParsedFile],
    disabled_rules: Iterable[str] = (),
    rules: Sequence[Rule] = ALL_RULES,
    pr_body: str = "",
    issue_context: str = "",
) -> list[Finding]:
    """Run every enabled, applicable rule over every file.

    A detector that raises is logged and skipped for that file; the other
    detectors still run. Results are deduplicated on
    (rule_id, file, line, message), keeping the first occurrence.
    """
    disabled = set(disabled_rules)
    file_list = list(files)
    contexts = [RuleContext(file=f, files=file_list, pr_body=pr_body, issue_context=issue_context) for f in file_list]

    results: list[Finding] = []
    seen: set[tuple] = set()
    for rule in rules:
        if rule.id in disabled:
            continue
        for ctx in contexts:
            if not rule.applies(ctx.file.path):
                continue
            try:
                found = rule.detect(ctx)
            except Exception as e:
                logger.warning("Rule %s failed on %s: %s", rule.id, ctx.file.path, e)
                continue
            for finding in found:
                key = (finding.rule_id, finding.file, finding.line, finding.message)
                if key not in seen:
                    seen.add(key)
                    results.append(finding)
    return results
