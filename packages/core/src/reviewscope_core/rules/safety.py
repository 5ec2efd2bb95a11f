from __future__ import annotations

import re

from reviewscope_core.findings import Finding
from reviewscope_core.rules.base import JS_GLOBS, PY_GLOBS, Rule, RuleContext
from reviewscope_core.utils.secrets import mask_secret

_SECRET_PATTERNS = [
    re.compile(r"['\"][A-Za-z0-9]{20,}['\"]"),
    re.compile(r"AIza[0-9A-Za-z\-_]{35}"),
    re.compile(r"sk-[a-zA-Z0-9]{48}"),
    re.compile(r"(AWS|aws|Aws)_?(SECRET|secret|Secret)_?(KEY|key|Key)"),
    re.compile(r"gh[pousr]_[A-Za-z0-9]{36}"),
    re.compile(r"-----BEGIN (RSA |EC |OPENSSH )?PRIVATE KEY-----"),
]

_JS_INPUT_RE = re.compile(r"req\.(body|query|params)")
_PY_INPUT_RE = re.compile(r"request\.(json|args|form|values|get_json|data)\b")
_VALIDATION_MARKERS = ("validate", "schema", "z.", "pydantic", "model_validate", "parse_obj")


class HardcodedSecretRule(Rule):
    id = "hardcoded-secret"
    description = "Hardcoded secrets (API keys, tokens, credentials)"
    severity = "CRITICAL"
    applies_to = ("*",)

    def detect(self, ctx: RuleContext) -> list[Finding]:
        results = []
        for a in ctx.file.additions:
            if any(p.search(a.content) for p in _SECRET_PATTERNS):
                results.append(
                    self.finding(
                        ctx,
                        a.line_number,
                        "Potential hardcoded secret detected. Use environment variables instead.",
                        snippet=_redact(a.content.strip())[:50],
                    )
                )
        return results


def _redact(line: str) -> str:
    for pattern in _SECRET_PATTERNS:
        line = pattern.sub(lambda m: mask_secret(m.group(0)), line)
    return line


class UnvalidatedInputRule(Rule):
    id = "unvalidated-input"
    description = "Request data used directly without validation"
    severity = "MAJOR"
    applies_to = JS_GLOBS + PY_GLOBS

    def detect(self, ctx: RuleContext) -> list[Finding]:
        pattern = _PY_INPUT_RE if ctx.is_python else _JS_INPUT_RE
        results = []
        for a in ctx.file.additions:
            if not pattern.search(a.content):
                continue
            if any(m in a.content for m in _VALIDATION_MARKERS):
                continue
            results.append(
                self.finding(
                    ctx,
                    a.line_number,
                    "Unvalidated user input detected. Validate request data against a schema before use.",
                    snippet=a.content.strip(),
                )
            )
        return results
