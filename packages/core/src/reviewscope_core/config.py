from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import yaml

if TYPE_CHECKING:
    from reviewscope_core.vcs import VersionControlClient

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: dict = {
    "provider_preference": ["anthropic", "openai"],
    "store_path": ".reviewscope.db",
    "workers": 4,
    "max_comments": 7,
    "batch_size": 10,
    "post_comments": True,
}

# Per-repository config files, read from the PR head in this order.
REPO_CONFIG_PATHS = (".reviewscope.yml", ".reviewscope.yaml", ".reviewscope.json", ".github/reviewscope.yml")


def load_config(config_path: str = ".reviewscope.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .reviewscope.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "provider_preference": list(DEFAULT_CONFIG["provider_preference"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config


def server_keys(config: dict) -> dict[str, str | None]:
    return {"anthropic": config.get("anthropic_api_key"), "openai": config.get("openai_api_key")}


@dataclass
class RepoConfig:
    """Settings a repository opts into through a config file on its default branch or PR head."""

    disabled_rules: list[str] = field(default_factory=list)
    ai_model: str | None = None
    ai_temperature: float | None = None
    ai_guidelines: str | None = None
    force_review: bool = False
    post_comments: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> RepoConfig:
        ai = data.get("ai") or {}
        rules = data.get("rules") or {}
        github = data.get("github") or {}
        disabled = rules.get("disabled") or data.get("disabled_rules") or []
        temperature = ai.get("temperature")
        return cls(
            disabled_rules=[str(r) for r in disabled],
            ai_model=ai.get("model"),
            ai_temperature=float(temperature) if temperature is not None else None,
            ai_guidelines=ai.get("guidelines"),
            force_review=bool(ai.get("force_review", False)),
            post_comments=github.get("post_comments", True) is not False,
        )


def parse_repo_config(text: str, path: str) -> dict | None:
    if path.endswith(".json"):
        parsed = json.loads(text)
    else:
        parsed = yaml.safe_load(text)
    return parsed if isinstance(parsed, dict) else None


def load_repo_config(vcs: VersionControlClient, head_sha: str) -> RepoConfig | None:
    """Read the first repository config found at the PR head.

    A missing, unreadable or malformed file is skipped with a warning and the
    next candidate is tried. Returns None when no usable file exists.
    """
    for path in REPO_CONFIG_PATHS:
        try:
            text = vcs.get_file_content(path, head_sha)
            if not text or not text.strip():
                continue
        except Exception as e:
            logger.warning("Could not fetch repository config %s: %s", path, e)
            continue
        try:
            data = parse_repo_config(text, path)
            if data is None:
                logger.warning("Ignoring repository config %s: expected a mapping.", path)
                continue
            return RepoConfig.from_dict(data)
        except (yaml.YAMLError, ValueError, TypeError, AttributeError) as e:
            logger.warning("Ignoring malformed repository config %s: %s", path, e)
    return None
