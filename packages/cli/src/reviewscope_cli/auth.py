"""GitHub token lookup for local runs.

Order: the ``GITHUB_TOKEN`` environment variable, then the token of an
existing GitHub CLI session (``gh auth token``).
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

GH_TIMEOUT_SECONDS = 5


def _gh_cli_token() -> str | None:
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=GH_TIMEOUT_SECONDS,
        )
    except FileNotFoundError:
        logger.debug("gh CLI not installed.")
        return None
    except subprocess.TimeoutExpired:
        logger.warning("gh auth token timed out after %ds.", GH_TIMEOUT_SECONDS)
        return None
    if result.returncode != 0:
        logger.debug("gh auth token exited with %d.", result.returncode)
        return None
    return result.stdout.strip() or None


def resolve_github_token() -> str | None:
    """Return a GitHub token, or None when neither source has one."""
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token
    token = _gh_cli_token()
    if token:
        logger.debug("Using GitHub token from the gh CLI session.")
    return token
