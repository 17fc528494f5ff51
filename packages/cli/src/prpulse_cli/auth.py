"""Where `prpulse login` looks for a GitHub token before prompting.

Sources, first hit wins:
  1. GITHUB_PAT
  2. GITHUB_TOKEN
  3. the GitHub CLI session (`gh auth token`, after `gh auth login`)

`prpulse serve` never calls this; it polls with the credential that login
validated and stored.
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

_ENV_VARS = ("GITHUB_PAT", "GITHUB_TOKEN")
_GH_TIMEOUT_SECONDS = 5


def _token_from_gh_cli() -> str | None:
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=_GH_TIMEOUT_SECONDS,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        logger.debug("gh CLI not available")
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def resolve_github_token() -> str | None:
    """Return the first token found, or None. Never raises."""
    for var in _ENV_VARS:
        token = os.environ.get(var)
        if token:
            logger.debug("Using GitHub token from %s", var)
            return token

    token = _token_from_gh_cli()
    if token:
        logger.debug("Using GitHub token from the gh CLI session")
    return token
