"""GitHub credentials for the CLI.

prguard authenticates either with a token or as a GitHub App installation.
A configured token wins, as it does in GitHubHost. Otherwise App credentials
(github_app_id and github_private_key) are used and the installation is
looked up per repository. Without either, the token comes from GITHUB_TOKEN
or the GitHub CLI session.
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

APP = "app"
TOKEN = "token"


def has_app_credentials(config: dict) -> bool:
    return bool(config.get("github_app_id") and config.get("github_private_key"))


def _gh_session_token() -> str | None:
    try:
        result = subprocess.run(["gh", "auth", "token"], capture_output=True, text=True, timeout=5)
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        logger.debug("gh auth token failed: %s", result.stderr.strip())
        return None
    return result.stdout.strip() or None


def resolve_github_token() -> str | None:
    """Return GITHUB_TOKEN or the gh CLI session token, or None. Never raises."""
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token
    token = _gh_session_token()
    if token:
        logger.debug("Resolved GitHub token via gh CLI session.")
    return token


def apply_credentials(config: dict) -> str | None:
    """Pick the auth mode for this invocation and store a resolved token in config.

    Returns APP, TOKEN, or None when no credentials were found.
    """
    if config.get("github_token"):
        return TOKEN
    if has_app_credentials(config):
        logger.debug("Authenticating as GitHub App %s", config["github_app_id"])
        return APP
    token = resolve_github_token()
    if not token:
        return None
    config["github_token"] = token
    return TOKEN
