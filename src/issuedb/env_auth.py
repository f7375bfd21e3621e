"""Credential discovery for issue-db.

``login`` picks, in order: a transport handed in by the caller, GitHub App
credentials from the environment, then a personal access token. ``.env``
files are loaded first (without overriding variables already set).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .errors import AuthenticationError
from .github_auth import GitHubAppConfig, GitHubAppTokenManager
from .github_issues import IssueTransport
from .github_rest import DEFAULT_API_URL, GitHubRestClient
from .logging import StructuredLogger, get_logger

TOKEN_VARS = ("GITHUB_TOKEN", "GH_TOKEN")
DOTENV_LOCATIONS = (".env", ".env.local")


@dataclass
class EnvAuthConfig:
    """Names of the environment variables consulted by ``login``."""

    load_dotenv: bool = True
    dotenv_path: str | None = None
    github_app_id_var: str = "ISSUE_DB_GITHUB_APP_ID"
    github_app_installation_id_var: str = "ISSUE_DB_GITHUB_APP_INSTALLATION_ID"
    github_app_key_var: str = "ISSUE_DB_GITHUB_APP_KEY"


def load_env_files(config: EnvAuthConfig, logger: StructuredLogger | None = None) -> bool:
    """Load the first ``.env`` file found; returns True if one was loaded."""
    logger = logger or get_logger()
    candidates = [config.dotenv_path] if config.dotenv_path else list(DOTENV_LOCATIONS)
    for location in candidates:
        env_path = Path(location)
        if env_path.exists():
            load_dotenv(str(env_path))
            logger.debug(f"Loaded environment variables from {env_path}")
            return True
    return False


def get_github_token() -> str | None:
    for name in TOKEN_VARS:
        raw = os.environ.get(name)
        if raw and raw.strip():
            return raw.strip()
    return None


def get_github_app_config(
    config: EnvAuthConfig, base_url: str = DEFAULT_API_URL
) -> GitHubAppConfig | None:
    app_id = os.getenv(config.github_app_id_var)
    installation_id = os.getenv(config.github_app_installation_id_var)
    key = os.getenv(config.github_app_key_var)
    if not (app_id and installation_id and key):
        return None
    return GitHubAppConfig(
        app_id=app_id,
        installation_id=installation_id,
        private_key=key,
        base_url=base_url,
    )


def login(
    repo: str,
    client: IssueTransport | None = None,
    *,
    config: EnvAuthConfig | None = None,
    app_config: GitHubAppConfig | None = None,
    base_url: str | None = None,
    logger: StructuredLogger | None = None,
) -> IssueTransport:
    """Return an authenticated transport for ``repo``."""
    if client is not None:
        return client

    logger = logger or get_logger()
    config = config or EnvAuthConfig()
    base_url = base_url or os.environ.get("ISSUE_DB_GITHUB_API", DEFAULT_API_URL)
    if config.load_dotenv:
        load_env_files(config, logger)

    app_config = app_config or get_github_app_config(config, base_url)
    if app_config is not None:
        logger.debug("authenticating as GitHub App", app_id=app_config.app_id)
        manager = GitHubAppTokenManager(app_config, logger=logger)
        return GitHubRestClient(
            repo=repo, token_provider=manager.get_token, base_url=base_url, logger=logger
        )

    token = get_github_token()
    if token:
        logger.debug("authenticating with personal access token")
        return GitHubRestClient(repo=repo, token=token, base_url=base_url, logger=logger)

    raise AuthenticationError("No valid GitHub authentication method was provided")


__all__ = [
    "EnvAuthConfig",
    "get_github_app_config",
    "get_github_token",
    "load_env_files",
    "login",
]
