"""GitHub App authentication.

Installation access tokens expire after one hour. ``GitHubAppTokenManager``
hands out a cached token and transparently exchanges a fresh RS256 JWT for a
new one once the cached token is 45 minutes old, leaving headroom for clock
drift. Pass ``manager.get_token`` as ``GitHubRestClient.token_provider``.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import jwt
import requests

from .errors import AuthenticationError
from .github_rest import DEFAULT_API_URL, USER_AGENT
from .logging import StructuredLogger, get_logger

TOKEN_EXPIRATION_TIME = 2700  # 45 minutes
JWT_EXPIRATION_TIME = 600  # 10 minutes
JWT_CLOCK_DRIFT = 60


@dataclass
class GitHubAppConfig:
    """Configuration for GitHub App authentication."""

    app_id: str
    installation_id: str
    private_key: str  # PEM contents or a path to a .pem file
    algorithm: str = "RS256"
    base_url: str = DEFAULT_API_URL


def normalize_key_string(key: str) -> str:
    """Turn escaped ``\\n`` sequences (single-line env vars) into newlines."""
    return key.replace("\\n", "\n")


def resolve_private_key(value: str) -> str:
    if value.strip().endswith(".pem"):
        path = Path(value.strip())
        if not path.exists():
            raise AuthenticationError(f"App key file not found: {path}")
        content = path.read_text(encoding="utf-8")
        if not content.strip():
            raise AuthenticationError(f"App key file is empty: {path}")
        return content
    return normalize_key_string(value)


class GitHubAppTokenManager:
    """Manages GitHub App installation tokens with automatic refresh."""

    def __init__(
        self,
        config: GitHubAppConfig,
        *,
        session: requests.Session | None = None,
        logger: StructuredLogger | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.config = config
        self.logger = logger or get_logger()
        self._session = session or requests.Session()
        self._clock = clock or time.time
        self._private_key = resolve_private_key(config.private_key)
        self._cached_token: str | None = None
        self._token_refresh_time: float | None = None

    def token_expired(self) -> bool:
        if self._cached_token is None or self._token_refresh_time is None:
            return True
        return (self._clock() - self._token_refresh_time) > TOKEN_EXPIRATION_TIME

    def get_token(self) -> str:
        """Return a valid installation token, minting a new one if needed."""
        token = self._cached_token
        if token is None or self.token_expired():
            token = self._generate_new_token()
            self._cached_token = token
            self._token_refresh_time = self._clock()
        return token

    def generate_jwt(self) -> str:
        # issued 60 seconds in the past to allow for clock drift
        issued_at = int(self._clock()) - JWT_CLOCK_DRIFT
        payload = {
            "iat": issued_at,
            "exp": issued_at + JWT_EXPIRATION_TIME,
            "iss": str(self.config.app_id),
        }
        token = jwt.encode(payload, self._private_key, algorithm=self.config.algorithm)
        return token.decode("utf-8") if isinstance(token, bytes) else token

    def _generate_new_token(self) -> str:
        url = (
            f"{self.config.base_url.rstrip('/')}"
            f"/app/installations/{self.config.installation_id}/access_tokens"
        )
        response = self._session.post(
            url,
            headers={
                "Authorization": f"Bearer {self.generate_jwt()}",
                "Accept": "application/vnd.github+json",
                "User-Agent": USER_AGENT,
            },
            timeout=30,
        )
        if response.status_code >= 400:  # noqa: PLR2004
            raise AuthenticationError(
                f"Failed to get installation token: {response.status_code} - {response.text}"
            )
        data: Any = response.json()
        token = data.get("token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise AuthenticationError("installation token response did not contain a token")
        self.logger.log_operation(
            "github_app_token_generated",
            app_id=self.config.app_id,
            installation_id=self.config.installation_id,
            expires_at=data.get("expires_at"),
        )
        return token


__all__ = [
    "GitHubAppConfig",
    "GitHubAppTokenManager",
    "normalize_key_string",
    "resolve_private_key",
]
