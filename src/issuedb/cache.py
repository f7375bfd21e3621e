"""In-memory, time-bounded snapshot of all issues managed by issue-db.

The snapshot is fetched with a single search (bucket ``search``) for every
issue carrying the management label, open or closed, newest first. GitHub
caps search results at 1000, so a search that reaches the cap is replaced by
a paginated listing of the labelled issues.

The snapshot is replaced wholesale when it expires or on request; the only
partial updates are the single-issue patches made after a successful write,
located by issue number.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from .errors import CacheRefreshError
from .github_issues import IssuesClient
from .github_rest import SEARCH_RESULT_CAP
from .logging import StructuredLogger, get_logger
from .models import Repository

DEFAULT_CACHE_EXPIRY = 60


class RecordCache:
    def __init__(
        self,
        client: IssuesClient,
        repo: Repository,
        label: str,
        cache_expiry: float = DEFAULT_CACHE_EXPIRY,
        *,
        logger: StructuredLogger | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.client = client
        self.repo = repo
        self.label = label
        self.cache_expiry = cache_expiry
        self.logger = logger or get_logger()
        self._clock = clock or time.time
        self._issues: list[dict[str, Any]] | None = None
        self._last_refreshed: float | None = None

    @property
    def last_refreshed(self) -> float | None:
        return self._last_refreshed

    @property
    def query(self) -> str:
        return f'repo:{self.repo.full_name} label:"{self.label}" is:issue'

    @property
    def issues(self) -> list[dict[str, Any]]:
        """The freshness-checked snapshot (a shallow copy)."""
        self.ensure_fresh()
        return list(self._issues or [])

    def ensure_fresh(self) -> None:
        if self._issues is None or self._last_refreshed is None:
            self.refresh()
            return
        age = self._clock() - self._last_refreshed
        if age > self.cache_expiry:
            self.logger.debug(
                f"issue cache expired - last updated: {self._last_refreshed} - refreshing now"
            )
            self.refresh()

    def refresh(self) -> list[dict[str, Any]]:
        self.logger.debug("updating issue cache")
        try:
            with self.logger.timed_operation("cache_refresh", label=self.label):
                response = self.client.search_issues(self.query, sort="created", order="desc")
        except Exception as exc:
            raise CacheRefreshError(f"error refreshing issue cache: {exc}") from exc

        if response is None:
            self.logger.log_error("issue search returned no response", query=self.query)
            raise CacheRefreshError("issue search returned an invalid (empty) response")

        if len(response) >= SEARCH_RESULT_CAP:
            response = self._list_all()

        self._issues = list(response)
        self._last_refreshed = self._clock()
        self.logger.debug(f"issue cache updated - cached {len(self._issues)} issues")
        return list(self._issues)

    def _list_all(self) -> list[dict[str, Any]]:
        self.logger.warning(
            f"issue search hit the {SEARCH_RESULT_CAP} result cap - "
            "listing labelled issues instead"
        )
        try:
            issues = self.client.list_issues(labels=[self.label], state="all")
        except Exception as exc:
            raise CacheRefreshError(f"error refreshing issue cache: {exc}") from exc
        return sorted(issues, key=lambda issue: issue.get("number") or 0, reverse=True)

    def find_by_key(self, key: str, include_closed: bool = False) -> dict[str, Any] | None:
        for issue in self.issues:
            if issue.get("title") == key and (include_closed or issue.get("state") == "open"):
                self.logger.debug(f"issue found in cache for: {key}")
                return issue
        self.logger.debug(f"no issue found in cache for: {key}")
        return None

    def append(self, issue: dict[str, Any]) -> None:
        """Add a freshly created issue; it goes first, matching the newest-first order."""
        if self._issues is None:
            # nothing cached yet; the next read fetches everything anyway
            return
        self._issues.insert(0, issue)

    def replace(self, issue: dict[str, Any]) -> bool:
        """Swap in ``issue`` for the cached entry with the same number."""
        if self._issues is None:
            return False
        number = issue.get("number")
        for i, cached in enumerate(self._issues):
            if cached.get("number") == number:
                self._issues[i] = issue
                return True
        return False


__all__ = ["DEFAULT_CACHE_EXPIRY", "RecordCache"]
