"""Rate-limited, retrying access to GitHub issue operations.

``IssuesClient`` wraps a raw transport (``GitHubRestClient`` in production, an
in-memory fake in tests) and exposes exactly the operations the database layer
needs. Every call runs the same sequence::

    wait for rate-limit capacity (bucket) -> call transport -> on failure back off and retry

Search requests are accounted against the ``search`` bucket, everything else
against ``core``. A secondary (abuse) rate limit is only recognisable from the
error message; when one is hit the attempt sleeps for a fixed minute before
re-raising, leaving the retry loop to decide whether to try again.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from typing import Any, Protocol, TypeVar

from .errors import is_secondary_rate_limit
from .logging import StructuredLogger, get_logger
from .retry import RetryConfig, run_with_retries
from .throttle import RateLimiter

T = TypeVar("T")

SECONDARY_RATE_LIMIT_SLEEP = 60


class IssueTransport(Protocol):
    """Operations a transport must provide, bound to one repository."""

    def search_issues(
        self, query: str, *, sort: str | None = None, order: str | None = None
    ) -> list[dict[str, Any]] | None: ...

    def list_issues(
        self, *, labels: Iterable[str] | None = None, state: str = "all"
    ) -> list[dict[str, Any]]: ...

    def get_issue(self, number: int) -> dict[str, Any]: ...

    def create_issue(
        self,
        *,
        title: str,
        body: str,
        labels: Iterable[str] | None = None,
        assignees: Iterable[str] | None = None,
    ) -> dict[str, Any]: ...

    def update_issue(
        self,
        number: int,
        *,
        title: str | None = None,
        body: str | None = None,
        labels: Iterable[str] | None = None,
        assignees: Iterable[str] | None = None,
        state: str | None = None,
    ) -> dict[str, Any]: ...

    def close_issue(self, number: int) -> dict[str, Any]: ...

    def get_rate_limit(self) -> dict[str, Any]: ...

    def add_label(
        self, name: str, color: str, description: str | None = None
    ) -> dict[str, Any]: ...


class IssuesClient:
    def __init__(
        self,
        transport: IssueTransport,
        *,
        retry: RetryConfig | None = None,
        limiter: RateLimiter | None = None,
        logger: StructuredLogger | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        self.transport = transport
        self.retry = retry or RetryConfig()
        self.logger = logger or get_logger()
        self._sleep = sleep or time.sleep
        self.limiter = limiter or RateLimiter(
            transport.get_rate_limit, logger=self.logger, sleep=self._sleep
        )

    # --- internal helpers -------------------------------------------------
    def _call(
        self,
        bucket: str,
        fn: Callable[[], T],
        *,
        disable_retry: bool = False,
    ) -> T:
        def _attempt() -> T:
            self.limiter.wait_for_capacity(bucket)
            try:
                return fn()
            except Exception as exc:
                if is_secondary_rate_limit(exc):
                    self.logger.warning(
                        f"GitHub secondary rate limit hit, sleeping for {SECONDARY_RATE_LIMIT_SLEEP} seconds"
                    )
                    self._sleep(SECONDARY_RATE_LIMIT_SLEEP)
                raise

        return run_with_retries(
            _attempt,
            cfg=self.retry,
            disable_retry=disable_retry,
            sleep=self._sleep,
            logger=self.logger,
        )

    # --- operations ---------------------------------------------------------
    def search_issues(
        self,
        query: str,
        *,
        sort: str | None = None,
        order: str | None = None,
        disable_retry: bool = False,
    ) -> list[dict[str, Any]] | None:
        return self._call(
            "search",
            lambda: self.transport.search_issues(query, sort=sort, order=order),
            disable_retry=disable_retry,
        )

    def list_issues(
        self,
        *,
        labels: Iterable[str] | None = None,
        state: str = "all",
        disable_retry: bool = False,
    ) -> list[dict[str, Any]]:
        return self._call(
            "core",
            lambda: self.transport.list_issues(labels=labels, state=state),
            disable_retry=disable_retry,
        )

    def get_issue(self, number: int, *, disable_retry: bool = False) -> dict[str, Any]:
        return self._call(
            "core", lambda: self.transport.get_issue(number), disable_retry=disable_retry
        )

    def create_issue(
        self,
        *,
        title: str,
        body: str,
        labels: Iterable[str] | None = None,
        assignees: Iterable[str] | None = None,
        disable_retry: bool = False,
    ) -> dict[str, Any]:
        return self._call(
            "core",
            lambda: self.transport.create_issue(
                title=title, body=body, labels=labels, assignees=assignees
            ),
            disable_retry=disable_retry,
        )

    def update_issue(
        self,
        number: int,
        *,
        disable_retry: bool = False,
        **fields: Any,
    ) -> dict[str, Any]:
        """Update an issue; only the keyword fields actually passed are sent."""
        return self._call(
            "core",
            lambda: self.transport.update_issue(number, **fields),
            disable_retry=disable_retry,
        )

    def close_issue(self, number: int, *, disable_retry: bool = False) -> dict[str, Any]:
        return self._call(
            "core", lambda: self.transport.close_issue(number), disable_retry=disable_retry
        )

    def get_rate_limit(self) -> dict[str, Any]:
        # not accounted: reading the rate limit does not consume it
        return run_with_retries(
            self.transport.get_rate_limit, cfg=self.retry, sleep=self._sleep, logger=self.logger
        )

    def add_label(
        self,
        name: str,
        color: str,
        description: str | None = None,
        *,
        disable_retry: bool = True,
    ) -> dict[str, Any]:
        return self._call(
            "core",
            lambda: self.transport.add_label(name, color, description),
            disable_retry=disable_retry,
        )


__all__ = ["SECONDARY_RATE_LIMIT_SLEEP", "IssueTransport", "IssuesClient"]
