"""Client-side accounting of GitHub's per-bucket rate limits.

The snapshot returned by ``GET /rate_limit`` is fetched lazily and then
decremented locally on every accounted request, so the common path costs no
extra round-trip. Only when the local count says a bucket is exhausted (or its
reset time has passed) is the snapshot fetched again; if the bucket really is
empty the caller is put to sleep until just after the reset.

Checking the rate limit does not count against any bucket. The fetch is a
single attempt: callers already run inside the retry loop of
``github_issues.IssuesClient``.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from .logging import StructuredLogger, get_logger

RESET_MARGIN_SECONDS = 2


@dataclass
class RateLimitBucket:
    limit: int
    used: int
    remaining: int
    reset_at: float  # epoch seconds

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> RateLimitBucket:
        return cls(
            limit=int(raw.get("limit", 0)),
            used=int(raw.get("used", 0)),
            remaining=int(raw.get("remaining", 0)),
            reset_at=float(raw.get("reset", 0)),
        )


class RateLimitSnapshot(dict[str, RateLimitBucket]):
    """Bucket name (core, search, graphql, ...) -> ``RateLimitBucket``."""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> RateLimitSnapshot:
        resources = payload.get("resources", payload)
        snapshot = cls()
        if isinstance(resources, Mapping):
            for name, raw in resources.items():
                if isinstance(raw, Mapping):
                    snapshot[str(name)] = RateLimitBucket.from_payload(raw)
        return snapshot


class RateLimiter:
    def __init__(
        self,
        fetch: Callable[[], Mapping[str, Any]],
        *,
        logger: StructuredLogger | None = None,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._fetch = fetch
        self.logger = logger or get_logger()
        self._clock = clock or time.time
        self._sleep = sleep or time.sleep
        self._snapshot: RateLimitSnapshot | None = None

    @property
    def snapshot(self) -> RateLimitSnapshot | None:
        return self._snapshot

    def refresh(self) -> RateLimitSnapshot:
        snapshot = RateLimitSnapshot.from_payload(self._fetch())
        self._snapshot = snapshot
        return snapshot

    def _bucket(self, bucket: str) -> RateLimitBucket:
        snapshot = self._snapshot if self._snapshot is not None else self.refresh()
        try:
            return snapshot[bucket]
        except KeyError:
            raise KeyError(f"unknown rate limit bucket: {bucket}") from None

    def _has_capacity(self, rate_limit: RateLimitBucket) -> bool:
        return rate_limit.remaining > 0 and rate_limit.reset_at >= self._clock()

    def wait_for_capacity(self, bucket: str = "core") -> None:
        """Block until ``bucket`` has capacity for one more request."""
        rate_limit = self._bucket(bucket)
        self.logger.debug(
            f"rate_limit {bucket} remaining: {rate_limit.remaining} - used: {rate_limit.used} - "
            f"resets_at: {_fmt(rate_limit.reset_at)} - current time: {_fmt(self._clock())}"
        )
        if self._has_capacity(rate_limit):
            rate_limit.remaining -= 1
            return

        # the local count may be stale: the bucket could have reset already
        self.refresh()
        rate_limit = self._bucket(bucket)
        if rate_limit.remaining > 0:
            self.logger.debug(f"rate_limit not hit - remaining: {rate_limit.remaining}")
            rate_limit.remaining -= 1
            return

        sleep_for = math.ceil(max(rate_limit.reset_at - self._clock(), 0)) + RESET_MARGIN_SECONDS
        self.logger.info(f"github rate_limit hit: sleeping for: {sleep_for} seconds", bucket=bucket)
        self._sleep(sleep_for)
        self.logger.info(f"github rate_limit sleep complete - current time: {_fmt(self._clock())}")


def _fmt(epoch: float) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).isoformat()


__all__ = ["RESET_MARGIN_SECONDS", "RateLimitBucket", "RateLimitSnapshot", "RateLimiter"]
