"""Retry / backoff helpers.

``run_with_retries`` invokes a thunk up to ``RetryConfig.tries`` times,
sleeping between attempts with either a fixed delay or an exponential
schedule (``base_sleep * 2 ** (attempt - 1)``)::

    fixed:        3s, 3s, 3s, ...
    exponential:  3s, 6s, 12s, 24s, ...

After the final attempt the last exception propagates unchanged. Callers
that must not repeat a request (label creation, where a duplicate answer is
meaningful) pass ``disable_retry=True``.

The configuration is an explicit value owned by whoever performs the calls
(see ``config.DBConfig.retry_config``); nothing is read from the environment
at call time.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:  # pragma: no cover
    from .logging import StructuredLogger

T = TypeVar("T")

DEFAULT_TRIES = 10
DEFAULT_BASE_SLEEP = 3.0


@dataclass(frozen=True)
class RetryConfig:
    tries: int = DEFAULT_TRIES
    base_sleep: float = DEFAULT_BASE_SLEEP
    exponential: bool = False


def compute_backoff(attempt: int, cfg: RetryConfig) -> float:
    if cfg.exponential:
        return cfg.base_sleep * (2 ** (attempt - 1))
    return cfg.base_sleep


def run_with_retries(
    fn: Callable[[], T],
    *,
    cfg: RetryConfig | None = None,
    disable_retry: bool = False,
    sleep: Callable[[float], None] | None = None,
    logger: StructuredLogger | None = None,
) -> T:
    cfg = cfg or RetryConfig()
    sleeper = sleep or time.sleep
    attempts = 1 if disable_retry else max(1, cfg.tries)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as exc:
            if attempt >= attempts:
                if logger is not None and not disable_retry:
                    logger.debug(
                        f"[retry #{attempt}] {exc.__class__.__name__}: {exc} - max retries exceeded"
                    )
                raise
            backoff = compute_backoff(attempt, cfg)
            if logger is not None:
                logger.debug(
                    f"[retry #{attempt}] {exc.__class__.__name__}: {exc} - sleeping {backoff}s before retry"
                )
            sleeper(backoff)
    raise RuntimeError("retry logic exited unexpectedly")  # pragma: no cover


__all__ = ["RetryConfig", "compute_backoff", "run_with_retries"]
