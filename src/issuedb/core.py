from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from .cache import DEFAULT_CACHE_EXPIRY, RecordCache
from .config import DBConfig
from .database import DEFAULT_LABEL, Database
from .env_auth import EnvAuthConfig, login
from .github_auth import GitHubAppConfig
from .github_issues import IssuesClient, IssueTransport
from .logging import StructuredLogger, configure_logging, get_logger
from .models import Record, Repository
from .retry import RetryConfig
from .throttle import RateLimiter


class IssueDB:
    """A key/value store backed by the issues of one GitHub repository.

    Example::

        db = IssueDB("octo-org/records")
        db.create("event123", {"cool": True}, body_before="# Event 123")
        db.read("event123").data          # {"cool": True}
        db.delete("event123")             # closes the issue
        db.list_keys(include_closed=True)  # ["event123"]

    Each instance owns its issue cache and rate-limit snapshot; share one
    instance per thread of work, never across threads.
    """

    def __init__(
        self,
        repo: str,
        *,
        logger: StructuredLogger | None = None,
        client: IssueTransport | None = None,
        label: str = DEFAULT_LABEL,
        cache_expiry: float = DEFAULT_CACHE_EXPIRY,
        retry: RetryConfig | None = None,
        app_config: GitHubAppConfig | None = None,
        env_config: EnvAuthConfig | None = None,
        init: bool = True,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        self.logger = logger or get_logger()
        self.repo = Repository.parse(repo)
        self.retry = retry or RetryConfig()
        transport = login(
            self.repo.full_name,
            client,
            config=env_config,
            app_config=app_config,
            logger=self.logger,
        )
        limiter = RateLimiter(
            transport.get_rate_limit,
            logger=self.logger,
            clock=clock,
            sleep=sleep,
        )
        self.client = IssuesClient(
            transport, retry=self.retry, limiter=limiter, logger=self.logger, sleep=sleep
        )
        cache = RecordCache(
            self.client, self.repo, label, cache_expiry, logger=self.logger, clock=clock
        )
        self.db = Database(self.client, self.repo, label=label, cache=cache, logger=self.logger)
        if init:
            self.db.init_label(tolerate_errors=True)

    @classmethod
    def from_config(cls, cfg: DBConfig, **kwargs: Any) -> IssueDB:
        if not cfg.repo:
            raise ValueError("a repository (owner/name) must be configured")
        if "logger" not in kwargs:
            kwargs["logger"] = configure_logging(
                json_logging=cfg.logging_json_enabled, level=cfg.logging_level
            )
        if cfg.github_app_id and cfg.github_app_installation_id and cfg.github_app_key:
            kwargs.setdefault(
                "app_config",
                GitHubAppConfig(
                    app_id=cfg.github_app_id,
                    installation_id=cfg.github_app_installation_id,
                    private_key=cfg.github_app_key,
                ),
            )
        kwargs.setdefault("env_config", EnvAuthConfig(load_dotenv=cfg.load_dotenv))
        return cls(
            cfg.repo,
            label=cfg.label,
            cache_expiry=cfg.cache_expiry,
            retry=cfg.retry_config(),
            init=cfg.init_label,
            **kwargs,
        )

    @property
    def label(self) -> str:
        return self.db.label

    def create(self, key: str, data: Any, **options: Any) -> Record:
        return self.db.create(key, data, **options)

    def read(self, key: str, **options: Any) -> Record:
        return self.db.read(key, **options)

    def update(self, key: str, data: Any, **options: Any) -> Record:
        return self.db.update(key, data, **options)

    def delete(self, key: str, **options: Any) -> Record:
        return self.db.delete(key, **options)

    def list(self, *, include_closed: bool = False) -> Iterable[Record]:
        return self.db.list(include_closed=include_closed)

    def list_keys(self, *, include_closed: bool = False) -> Iterable[str]:
        return self.db.list_keys(include_closed=include_closed)

    def refresh(self) -> Iterable[dict[str, Any]]:
        return self.db.refresh()

    def init_label(self, **options: Any) -> bool:
        return self.db.init_label(**options)


__all__ = ["IssueDB"]
