"""Key/value CRUD on top of GitHub issues.

A record's key is the issue title and its value is the JSON block embedded in
the issue body (see ``parser``). Reads are served from ``RecordCache``; every
write goes through ``IssuesClient`` and then patches the cached snapshot so
the next read does not need a full refetch.

Deleting is a soft delete: the issue is closed, and stays readable with
``include_closed=True``.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .cache import DEFAULT_CACHE_EXPIRY, RecordCache
from .errors import RecordNotFound, is_already_exists
from .github_issues import IssuesClient
from .logging import StructuredLogger, get_logger
from .models import Record, Repository
from .parser import generate_body

DEFAULT_LABEL = "issue-db"
DEFAULT_LABEL_COLOR = "000000"
DEFAULT_LABEL_DESCRIPTION = (
    "This issue is managed by issue-db. Please do not remove this label."
)


class Database:
    def __init__(
        self,
        client: IssuesClient,
        repo: Repository,
        *,
        label: str = DEFAULT_LABEL,
        cache_expiry: float = DEFAULT_CACHE_EXPIRY,
        cache: RecordCache | None = None,
        logger: StructuredLogger | None = None,
    ):
        self.client = client
        self.repo = repo
        self.label = label
        self.logger = logger or get_logger()
        self.cache = cache or RecordCache(
            client, repo, label, cache_expiry, logger=self.logger
        )

    # --- helpers ------------------------------------------------------------
    def _without_label(self, values: Iterable[str] | None) -> list[str] | None:
        if values is None:
            return None
        return [v for v in values if v != self.label]

    def _require(self, key: str, include_closed: bool) -> dict[str, Any]:
        issue = self.cache.find_by_key(key, include_closed=include_closed)
        if issue is None:
            raise RecordNotFound(key)
        return issue

    def _patch_cache(self, issue: dict[str, Any]) -> None:
        if not self.cache.replace(issue):
            self.logger.warning(
                f"issue #{issue.get('number')} not found in the issue cache - forcing a full refresh"
            )
            self.cache.refresh()

    # --- operations ---------------------------------------------------------
    def create(
        self,
        key: str,
        data: Any,
        *,
        body_before: str | None = None,
        body_after: str | None = None,
        labels: Iterable[str] | None = None,
        assignees: Iterable[str] | None = None,
        include_closed: bool = False,
    ) -> Record:
        self.logger.debug(f"attempting to create: {key}")
        existing = self.cache.find_by_key(key, include_closed=include_closed)
        if existing is not None:
            self.logger.warning(
                "skipping issue creation and returning existing issue - "
                f"an issue already exists with the key: {key}"
            )
            return Record.from_issue(existing)

        body = generate_body(data, body_before=body_before, body_after=body_after)
        issue = self.client.create_issue(
            title=key,
            body=body,
            labels=[self.label, *(self._without_label(labels) or [])],
            assignees=list(assignees) if assignees is not None else None,
        )
        self.cache.append(issue)
        self.logger.log_record_action("create", key, issue.get("number"))
        return Record.from_issue(issue)

    def read(self, key: str, *, include_closed: bool = False) -> Record:
        self.logger.debug(f"attempting to read: {key}")
        return Record.from_issue(self._require(key, include_closed))

    def update(
        self,
        key: str,
        data: Any,
        *,
        body_before: str | None = None,
        body_after: str | None = None,
        labels: Iterable[str] | None = None,
        assignees: Iterable[str] | None = None,
        include_closed: bool = False,
    ) -> Record:
        self.logger.debug(f"attempting to update: {key}")
        issue = self._require(key, include_closed)
        current = Record.from_issue(issue)

        body = generate_body(
            data,
            body_before=current.body_before if body_before is None else body_before,
            body_after=current.body_after if body_after is None else body_after,
        )
        fields: dict[str, Any] = {"title": key, "body": body}
        if labels is not None:
            fields["labels"] = self._without_label(labels)
        if assignees is not None:
            fields["assignees"] = list(assignees)

        updated = self.client.update_issue(issue["number"], **fields)
        self._patch_cache(updated)
        self.logger.log_record_action("update", key, updated.get("number"))
        return Record.from_issue(updated)

    def delete(
        self,
        key: str,
        *,
        labels: Iterable[str] | None = None,
        assignees: Iterable[str] | None = None,
        include_closed: bool = False,
    ) -> Record:
        self.logger.debug(f"attempting to delete: {key}")
        issue = self._require(key, include_closed)
        number = issue["number"]

        fields: dict[str, Any] = {}
        if labels is not None:
            fields["labels"] = self._without_label(labels)
        if assignees is not None:
            fields["assignees"] = list(assignees)
        if fields:
            self.client.update_issue(number, **fields)

        closed = self.client.close_issue(number)
        self._patch_cache(closed)
        self.logger.log_record_action("delete", key, closed.get("number"))
        return Record.from_issue(closed)

    def list_keys(self, *, include_closed: bool = False) -> list[str]:
        return [
            str(issue.get("title"))
            for issue in self.cache.issues
            if include_closed or issue.get("state") == "open"
        ]

    def refresh(self) -> list[dict[str, Any]]:
        return self.cache.refresh()

    def init_label(
        self,
        *,
        color: str = DEFAULT_LABEL_COLOR,
        description: str = DEFAULT_LABEL_DESCRIPTION,
        tolerate_errors: bool = False,
    ) -> bool:
        """Create the management label; returns False if it already existed."""
        try:
            self.client.add_label(self.label, color, description, disable_retry=True)
        except Exception as exc:
            if is_already_exists(exc):
                self.logger.debug(f"label {self.label} already exists")
                return False
            self.logger.log_error(f"error creating label: {exc}")
            if not tolerate_errors:
                raise
            return False
        self.logger.log_operation("label_created", label=self.label)
        return True

    def list(self, *, include_closed: bool = False) -> list[Record]:
        return [
            Record.from_issue(issue)
            for issue in self.cache.issues
            if include_closed or issue.get("state") == "open"
        ]


__all__ = ["DEFAULT_LABEL", "Database"]
