from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

import requests

from .logging import StructuredLogger, get_logger

DEFAULT_API_URL = "https://api.github.com"
USER_AGENT = "issue-db-rest/0.1.0"
HTTP_ERROR_STATUS = 400
PER_PAGE = 100
# the search API never returns more than 1000 results for one query
SEARCH_RESULT_CAP = 1000


class GitHubAPIError(RuntimeError):
    """Raised when the GitHub REST API returns an error."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.response_text = response_text


def _names(raw: Any, attr: str) -> list[str]:
    out: list[str] = []
    if isinstance(raw, list):
        for item in raw:
            if isinstance(item, dict):
                value = item.get(attr)
                if isinstance(value, str):
                    out.append(value)
            elif isinstance(item, str):
                out.append(item)
    return out


def normalize_issue(entry: dict[str, Any]) -> dict[str, Any]:
    """Reduce a GitHub issue payload to the fields issue-db relies on."""
    state = entry.get("state")
    return {
        "number": entry.get("number"),
        "title": entry.get("title"),
        "body": entry.get("body") or "",
        "state": state.lower() if isinstance(state, str) else state,
        "labels": _names(entry.get("labels"), "name"),
        "assignees": _names(entry.get("assignees"), "login"),
        "url": entry.get("html_url") or entry.get("url"),
    }


@dataclass
class GitHubRestClient:
    """Lightweight REST client for the issue endpoints issue-db uses.

    Authenticates either with a static ``token`` or, for short-lived GitHub
    App installation tokens, with a ``token_provider`` consulted on every
    request. No retries happen here; see ``github_issues.IssuesClient``.
    """

    repo: str
    token: str | None = None
    token_provider: Callable[[], str] | None = None
    base_url: str = DEFAULT_API_URL
    timeout: float = 30
    session: requests.Session | None = None
    logger: StructuredLogger | None = field(default=None, repr=False)
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._session = self.session or requests.Session()
        self._session.headers.setdefault("Accept", "application/vnd.github+json")
        self._session.headers.setdefault("User-Agent", USER_AGENT)
        self._session.headers.setdefault("X-GitHub-Api-Version", "2022-11-28")

    # ---- REST helpers -------------------------------------------------
    def _auth_headers(self) -> dict[str, str]:
        token = self.token_provider() if self.token_provider is not None else self.token
        return {"Authorization": f"Bearer {token}"} if token else {}

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
    ) -> Any:
        url = (
            path
            if path.startswith("http")
            else f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
        )
        headers = {**self._session.headers, **self._auth_headers()}
        response = self._session.request(
            method,
            url,
            params=params,
            json=json_body,
            headers=headers,
            timeout=self.timeout,
        )
        if response.status_code >= HTTP_ERROR_STATUS:
            raise GitHubAPIError(
                f"GitHub API {method} {url} failed with {response.status_code} - {response.text}",
                status=response.status_code,
                response_text=response.text,
            )
        if response.text:
            return response.json()
        return None

    def _paginate(self, path: str, *, params: dict[str, Any] | None = None) -> list[Any]:
        params = dict(params or {})
        per_page = params.setdefault("per_page", PER_PAGE)
        params.setdefault("page", 1)
        results: list[Any] = []
        while True:
            data = self._request("GET", path, params=params)
            if not isinstance(data, list):
                break
            results.extend(data)
            if len(data) < per_page:
                break
            params["page"] = params.get("page", 1) + 1
        return results

    # ---- Issue operations --------------------------------------------
    def search_issues(
        self,
        query: str,
        *,
        sort: str | None = None,
        order: str | None = None,
    ) -> list[dict[str, Any]] | None:
        params: dict[str, Any] = {"q": query, "per_page": PER_PAGE, "page": 1}
        if sort:
            params["sort"] = sort
        if order:
            params["order"] = order
        results: list[dict[str, Any]] = []
        while True:
            data = self._request("GET", "/search/issues", params=params)
            if not isinstance(data, dict):
                return None
            items = data.get("items")
            if not isinstance(items, list):
                return None
            results.extend(normalize_issue(i) for i in items if isinstance(i, dict))
            total = data.get("total_count")
            fetched = params["page"] * PER_PAGE
            if len(items) < PER_PAGE:
                break
            if fetched >= SEARCH_RESULT_CAP:
                if isinstance(total, int) and total > SEARCH_RESULT_CAP:
                    (self.logger or get_logger()).warning(
                        f"issue search matched {total} issues but GitHub only returns the "
                        f"first {SEARCH_RESULT_CAP} - results are truncated",
                        query=query,
                        total_count=total,
                    )
                break
            if isinstance(total, int) and fetched >= total:
                break
            params["page"] += 1
        return results

    def list_issues(
        self,
        *,
        labels: Iterable[str] | None = None,
        state: str = "all",
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"state": state, "sort": "created", "direction": "desc"}
        if labels:
            params["labels"] = ",".join(labels)
        data = self._paginate(f"/repos/{self.repo}/issues", params=params)
        # the issues endpoint also returns pull requests
        return [
            normalize_issue(entry)
            for entry in data
            if isinstance(entry, dict) and "pull_request" not in entry
        ]

    def get_issue(self, number: int) -> dict[str, Any]:
        return normalize_issue(self._request("GET", f"/repos/{self.repo}/issues/{number}"))

    def create_issue(
        self,
        *,
        title: str,
        body: str,
        labels: Iterable[str] | None = None,
        assignees: Iterable[str] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"title": title, "body": body}
        if labels:
            payload["labels"] = list(labels)
        if assignees:
            payload["assignees"] = list(assignees)
        data = self._request("POST", f"/repos/{self.repo}/issues", json_body=payload)
        return normalize_issue(data)

    def update_issue(
        self,
        number: int,
        *,
        title: str | None = None,
        body: str | None = None,
        labels: Iterable[str] | None = None,
        assignees: Iterable[str] | None = None,
        state: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if title is not None:
            payload["title"] = title
        if body is not None:
            payload["body"] = body
        if labels is not None:
            payload["labels"] = list(labels)
        if assignees is not None:
            payload["assignees"] = list(assignees)
        if state is not None:
            payload["state"] = state
        data = self._request("PATCH", f"/repos/{self.repo}/issues/{number}", json_body=payload)
        return normalize_issue(data)

    def close_issue(self, number: int) -> dict[str, Any]:
        return self.update_issue(number, state="closed")

    def get_rate_limit(self) -> dict[str, Any]:
        data = self._request("GET", "/rate_limit")
        return data if isinstance(data, dict) else {}

    def add_label(self, name: str, color: str, description: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": name, "color": color}
        if description:
            payload["description"] = description
        data = self._request("POST", f"/repos/{self.repo}/labels", json_body=payload)
        return data if isinstance(data, dict) else {}


__all__ = [
    "DEFAULT_API_URL",
    "GitHubAPIError",
    "GitHubRestClient",
    "normalize_issue",
]
