"""Pytest configuration for issue-db tests.

Ensures the in-repo `src` directory is on `sys.path` so the package can be
imported without an editable install (`pip install -e .`), and provides an
in-memory GitHub transport plus a controllable clock so nothing in the suite
touches the network or really sleeps.
"""

from __future__ import annotations

import io
import sys
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import pytest

_TEST_START_TIMES: dict[str, float] = {}
_TEST_DURATIONS: list[tuple[str, float]] = []

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from issuedb.logging import StructuredLogger  # noqa: E402
from issuedb.parser import generate_body  # noqa: E402

START_TIME = 1_700_000_000.0
FAR_RESET = START_TIME + 3600


def rate_limit_payload(
    core_remaining: int = 5000,
    search_remaining: int = 30,
    reset: float = FAR_RESET,
) -> dict[str, Any]:
    return {
        "resources": {
            "core": {"limit": 5000, "used": 5000 - core_remaining, "remaining": core_remaining, "reset": reset},
            "search": {"limit": 30, "used": 30 - search_remaining, "remaining": search_remaining, "reset": reset},
        }
    }


class FakeClock:
    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Stand-in for ``time.sleep`` that advances an optional clock."""

    def __init__(self, clock: FakeClock | None = None):
        self.calls: list[float] = []
        self._clock = clock

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._clock is not None:
            self._clock.advance(seconds)


class FakeTransport:
    """In-memory replacement for ``GitHubRestClient``.

    ``fail_next(method, exc, ...)`` queues exceptions raised by the next
    calls of ``method`` before it starts succeeding again.
    """

    def __init__(
        self,
        issues: Iterable[dict[str, Any]] = (),
        *,
        rate_limit: dict[str, Any] | None = None,
    ):
        self.issues: list[dict[str, Any]] = [dict(i) for i in issues]
        self.labels: set[str] = set()
        self.rate_limit = rate_limit or rate_limit_payload()
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.search_response: Any = ...
        self._failures: dict[str, list[BaseException]] = {}

    # --- test helpers ---------------------------------------------------
    def fail_next(self, method: str, *excs: BaseException) -> None:
        self._failures.setdefault(method, []).extend(excs)

    def called(self, method: str) -> list[dict[str, Any]]:
        return [kw for name, kw in self.calls if name == method]

    def _record(self, method: str, **kw: Any) -> None:
        self.calls.append((method, kw))
        queued = self._failures.get(method)
        if queued:
            raise queued.pop(0)

    def _find(self, number: int) -> dict[str, Any]:
        for issue in self.issues:
            if issue["number"] == number:
                return issue
        raise LookupError(f"no issue #{number}")

    # --- transport API --------------------------------------------------
    def search_issues(self, query: str, *, sort: str | None = None, order: str | None = None):
        self._record("search_issues", query=query, sort=sort, order=order)
        if self.search_response is not ...:
            return self.search_response
        return [dict(i) for i in sorted(self.issues, key=lambda i: i["number"], reverse=True)]

    def list_issues(self, *, labels=None, state="all"):
        self._record("list_issues", labels=labels, state=state)
        return [dict(i) for i in self.issues]

    def get_issue(self, number: int):
        self._record("get_issue", number=number)
        return dict(self._find(number))

    def create_issue(self, *, title, body, labels=None, assignees=None):
        self._record("create_issue", title=title, body=body, labels=labels, assignees=assignees)
        number = max((i["number"] for i in self.issues), default=0) + 1
        issue = {
            "number": number,
            "title": title,
            "body": body,
            "state": "open",
            "labels": list(labels or []),
            "assignees": list(assignees or []),
        }
        self.issues.append(issue)
        return dict(issue)

    def update_issue(self, number: int, **fields: Any):
        self._record("update_issue", number=number, **fields)
        issue = self._find(number)
        for name, value in fields.items():
            issue[name] = list(value) if name in ("labels", "assignees") else value
        return dict(issue)

    def close_issue(self, number: int):
        self._record("close_issue", number=number)
        issue = self._find(number)
        issue["state"] = "closed"
        return dict(issue)

    def get_rate_limit(self):
        self._record("get_rate_limit")
        return self.rate_limit

    def add_label(self, name: str, color: str, description: str | None = None):
        self._record("add_label", name=name, color=color, description=description)
        if name in self.labels:
            raise RuntimeError(
                'Validation Failed: {"resource":"Label","code":"already_exists","field":"name"}'
            )
        self.labels.add(name)
        return {"name": name, "color": color, "description": description}


def make_issue(
    number: int,
    key: str,
    data: Any,
    *,
    state: str = "open",
    body_before: str | None = None,
    body_after: str | None = None,
    labels: Iterable[str] = ("issue-db",),
) -> dict[str, Any]:
    return {
        "number": number,
        "title": key,
        "body": generate_body(data, body_before=body_before, body_after=body_after),
        "state": state,
        "labels": list(labels),
        "assignees": [],
    }


class RecordingLogger(StructuredLogger):
    """DEBUG-level logger writing text lines into memory."""

    def __init__(self) -> None:
        self.stream = io.StringIO()
        super().__init__(name="issuedb.test", level="DEBUG", stream=self.stream)

    @property
    def lines(self) -> list[str]:
        return [line for line in self.stream.getvalue().splitlines() if line]

    def contains(self, text: str) -> bool:
        return any(text in line for line in self.lines)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps(clock: FakeClock) -> RecordingSleep:
    return RecordingSleep(clock)


@pytest.fixture
def logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "GITHUB_TOKEN",
        "GH_TOKEN",
        "ISSUE_DB_REPO",
        "ISSUE_DB_LABEL",
        "ISSUE_DB_CACHE_EXPIRY",
        "ISSUE_DB_RETRIES",
        "ISSUE_DB_SLEEP",
        "ISSUE_DB_EXPONENTIAL_BACKOFF",
        "ISSUE_DB_LOG_JSON",
        "ISSUE_DB_GITHUB_APP_ID",
        "ISSUE_DB_GITHUB_APP_INSTALLATION_ID",
        "ISSUE_DB_GITHUB_APP_KEY",
        "ISSUE_DB_GITHUB_API",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


# --- Timing utilities to help identify slow/stalling tests ---


def pytest_runtest_setup(item):  # type: ignore
    _TEST_START_TIMES[item.nodeid] = time.perf_counter()


def pytest_runtest_teardown(item):  # type: ignore
    start = _TEST_START_TIMES.pop(item.nodeid, None)
    if start is not None:
        _TEST_DURATIONS.append((item.nodeid, time.perf_counter() - start))


def pytest_sessionfinish(session, exitstatus):  # type: ignore
    if not _TEST_DURATIONS:
        return
    slow = sorted(_TEST_DURATIONS, key=lambda x: x[1], reverse=True)[:10]
    print("\n=== Slowest Tests (top 10) ===")
    for nodeid, secs in slow:
        print(f"{secs:0.3f}s  {nodeid}")
