"""Error taxonomy & redaction helpers.

Every exception raised by issue-db itself derives from ``IssueDBError`` so
callers can catch the whole family in one place. Transport failures are not
wrapped: ``GitHubAPIError`` (and network errors from ``requests``) surface
unchanged once retries are exhausted.

Public API:
- exception classes (see ``__all__``)
- classify_error(exc) -> ErrorInfo
- is_secondary_rate_limit(exc) / is_already_exists(exc)
- redact(text) -> str
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any


class IssueDBError(Exception):
    """Base class for errors raised by issue-db."""


class RepoFormatError(IssueDBError, ValueError):
    """Raised when a repository identifier is not ``owner/name``."""


class ParseError(IssueDBError, ValueError):
    """Base class for issue body decoding failures."""


class MalformedBodyError(ParseError):
    """The issue body lacks a guard line (or is empty)."""


class DataParseError(ParseError):
    """The data segment between the guards is not valid JSON."""


class RecordNotFound(IssueDBError, LookupError):
    def __init__(self, key: str):
        super().__init__(f"no record found for key: {key}")
        self.key = key


class CacheRefreshError(IssueDBError):
    """The issue search could not produce a usable issue list."""


class AuthenticationError(IssueDBError):
    """No valid GitHub authentication method was provided."""


# GitHub token shapes plus PEM blocks; expanded as new token formats appear
_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"gh[pousr]_[A-Za-z0-9]{20,255}"),
    re.compile(r"github_pat_\w{20,}"),
    re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----[\s\S]*?-----END [A-Z ]*PRIVATE KEY-----"),
]

_REDACTION_PLACEHOLDER = "<redacted>"


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str
    transient: bool = False
    details: dict[str, Any] | None = None


def redact(text: str) -> str:
    """Redact sensitive tokens in arbitrary text."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of an exception by its message.

    GitHub signals secondary (abuse) rate limiting only through the error
    message, so the secondary check must run before the generic rate limit
    check.
    """
    msg = str(exc) if exc else ""
    low = msg.lower()
    name = exc.__class__.__name__

    if isinstance(exc, ParseError):
        return ErrorInfo("parse", redact(msg), name)
    if "secondary rate limit" in low or "abuse detection" in low:
        return ErrorInfo("github.secondary_rate_limit", redact(msg), name, transient=True)
    if "rate limit" in low:
        return ErrorInfo("github.rate_limit", redact(msg), name, transient=True)
    if "already_exists" in low:
        return ErrorInfo("github.already_exists", redact(msg), name)
    if any(k in low for k in ("timeout", "timed out", "connection reset", "temporarily unavailable")):
        return ErrorInfo("network", redact(msg), name, transient=True)
    return ErrorInfo("generic", redact(msg), name)


def is_secondary_rate_limit(exc: BaseException) -> bool:
    return classify_error(exc).category == "github.secondary_rate_limit"


def is_already_exists(exc: BaseException) -> bool:
    return classify_error(exc).category == "github.already_exists"


__all__ = [
    "IssueDBError",
    "RepoFormatError",
    "ParseError",
    "MalformedBodyError",
    "DataParseError",
    "RecordNotFound",
    "CacheRefreshError",
    "AuthenticationError",
    "ErrorInfo",
    "classify_error",
    "is_secondary_rate_limit",
    "is_already_exists",
    "redact",
]
