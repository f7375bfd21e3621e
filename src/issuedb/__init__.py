"""issue-db - a key/value document store backed by GitHub issues.

High-level public API (stable):

from issuedb import IssueDB

db = IssueDB("octo-org/records")          # GITHUB_TOKEN or GitHub App env vars
record = db.create("event123", {"cool": True})
db.read("event123").data                  # {"cool": True}
db.update("event123", {"cool": False})
db.delete("event123")                     # soft delete: closes the issue
db.list_keys(include_closed=True)

Each record is an issue labelled ``issue-db``; its title is the key and its
data is a JSON block embedded in the body between guard comments.
"""

from __future__ import annotations

from .config import DBConfig, config_from_env, load_config
from .core import IssueDB
from .errors import (
    AuthenticationError,
    CacheRefreshError,
    DataParseError,
    IssueDBError,
    MalformedBodyError,
    ParseError,
    RecordNotFound,
    RepoFormatError,
)
from .models import Record, Repository
from .retry import RetryConfig

# Version constant (sync manually with pyproject)
__version__ = "0.1.0"

__all__ = [
    "IssueDB",
    "Record",
    "Repository",
    "RetryConfig",
    "DBConfig",
    "load_config",
    "config_from_env",
    "IssueDBError",
    "RepoFormatError",
    "ParseError",
    "MalformedBodyError",
    "DataParseError",
    "RecordNotFound",
    "CacheRefreshError",
    "AuthenticationError",
    "__version__",
]
