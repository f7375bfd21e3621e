from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .errors import DataParseError, MalformedBodyError, RepoFormatError
from .parser import parse_body


@dataclass(frozen=True)
class Repository:
    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def parse(cls, value: str | None) -> Repository:
        cleaned = (value or "").strip()
        parts = cleaned.split("/")
        if len(parts) != 2 or not all(p.strip() for p in parts):  # noqa: PLR2004
            raise RepoFormatError(f"repository {value!r} is invalid - valid format: <owner>/<repo>")
        return cls(owner=parts[0].strip(), name=parts[1].strip())

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class Record:
    """Decoded document view of a single issue.

    Records are rebuilt from the raw issue after every write; ``source_data``
    is the normalized issue mapping the record was decoded from.
    """

    key: str
    data: Any
    body_before: str
    body_after: str
    source_state: str
    source_id: int | None
    source_data: Mapping[str, Any] = field(repr=False, compare=False)

    @property
    def closed(self) -> bool:
        return self.source_state == "closed"

    @classmethod
    def from_issue(cls, issue: Mapping[str, Any]) -> Record:
        number = issue.get("number")
        body = issue.get("body")
        if not isinstance(body, str) or not body.strip():
            raise MalformedBodyError(f"issue body is empty for issue number {number}")
        try:
            parsed = parse_body(body)
        except MalformedBodyError as exc:
            raise MalformedBodyError(f"{exc} (issue number {number})") from exc
        except DataParseError as exc:
            raise DataParseError(
                f"failed to parse issue body data contents for issue number: {number} - {exc}"
            ) from exc
        return cls(
            key=str(issue.get("title") or ""),
            data=parsed["data"],
            body_before=parsed["body_before"],
            body_after=parsed["body_after"],
            source_state=str(issue.get("state") or "open").lower(),
            source_id=number if isinstance(number, int) else None,
            source_data=issue,
        )


__all__ = ["Repository", "Record"]
