"""Issue body codec.

Records live in the issue body as a fenced JSON block between two guard lines::

    {optional free text}
    <!--- issue-db-start -->
    ```json
    {
      "key": "value"
    }
    ```
    <!--- issue-db-end -->
    {optional free text}

Text around the guards belongs to humans and is preserved verbatim.
"""

from __future__ import annotations

import json
from typing import Any, TypedDict

from .errors import DataParseError, MalformedBodyError

GUARD_START = "<!--- issue-db-start -->"
GUARD_END = "<!--- issue-db-end -->"
_FENCE = "```"


class ParsedBody(TypedDict):
    body_before: str
    data: Any
    body_after: str


def generate_body(
    data: Any,
    body_before: str | None = None,
    body_after: str | None = None,
    guard_start: str = GUARD_START,
    guard_end: str = GUARD_END,
) -> str:
    """Render ``data`` into an issue body, optionally surrounded by prose."""
    json_data = json.dumps(data, indent=2, ensure_ascii=False)

    body = ""
    if body_before is not None:
        body += f"{body_before}\n"
    body += f"{guard_start}\n"
    body += f"{_FENCE}json\n"
    body += f"{json_data}\n"
    body += f"{_FENCE}\n"
    body += f"{guard_end}\n"
    if body_after is not None:
        body += body_after
    return body


def _index_of(lines: list[str], guard: str, start: int = 0) -> int | None:
    for i in range(start, len(lines)):
        # bodies edited in the GitHub UI come back with CRLF line endings
        if lines[i].rstrip("\r") == guard:
            return i
    return None


def parse_body(
    text: str,
    guard_start: str = GUARD_START,
    guard_end: str = GUARD_END,
) -> ParsedBody:
    """Split an issue body into the prose before, the data, and the prose after."""
    lines = text.split("\n")
    start_index = _index_of(lines, guard_start)
    end_index = None if start_index is None else _index_of(lines, guard_end, start_index + 1)
    if start_index is None or end_index is None:
        raise MalformedBodyError("issue body is missing a guard start or guard end")

    data_lines = lines[start_index + 1 : end_index]
    if data_lines and _FENCE in data_lines[0]:
        data_lines = data_lines[1:]
    if data_lines and _FENCE in data_lines[-1]:
        data_lines = data_lines[:-1]

    try:
        data = json.loads("\n".join(data_lines))
    except json.JSONDecodeError as exc:
        raise DataParseError(f"issue body data is not valid JSON: {exc}") from exc

    return ParsedBody(
        body_before="\n".join(lines[:start_index]),
        data=data,
        body_after="\n".join(lines[end_index + 1 :]),
    )


__all__ = ["GUARD_START", "GUARD_END", "ParsedBody", "generate_body", "parse_body"]
