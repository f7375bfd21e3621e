"""issue-db CLI.

Subcommands:
  init    -> create the management label in the repository
  create  -> create a record (no-op if the key already exists)
  read    -> print a record
  update  -> replace a record's data
  delete  -> close a record's issue (soft delete)
  list    -> print all records
  keys    -> print all record keys

Records are printed as JSON on stdout; logs go to stderr.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

import requests

from issuedb.config import ConfigError, DBConfig, config_from_env, load_config
from issuedb.core import IssueDB
from issuedb.errors import IssueDBError, redact
from issuedb.github_rest import GitHubAPIError
from issuedb.logging import configure_logging
from issuedb.models import Record

CONFIG_DEFAULT = "issue_db.config.yaml"
REPO_HELP = "Override target repository (owner/repo)"

_MAX_HELP_WIDTH = 100


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("--config", default=CONFIG_DEFAULT)
    p.add_argument("--repo", help=REPO_HELP)
    p.add_argument("--label", help="Override the management label")


def _add_write_options(p: argparse.ArgumentParser, *, body: bool = True) -> None:
    p.add_argument("--labels", help="Comma separated labels")
    p.add_argument("--assignees", help="Comma separated assignee logins")
    if body:
        p.add_argument("--body-before", help="Text placed above the data block")
        p.add_argument("--body-after", help="Text placed below the data block")


def _build_parser() -> argparse.ArgumentParser:
    p = _FormatterArgumentParser(
        prog="issue-db", description="A key/value store backed by GitHub issues"
    )
    p.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )

    pi = sub.add_parser("init", help="Create the management label")
    _add_common(pi)

    pc = sub.add_parser("create", help="Create a record")
    _add_common(pc)
    pc.add_argument("key")
    pc.add_argument("--data", required=True, help="JSON value to store")
    pc.add_argument("--include-closed", action="store_true")
    _add_write_options(pc)

    pr = sub.add_parser("read", help="Read a record")
    _add_common(pr)
    pr.add_argument("key")
    pr.add_argument("--include-closed", action="store_true")

    pu = sub.add_parser("update", help="Replace the data of a record")
    _add_common(pu)
    pu.add_argument("key")
    pu.add_argument("--data", required=True, help="JSON value to store")
    pu.add_argument("--include-closed", action="store_true")
    _add_write_options(pu)

    pd = sub.add_parser("delete", help="Close the issue backing a record")
    _add_common(pd)
    pd.add_argument("key")
    pd.add_argument("--include-closed", action="store_true")
    _add_write_options(pd, body=False)

    pl = sub.add_parser("list", help="List records")
    _add_common(pl)
    pl.add_argument("--include-closed", action="store_true")

    pk = sub.add_parser("keys", help="List record keys")
    _add_common(pk)
    pk.add_argument("--include-closed", action="store_true")
    return p


def prepare_config(args: argparse.Namespace) -> DBConfig:
    path = Path(args.config)
    cfg = load_config(path) if path.exists() else DBConfig()
    cfg = config_from_env(cfg)
    if getattr(args, "repo", None):
        cfg.repo = args.repo
    if getattr(args, "label", None):
        cfg.label = args.label
    if getattr(args, "json_logs", False):
        cfg.logging_json_enabled = True
    return cfg


def _open_db(cfg: DBConfig, *, init: bool) -> IssueDB:
    logger = configure_logging(
        json_logging=cfg.logging_json_enabled, level=cfg.logging_level, stream=sys.stderr
    )
    cfg.init_label = init
    return IssueDB.from_config(cfg, logger=logger)


def _split(value: str | None) -> list[str] | None:
    if value is None:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


def _load_data(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SystemExit(f"--data is not valid JSON: {exc}") from exc


def _write_options(args: argparse.Namespace) -> dict[str, Any]:
    options: dict[str, Any] = {"include_closed": args.include_closed}
    labels = _split(getattr(args, "labels", None))
    assignees = _split(getattr(args, "assignees", None))
    if labels is not None:
        options["labels"] = labels
    if assignees is not None:
        options["assignees"] = assignees
    for name in ("body_before", "body_after"):
        value = getattr(args, name, None)
        if value is not None:
            options[name] = value
    return options


def record_to_dict(record: Record) -> dict[str, Any]:
    return {
        "key": record.key,
        "data": record.data,
        "body_before": record.body_before,
        "body_after": record.body_after,
        "state": record.source_state,
        "number": record.source_id,
    }


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _run(args: argparse.Namespace, db: IssueDB) -> int:
    cmd = args.cmd
    if cmd == "init":
        created = db.init_label()
        _print({"label": db.label, "created": created})
    elif cmd == "create":
        _print(record_to_dict(db.create(args.key, _load_data(args.data), **_write_options(args))))
    elif cmd == "read":
        _print(record_to_dict(db.read(args.key, include_closed=args.include_closed)))
    elif cmd == "update":
        _print(record_to_dict(db.update(args.key, _load_data(args.data), **_write_options(args))))
    elif cmd == "delete":
        _print(record_to_dict(db.delete(args.key, **_write_options(args))))
    elif cmd == "list":
        _print([record_to_dict(r) for r in db.list(include_closed=args.include_closed)])
    elif cmd == "keys":
        _print(list(db.list_keys(include_closed=args.include_closed)))
    else:  # pragma: no cover - argparse enforces valid choices
        return 2
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        cfg = prepare_config(args)
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    if not cfg.repo:
        print("error: no repository configured (use --repo or ISSUE_DB_REPO)", file=sys.stderr)
        return 2
    try:
        # ``init`` creates the label itself and must surface failures
        db = _open_db(cfg, init=cfg.init_label and args.cmd != "init")
        return _run(args, db)
    except (IssueDBError, GitHubAPIError, requests.RequestException) as exc:
        print(f"error: {redact(str(exc))}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
