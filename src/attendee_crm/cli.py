"""CLI entrypoint for the attendee CRM data layer."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional

from attendee_crm.auth.session import AuthSession, SessionStore
from attendee_crm.config.loader import (
    DEFAULT_CONFIG_PATH,
    get_log_level,
    load_config,
    resolve_database_url,
)
from attendee_crm.database.list_repo import (
    add_attendees_to_list,
    create_list,
    delete_list,
    list_lists_with_counts,
    remove_attendees_from_list,
)
from attendee_crm.database.sql_store import SqlRecordStore
from attendee_crm.database.sqlite_client import get_engine, session_context
from attendee_crm.query.models import FilterClause, FilterOperator
from attendee_crm.retrieval.fetcher import DataFetcher
from attendee_crm.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

# The CLI acts as a trusted local operator
CLI_SESSION = AuthSession(access_token="local-cli", user_id="cli-operator")


def _load_cli_config(args: argparse.Namespace) -> Dict[str, Any]:
    """Explicit --config must exist; the default path is optional."""
    if args.config:
        return load_config(Path(args.config))
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return {"version": 1}


def _fail(message: str) -> NoReturn:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def parse_filter_arg(text: str) -> FilterClause:
    """
    Parse ``property:operator[:value]`` into a FilterClause.

    Raises:
        ValueError: If the property or operator is missing or unknown
    """
    parts = text.split(":", 2)
    if len(parts) < 2 or not parts[0].strip() or not parts[1].strip():
        raise ValueError(f"Filter must look like property:operator[:value], got {text!r}")
    prop, operator = parts[0].strip(), parts[1].strip()
    try:
        op = FilterOperator(operator)
    except ValueError:
        choices = ", ".join(o.value for o in FilterOperator)
        raise ValueError(f"Unknown filter operator {operator!r} (choose from: {choices})") from None
    value = parts[2] if len(parts) == 3 else ""
    return FilterClause(property=prop, operator=op, value=value)


def cmd_init_db(args: argparse.Namespace) -> None:
    config = args.config_data
    database_url = resolve_database_url(config)
    get_engine(database_url)
    print(f"Schema ready at {database_url}")


def cmd_fetch(args: argparse.Namespace) -> None:
    config = args.config_data
    try:
        filters: List[FilterClause] = [parse_filter_arg(f) for f in (args.filter or [])]
    except ValueError as e:
        _fail(str(e))

    database_url = resolve_database_url(config)
    logger.info(f"Fetching from {database_url}")
    try:
        store = SqlRecordStore.from_url(database_url)
        sessions = SessionStore(CLI_SESSION)
        fetcher = DataFetcher.from_config(store, sessions.current, config)

        asyncio.run(
            fetcher.fetch_data(
                page=args.page,
                page_size=args.page_size,
                search_term=args.search or "",
                filters=filters,
                collection=args.collection,
                list_id=args.list_id,
            )
        )
    except ValueError as e:
        _fail(str(e))

    snapshot = fetcher.snapshot()
    print(json.dumps(snapshot.model_dump(mode="json"), indent=2, sort_keys=True))
    if snapshot.error:
        _fail(snapshot.error)


def cmd_lists_show(args: argparse.Namespace) -> None:
    with session_context(resolve_database_url(args.config_data)) as session:
        summaries = list_lists_with_counts(session)
    if not summaries:
        print("No lists.")
        return
    for summary in summaries:
        print(f"{summary.id}  {summary.name}  ({summary.count} attendee(s))")


def cmd_lists_create(args: argparse.Namespace) -> None:
    with session_context(resolve_database_url(args.config_data)) as session:
        try:
            row = create_list(session, args.name)
        except ValueError as e:
            _fail(str(e))
        session.commit()
        print(f"Created list {row.id} ({row.name})")


def cmd_lists_add(args: argparse.Namespace) -> None:
    with session_context(resolve_database_url(args.config_data)) as session:
        try:
            results = add_attendees_to_list(session, args.list_id, args.attendee_ids)
        except ValueError as e:
            _fail(str(e))
        session.commit()

    failed = [r for r in results if not r.success]
    for result in results:
        status = "ok" if result.success else "failed"
        note = f" ({result.error})" if result.error else ""
        print(f"{result.attendee_id}: {status}{note}")
    if failed:
        _fail(f"{len(failed)} attendee(s) could not be added")


def cmd_lists_remove(args: argparse.Namespace) -> None:
    with session_context(resolve_database_url(args.config_data)) as session:
        removed = remove_attendees_from_list(session, args.list_id, args.attendee_ids)
        session.commit()
    print(f"Removed {removed} attendee(s) from list {args.list_id}")


def cmd_lists_delete(args: argparse.Namespace) -> None:
    with session_context(resolve_database_url(args.config_data)) as session:
        deleted = delete_list(session, args.list_id)
        session.commit()
    if not deleted:
        _fail(f"List not found: {args.list_id}")
    print(f"Deleted list {args.list_id}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="attendee-crm",
        description="Conference-attendee CRM data layer",
    )
    parser.add_argument(
        "--config",
        type=str,
        help=f"Path to config YAML (default: {DEFAULT_CONFIG_PATH} if present)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands", required=True)

    # init-db command
    init_parser = subparsers.add_parser("init-db", help="Create the database schema")
    init_parser.set_defaults(func=cmd_init_db)

    # fetch command
    fetch_parser = subparsers.add_parser("fetch", help="Fetch a filtered page of records")
    fetch_parser.add_argument(
        "--collection",
        type=str,
        choices=["attendees", "health_systems", "conferences"],
        help="Collection to fetch (default: all three)",
    )
    fetch_parser.add_argument("--page", type=int, default=0, help="Zero-based page (default: 0)")
    fetch_parser.add_argument(
        "--page-size",
        type=int,
        default=None,
        help="Rows per page (default: fetch.page_size from config)",
    )
    fetch_parser.add_argument("--search", type=str, help="Free-text search term")
    fetch_parser.add_argument(
        "--filter",
        action="append",
        metavar="PROPERTY:OPERATOR[:VALUE]",
        help="Structured filter clause (repeatable, AND-combined)",
    )
    fetch_parser.add_argument("--list-id", type=str, help="Only attendees on this list")
    fetch_parser.set_defaults(func=cmd_fetch)

    # lists command
    lists_parser = subparsers.add_parser("lists", help="Saved attendee list commands")
    lists_subparsers = lists_parser.add_subparsers(dest="lists_subcommand", help="Lists subcommands", required=True)

    lists_show_parser = lists_subparsers.add_parser("show", help="Show lists with member counts")
    lists_show_parser.set_defaults(func=cmd_lists_show)

    lists_create_parser = lists_subparsers.add_parser("create", help="Create a list")
    lists_create_parser.add_argument("name", type=str)
    lists_create_parser.set_defaults(func=cmd_lists_create)

    lists_add_parser = lists_subparsers.add_parser("add", help="Add attendees to a list")
    lists_add_parser.add_argument("list_id", type=str)
    lists_add_parser.add_argument("attendee_ids", nargs="+")
    lists_add_parser.set_defaults(func=cmd_lists_add)

    lists_remove_parser = lists_subparsers.add_parser("remove", help="Remove attendees from a list")
    lists_remove_parser.add_argument("list_id", type=str)
    lists_remove_parser.add_argument("attendee_ids", nargs="+")
    lists_remove_parser.set_defaults(func=cmd_lists_remove)

    lists_delete_parser = lists_subparsers.add_parser("delete", help="Delete a list and its memberships")
    lists_delete_parser.add_argument("list_id", type=str)
    lists_delete_parser.set_defaults(func=cmd_lists_delete)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        args.config_data = _load_cli_config(args)
    except (FileNotFoundError, ValueError) as e:
        _fail(str(e))

    configure_logging(get_log_level(args.config_data))
    args.func(args)


if __name__ == "__main__":
    main()
