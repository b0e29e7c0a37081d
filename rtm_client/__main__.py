"""Entry point for python -m rtm_client.

Supports both TUI mode (default) and CLI subcommands.

Usage:
    # Launch TUI
    python -m rtm_client

    # CLI commands
    python -m rtm_client tasks --filter "due:today"
    python -m rtm_client lists
    python -m rtm_client add-task "Buy milk tomorrow"
    python -m rtm_client add-tag urgent --filter "priority:1"
    python -m rtm_client auth-app KEY SECRET --perm write
    python -m rtm_client logout
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from rich.console import Console
from rich.text import Text


def _setup_logging(args: argparse.Namespace) -> None:
    """Configure logging based on command-line arguments."""
    from rtm_client.logging_config import setup_logging

    # The TUI owns the terminal, so it never logs to the console
    tui = args.command in (None, "tui")
    if args.debug:
        setup_logging(
            level="DEBUG",
            log_to_console=not tui,
            log_to_file=True,
        )
    else:
        setup_logging(
            level=args.log_level,
            log_to_console=False,
            log_to_file=not args.no_log_file,
        )


def _print_json(data: Any) -> None:
    """Print data as JSON to stdout."""
    print(json.dumps(data, indent=2, default=str))


def _print_table(rows: list[dict[str, Any]], columns: list[str]) -> None:
    """Print data as a simple table."""
    if not rows:
        print("No results.")
        return

    widths = {col: len(col) for col in columns}
    for row in rows:
        for col in columns:
            widths[col] = max(widths[col], len(str(row.get(col, ""))))

    header = "  ".join(col.ljust(widths[col]) for col in columns)
    print(header)
    print("-" * len(header))
    for row in rows:
        print("  ".join(str(row.get(col, "")).ljust(widths[col]) for col in columns))


def _console(args: argparse.Namespace) -> Console:
    color = getattr(args, "color", "auto")
    if color == "always":
        return Console(force_terminal=True)
    if color == "never":
        return Console(no_color=True, highlight=False)
    return Console()


def _error(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


def _task_json(task: Any) -> dict[str, Any]:
    return {
        "list_id": task.list_id,
        "taskseries_id": task.taskseries_id,
        "id": task.id,
        "name": task.name,
        "due": task.due,
        "has_due_time": task.has_due_time,
        "completed": task.completed,
        "priority": task.priority.value,
        "tags": task.tags,
        "url": task.url,
    }


# =============================================================================
# CLI Command Handlers
# =============================================================================


async def cmd_tasks(args: argparse.Namespace) -> int:
    """Handle tasks command. Exits 1 when nothing matches."""
    from rtm_client.client import external_id_filter
    from rtm_client.exceptions import RtmClientError
    from rtm_client.models import Perms
    from rtm_client.services import connect, ensure_authorized
    from rtm_client.status_display import format_due, format_time_left

    result = connect()
    if not result.success:
        return _error(result.error or "Could not start client")
    client = result.client
    assert client is not None and result.settings is not None
    if args.extid is not None:
        filter_text = external_id_filter(args.extid)
    elif args.filter is not None:
        filter_text = args.filter
    else:
        filter_text = result.settings.default_filter

    try:
        await ensure_authorized(client, Perms.READ)
        if args.list:
            by_list = {args.list: await client.fetch_tasks(args.list, filter_text)}
        else:
            by_list = await client.fetch_tasks_filtered(filter_text)
        by_list = {list_id: tasks for list_id, tasks in by_list.items() if tasks}
        if not by_list:
            return 1
        names = {task_list.id: task_list.name for task_list in await client.fetch_lists()}
    except RtmClientError as e:
        return _error(str(e))
    finally:
        await client.aclose()

    if args.json:
        _print_json([
            {"list": names.get(list_id, list_id), "tasks": [_task_json(t) for t in tasks]}
            for list_id, tasks in by_list.items()
        ])
        return 0

    console = _console(args)
    for list_id, tasks in by_list.items():
        console.print(Text(f"#{names.get(list_id, list_id)}", style="magenta"))
        for task in tasks:
            line = format_time_left(task.time_left())
            line.append(f"  {task.name}")
            console.print(line)
            if args.verbose:
                console.print(f"   id: {task.taskseries_id}/{task.id}", markup=False)
                console.print(f"   created: {task.created}", markup=False)
                console.print(f"   modified: {task.modified}", markup=False)
                console.print(f"   tags: {', '.join(task.tags)}", markup=False)
                if task.repeat is not None:
                    kind = "every" if task.repeat.every else "after"
                    console.print(f"   repeat: {kind} {task.repeat.rule}", markup=False)
                if task.due is not None:
                    console.print(f"   due: {format_due(task)}", markup=False)
                if task.added is not None:
                    console.print(f"   added: {task.added}", markup=False)
                if task.completed is not None:
                    console.print(f"   completed: {task.completed}", markup=False)
    return 0


async def cmd_lists(args: argparse.Namespace) -> int:
    """Handle lists command."""
    from rtm_client.exceptions import RtmClientError
    from rtm_client.models import Perms
    from rtm_client.services import connect, ensure_authorized

    result = connect()
    if not result.success:
        return _error(result.error or "Could not start client")
    client = result.client
    assert client is not None

    try:
        await ensure_authorized(client, Perms.READ)
        lists = await client.fetch_lists()
    except RtmClientError as e:
        return _error(str(e))
    finally:
        await client.aclose()

    rows = [
        {
            "id": tl.id,
            "name": tl.name,
            "smart": tl.smart,
            "archived": tl.archived,
            "filter": tl.filter,
        }
        for tl in lists
    ]
    if args.json:
        _print_json(rows)
    elif args.verbose:
        _print_table(rows, ["name", "id", "smart", "archived", "filter"])
    else:
        for task_list in lists:
            print(task_list.name)
    return 0


async def cmd_add_task(args: argparse.Namespace) -> int:
    """Handle add-task command."""
    from rtm_client.exceptions import RtmClientError
    from rtm_client.models import Perms
    from rtm_client.services import connect, ensure_authorized
    from rtm_client.status_display import format_due

    result = connect()
    if not result.success:
        return _error(result.error or "Could not start client")
    client = result.client
    assert client is not None

    try:
        await ensure_authorized(client, Perms.WRITE)
        change = await client.add_task(
            args.list,
            args.name,
            parse=not args.no_smart,
            external_id=args.external_id,
        )
    except RtmClientError as e:
        return _error(str(e))
    finally:
        await client.aclose()

    task = change.task
    if task is None:
        print("Successful result, but no task returned.")
        return 0
    if args.json:
        _print_json(_task_json(task))
        return 0
    print(f"Added task id {task.taskseries_id}")
    print(f"Name: {task.name}")
    print(f"Tags: {', '.join(task.tags)}")
    if task.due is not None and task.completed is None:
        print(f"  Due: {format_due(task)}")
    return 0


async def cmd_add_tag(args: argparse.Namespace) -> int:
    """Handle add-tag command: tag every matching task not already tagged."""
    from rtm_client.exceptions import RtmClientError
    from rtm_client.models import Perms
    from rtm_client.services import connect, ensure_authorized

    result = connect()
    if not result.success:
        return _error(result.error or "Could not start client")
    client = result.client
    assert client is not None

    try:
        await ensure_authorized(client, Perms.WRITE)
        by_list = await client.fetch_tasks_filtered(args.filter)
        seen: set[tuple[str, str]] = set()
        for tasks in by_list.values():
            for task in tasks:
                # Tags belong to the series; tag it once
                series = (task.list_id, task.taskseries_id)
                if series in seen or args.tag in task.tags:
                    continue
                seen.add(series)
                print(f"  Adding tag to {task.name}...")
                await client.add_tags(task.ref, [args.tag])
    except RtmClientError as e:
        return _error(str(e))
    finally:
        await client.aclose()
    return 0


async def cmd_auth_app(args: argparse.Namespace) -> int:
    """Handle auth-app command: save app keys and authorize a user."""
    from rtm_client.config import save_auth_config
    from rtm_client.exceptions import RtmClientError
    from rtm_client.models import AppSettings, AuthConfig, Perms
    from rtm_client.services import authorize_interactively, create_client

    perms = Perms(args.perm)
    client = create_client(args.key, args.secret, AppSettings(perms=perms))
    try:
        credential = await authorize_interactively(client.auth)
        save_auth_config(AuthConfig(api_key=args.key, api_secret=args.secret, credential=credential))
    except RtmClientError as e:
        return _error(str(e))
    finally:
        await client.aclose()

    print("Successfully authenticated.")
    return 0


async def cmd_logout(args: argparse.Namespace) -> int:
    """Handle logout command: remove the saved user token."""
    from rtm_client.config import clear_user_data
    from rtm_client.exceptions import ConfigError

    try:
        clear_user_data()
    except ConfigError as e:
        return _error(str(e))
    return 0


def cmd_tui(args: argparse.Namespace) -> int:
    """Launch the TUI."""
    from rtm_client.app import RtmApp
    from rtm_client.services import connect

    result = connect()
    if not result.success:
        return _error(result.error or "Could not start client")
    assert result.client is not None and result.settings is not None

    app = RtmApp(
        result.client,
        filter=args.filter if getattr(args, "filter", None) is not None
        else result.settings.default_filter,
        undo_capacity=result.settings.undo_capacity,
    )
    app.run()
    return 0


def _run_async(coro: Any) -> int:
    """Run an async coroutine and return exit code."""
    return asyncio.run(coro)


# =============================================================================
# Argument Parser Setup
# =============================================================================


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    """Add common arguments to a parser."""
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output in JSON format",
    )


def _create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="rtm",
        description="Remember The Milk client - terminal UI and command line",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Launch the TUI application
  rtm

  # Authorize the application (once)
  rtm auth-app KEY SECRET --perm write

  # Show tasks due today or overdue
  rtm tasks

  # Add a task using Smart Add
  rtm add-task "Buy milk tomorrow #shopping"

  # Find a task added by another tool
  rtm tasks --extid import-42
""",
    )

    # Global arguments
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Set log level (default: INFO)",
    )
    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help="Disable logging to file",
    )
    parser.add_argument(
        "--color",
        choices=["auto", "always", "never"],
        default="auto",
        help="Colorize output (default: auto)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # tui
    tui_parser = subparsers.add_parser("tui", help="Run the terminal UI (default)")
    tui_parser.add_argument("--filter", help="Initial task filter")

    # tasks
    tasks_parser = subparsers.add_parser("tasks", help="Show tasks")
    selection = tasks_parser.add_mutually_exclusive_group()
    selection.add_argument("--filter", help="Filter in RTM search syntax")
    selection.add_argument("--extid", help="Only show tasks with this external id")
    tasks_parser.add_argument("--list", help="Only show tasks of this list id")
    tasks_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show ids, dates and tags"
    )
    _add_common_args(tasks_parser)

    # lists
    lists_parser = subparsers.add_parser("lists", help="Show all lists")
    lists_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show ids and list details"
    )
    _add_common_args(lists_parser)

    # add-task
    add_task_parser = subparsers.add_parser("add-task", help="Add a new task")
    add_task_parser.add_argument("name", help="Task name (Smart Add syntax allowed)")
    add_task_parser.add_argument("--list", help="List id (default: Inbox)")
    add_task_parser.add_argument(
        "--no-smart", action="store_true", help="Do not parse Smart Add syntax"
    )
    add_task_parser.add_argument("--external-id", help="External id to attach")
    _add_common_args(add_task_parser)

    # add-tag
    add_tag_parser = subparsers.add_parser("add-tag", help="Add a tag to filtered tasks")
    add_tag_parser.add_argument("tag", help="Tag to add")
    add_tag_parser.add_argument("--filter", required=True, help="Filter selecting tasks")

    # auth-app
    auth_parser = subparsers.add_parser("auth-app", help="Authorise the app")
    auth_parser.add_argument("key", help="API key")
    auth_parser.add_argument("secret", help="Shared secret")
    auth_parser.add_argument(
        "--perm",
        choices=["read", "write", "delete"],
        default="read",
        help="Permission level to request (default: read)",
    )

    # logout
    subparsers.add_parser("logout", help="Remove the saved user token")

    return parser


def main() -> int:
    """Main entry point for the Remember The Milk client."""
    parser = _create_parser()
    args = parser.parse_args()

    _setup_logging(args)

    handlers = {
        "tasks": cmd_tasks,
        "lists": cmd_lists,
        "add-task": cmd_add_task,
        "add-tag": cmd_add_tag,
        "auth-app": cmd_auth_app,
        "logout": cmd_logout,
    }
    if args.command in handlers:
        return _run_async(handlers[args.command](args))

    # No subcommand - launch TUI
    return cmd_tui(args)


if __name__ == "__main__":
    sys.exit(main())
