"""CLI entry point for the Gait feed client.

Provides ``gait-feed log``, ``show``, ``diff`` and ``watch`` subcommands.
Global flags override the matching GAIT_ environment variables.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

from gait.api.client import GitBackendClient
from gait.app import GaitApp
from gait.errors import BackendError
from gait.layout import render_split_text, render_unified_text, to_split_view, to_unified_view
from gait.logging import configure_logging
from gait.models import Commit
from gait.search import SearchFilters
from gait.status import StatusMessage


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point (``gait-feed`` command)."""
    parser = argparse.ArgumentParser(
        prog="gait-feed",
        description="Browse commits and diffs served by a Gait backend",
    )
    parser.add_argument("--base-url", help="Backend base URL")
    parser.add_argument("--token", help="Bearer token for the backend")
    parser.add_argument("--no-ssr", action="store_true", help="Skip server-rendered pages")
    sub = parser.add_subparsers(dest="command")

    # gait-feed log
    log_parser = sub.add_parser("log", help="List commits")
    log_parser.add_argument("--limit", type=int, help="Commits per page")
    log_parser.add_argument("--pages", type=int, default=1, help="Pages to load")
    log_parser.add_argument("--tag", help="Only commits reachable from this tag")
    log_parser.add_argument("--search", help="Filter the loaded commits")
    log_parser.add_argument(
        "--files", action="store_true", help="Also match file paths when searching"
    )

    # gait-feed show
    show_parser = sub.add_parser("show", help="Show a commit and its changed files")
    show_parser.add_argument("hash", help="Commit hash, or 'uncommitted'")

    # gait-feed diff
    diff_parser = sub.add_parser("diff", help="Show the diff of one file")
    diff_parser.add_argument("hash", help="Commit hash, or 'uncommitted'")
    diff_parser.add_argument("path", help="File path")
    diff_parser.add_argument("--unified", action="store_true", help="Unified instead of split")
    diff_parser.add_argument("--width", type=int, default=60, help="Split column width")

    # gait-feed watch
    sub.add_parser("watch", help="Print live notifications from the backend")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(1)

    # Apply CLI flag overrides before anything reads settings
    if args.base_url:
        os.environ["GAIT_BASE_URL"] = args.base_url
    if args.token:
        os.environ["GAIT_TOKEN"] = args.token
    if args.no_ssr:
        os.environ["GAIT_USE_SSR"] = "0"
    configure_logging()

    handlers = {
        "log": _run_log,
        "show": _run_show,
        "diff": _run_diff,
        "watch": _run_watch,
    }
    try:
        code = asyncio.run(handlers[args.command](args))
    except KeyboardInterrupt:
        code = 130
    if code:
        sys.exit(code)


def _format_commit(commit: Commit) -> str:
    if commit.is_uncommitted:
        return f"{'*' * 7}  {len(commit.file_changes)} uncommitted change(s)"
    when = commit.date.strftime("%Y-%m-%d") if commit.date else "?"
    return f"{commit.display_hash}  {when}  {commit.author.name}  {commit.subject}"


async def _run_log(args: argparse.Namespace) -> int:
    """Handle ``gait-feed log``."""
    app = GaitApp(client=GitBackendClient(), page_limit=args.limit, realtime=False)
    try:
        if not await app.start():
            return _report_failure(app)
        if args.tag:
            if not await app.feed.enter_tag_mode(args.tag):
                return _report_failure(app)
        for _ in range(max(args.pages, 1) - 1):
            if not await app.feed.load_more():
                break
        if args.search:
            await app.feed.search(args.search, SearchFilters(files=args.files))
        for commit in app.feed.entries():
            print(_format_commit(commit))
        return 0
    finally:
        await app.stop()


async def _run_show(args: argparse.Namespace) -> int:
    """Handle ``gait-feed show``."""
    app = GaitApp(client=GitBackendClient(), realtime=False)
    try:
        app.expansion.hydrate()
        if args.hash == "uncommitted":
            await app.feed.refresh_uncommitted()
        commit = await app.feed.fetch_details(args.hash)
        if commit is None:
            return _report_failure(app)
        print(_format_commit(commit))
        if commit.message and not commit.is_uncommitted:
            print()
            for line in commit.message.splitlines():
                print(f"    {line}")
            print()
        scope = app.feed.scope_for(commit.hash)
        for change in commit.file_changes:
            marker = "v" if app.expansion.is_expanded(scope, change.path) else ">"
            print(
                f"{marker} {change.status.value:<9} +{change.additions:<5} "
                f"-{change.deletions:<5} {change.path}"
            )
        return 0
    finally:
        await app.stop()


async def _run_diff(args: argparse.Namespace) -> int:
    """Handle ``gait-feed diff``."""
    client = GitBackendClient()
    try:
        diff = await client.get_file_diff(args.hash, args.path)
    except BackendError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 1
    finally:
        await client.aclose()
    if args.unified:
        print(render_unified_text(to_unified_view(diff)))
    else:
        print(render_split_text(to_split_view(diff), column=args.width))
    return 0


async def _run_watch(args: argparse.Namespace) -> int:
    """Handle ``gait-feed watch``."""

    def show(message: StatusMessage) -> None:
        print(f"[{message.at:%H:%M:%S}] {message.level}: {message.text}", flush=True)

    app = GaitApp(client=GitBackendClient(), realtime=True)
    app.status.add_listener(show)
    try:
        await app.start()
        await app.refresh_analytics()
        await asyncio.Event().wait()
    finally:
        await app.stop()
    return 0


def _report_failure(app: GaitApp) -> int:
    last = app.status.last
    if last is not None and last.level == "error":
        print(f"error: {last.text}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    main()
