"""Command line entry point: ``bookmarkdown``.

Commands operate on the local tree kept in ``<state_dir>/state.json`` and
on the bookmark document in a GitHub Gist.

Exit codes: 0 success, 1 failure, 2 unresolved conflicts.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from . import __version__
from .config import Config, load_config
from .config_loader import ensure_config, load_file_config
from .core.client import GistClient
from .errors import BookmarkError, describe_error
from .logger import setup_logging
from .result import Result
from .service import BookmarkService
from .sync.detector import RemoteChangeDetector
from .sync.engine import SyncShell
from .sync.models import ConflictResolution, SyncResult
from .sync.remote import GistRepository, RemoteRepository
from .sync.reporter import format_conflicts, format_sync_result, result_to_json
from .sync.state import SyncState
from .sync.storage import JsonFileStore

logger = logging.getLogger(__name__)

STATE_FILE = "state.json"
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFLICTS = 2

# Commands that never talk to GitHub
LOCAL_COMMANDS = {"import", "export", "status", "init"}


def _stderr_print(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def load_runtime_config(args: argparse.Namespace, require_token: bool) -> Config:
    """Merge CLI flags, env vars (.env loaded first) and YAML config."""
    unified = load_file_config()
    # Only keys a config file sets; load_config owns the defaults.
    yaml_fallbacks: dict[str, Any] = {
        k: v
        for section in (unified.gist, unified.sync)
        for k, v in section.model_dump(mode="json", exclude_unset=True).items()
        if v is not None
    }
    if unified.logging.level.upper() == "DEBUG":
        yaml_fallbacks["debug"] = True
    return load_config(
        token=args.token,
        filename=args.filename,
        document_id=args.gist_id,
        state_dir=args.state_dir,
        strategy=args.strategy,
        debug=args.debug,
        yaml_fallbacks=yaml_fallbacks,
        require_token=require_token,
    )


def build_repository(config: Config) -> RemoteRepository:
    return GistRepository(GistClient(config))


def build_service(config: Config, with_sync: bool = True) -> BookmarkService:
    state = SyncState(JsonFileStore(Path(config.state_dir) / STATE_FILE))
    if not with_sync:
        return BookmarkService(state=state)
    shell = SyncShell(build_repository(config), state, config)
    return BookmarkService(shell=shell, state=state)


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def _report_failure(result: Result) -> int:
    assert result.error is not None
    _stderr_print(describe_error(result.error))
    return EXIT_FAILURE


def _report_sync(result: Result[SyncResult], as_json: bool) -> int:
    if not result.ok:
        return _report_failure(result)
    outcome = result.unwrap()
    if as_json:
        print(json.dumps(result_to_json(outcome), indent=2))
    else:
        print(format_sync_result(outcome))
        if outcome.has_conflicts:
            print()
            print(format_conflicts(outcome.conflicts))
    return EXIT_CONFLICTS if outcome.has_conflicts else EXIT_OK


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def cmd_pull(service: BookmarkService, args: argparse.Namespace) -> int:
    result = await service.load_from_remote()
    if not result.ok:
        return _report_failure(result)
    stats = service.get_stats()
    print(
        f"Pulled {stats.bookmark_count} bookmarks in "
        f"{stats.category_count} categories"
    )
    return EXIT_OK


async def cmd_push(service: BookmarkService, args: argparse.Namespace) -> int:
    return _report_sync(await service.save_to_remote(), args.json)


async def cmd_sync(service: BookmarkService, args: argparse.Namespace) -> int:
    result = await service.sync()
    if result.ok and result.unwrap().has_conflicts and args.resolve:
        resolutions = [
            ConflictResolution(path=conflict.path, choice=args.resolve)
            for conflict in result.unwrap().conflicts
        ]
        logger.info(
            "Resolving %d conflict(s) in favour of %s", len(resolutions), args.resolve
        )
        result = await service.resolve_and_sync(resolutions)
    return _report_sync(result, args.json)


async def cmd_status(service: BookmarkService, args: argparse.Namespace) -> int:
    stats = service.get_stats()
    state = service.state
    document_id = state.get_document_id() if state is not None else None
    last_synced = (
        state.get_last_synced(document_id) if state and document_id else None
    )
    info = {
        "document_id": document_id,
        "last_synced": last_synced.isoformat() if last_synced else None,
        **stats.model_dump(),
    }
    if args.json:
        print(json.dumps(info, indent=2))
    else:
        print(f"Document: {document_id or '(not synced yet)'}")
        print(f"Last synced: {info['last_synced'] or 'never'}")
        print(
            f"{stats.category_count} categories, {stats.bundle_count} bundles, "
            f"{stats.bookmark_count} bookmarks, {stats.tag_count} tags"
        )
    return EXIT_OK


async def cmd_import(service: BookmarkService, args: argparse.Namespace) -> int:
    result = await service.import_markdown(args.file)
    if not result.ok:
        return _report_failure(result)
    stats = service.get_stats()
    print(f"Imported {stats.bookmark_count} bookmarks from {args.file}")
    return EXIT_OK


async def cmd_export(service: BookmarkService, args: argparse.Namespace) -> int:
    result = await service.export_markdown(args.file)
    if not result.ok:
        return _report_failure(result)
    print(f"Wrote {result.unwrap()} bytes to {args.file}")
    return EXIT_OK


async def cmd_init(service: BookmarkService, args: argparse.Namespace) -> int:
    path = ensure_config()
    print(f"Config file: {path}")
    return EXIT_OK


async def cmd_watch(service: BookmarkService, args: argparse.Namespace) -> int:
    """Sync once, then re-sync whenever the remote version changes.

    Stops on Ctrl-C, or when a sync hits conflicts.
    """
    assert service.shell is not None
    _stderr_print("Validating GitHub connection...")
    try:
        login = await service.shell.repository.whoami()
    except (BookmarkError, OSError) as e:
        logger.error("GitHub connection failed: %s", e)
        _stderr_print(describe_error(e))
        return EXIT_FAILURE
    logger.info("Connected to GitHub as %s", login)
    _stderr_print(f"Connected to GitHub as {login}")

    first = await service.sync()
    code = _report_sync(first, args.json)
    if code != EXIT_OK:
        return code
    outcome = first.unwrap()
    assert outcome.document_id is not None

    finished = asyncio.Event()
    exit_code = EXIT_OK

    async def _on_change(document) -> None:
        nonlocal exit_code
        detector.pause()
        result = await service.sync(outcome.document_id)
        exit_code = _report_sync(result, args.json)
        if exit_code != EXIT_OK:
            finished.set()
            return
        synced = result.unwrap()
        if synced.version:
            detector.acknowledge(synced.version)
        detector.resume()

    detector = RemoteChangeDetector(
        service.shell.repository,
        outcome.document_id,
        interval=service.shell.config.poll_interval,
        on_change=_on_change,
        initial_version=outcome.version,
    )
    _stderr_print(
        f"Watching {outcome.document_id} every "
        f"{service.shell.config.poll_interval:.0f}s (Ctrl-C to stop)"
    )
    async with detector:
        await finished.wait()
    return exit_code


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bookmarkdown",
        description="Bookmarks as Markdown, synced with a GitHub Gist",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Fetch the collection from GitHub
  bookmarkdown pull

  # Merge local changes, keeping the local side of any conflict
  bookmarkdown sync --resolve local

  # Import an existing Markdown file, then push it
  bookmarkdown import bookmarks.md && bookmarkdown push

The GitHub token is read from --token, GITHUB_TOKEN (.env supported) or
the gist section of .bookmarkdown/config.yml.
        """,
    )
    parser.add_argument("--token", help="GitHub token (prefer GITHUB_TOKEN env var)")
    parser.add_argument("--gist-id", help="Use this gist instead of searching")
    parser.add_argument("--filename", help="File name inside the gist")
    parser.add_argument("--state-dir", help="Directory for local sync state")
    parser.add_argument(
        "--strategy",
        choices=["timestamp-based", "local-wins", "remote-wins"],
        help="How nodes changed on both sides are settled",
    )
    parser.add_argument("--json", action="store_true", help="Emit JSON output")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--debug-format",
        choices=["text", "json"],
        default="text",
        help="Log line format",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"bookmarkdown version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("pull", help="Replace the local tree with the remote copy")
    p.set_defaults(func=cmd_pull)

    p = sub.add_parser("push", help="Write the local tree to the remote copy")
    p.set_defaults(func=cmd_push)

    p = sub.add_parser("sync", help="Merge local and remote changes")
    p.add_argument(
        "--resolve",
        choices=["local", "remote"],
        help="Settle every conflict in favour of one side",
    )
    p.set_defaults(func=cmd_sync)

    p = sub.add_parser("status", help="Show the local tree and sync state")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("import", help="Replace the local tree with a Markdown file")
    p.add_argument("file")
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("export", help="Write the local tree to a Markdown file")
    p.add_argument("file")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("watch", help="Keep syncing while the remote copy changes")
    p.set_defaults(func=cmd_watch)

    p = sub.add_parser("init", help="Create a starter config file")
    p.set_defaults(func=cmd_init)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return its exit code."""
    args = build_parser().parse_args(argv)
    load_dotenv()

    remote = args.command not in LOCAL_COMMANDS
    try:
        config = load_runtime_config(args, require_token=remote)
    except ValueError as e:
        _stderr_print(f"ERROR: Configuration error: {e}")
        return EXIT_FAILURE

    setup_logging(
        mode="watch" if args.command == "watch" else "cli",
        debug=config.debug,
        log_file=args.log_file,
        debug_format=args.debug_format,
    )

    service = build_service(config, with_sync=remote)
    return asyncio.run(args.func(service, args))


def run() -> None:
    """Entry point that handles errors gracefully."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
