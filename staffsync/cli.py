"""
Provider Job Migration

Batch driver over `SyncOrchestrator.full_sync` with a polite pause between
pages.

Usage:
    staffsync-migrate --batch-size 50 --start-page 3 --end-page 10 --dry-run
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from collections.abc import Sequence

import httpx
import structlog

from staffsync.bootstrap import build_components
from staffsync.config import Settings, get_settings
from staffsync.kernel.errors import error_code_of
from staffsync.kernel.log import configure_logging
from staffsync.sync.orchestrator import SyncResult

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="staffsync-migrate",
        description="Migrate jobs from the staffing provider into the canonical store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Everything, 100 jobs per page
    staffsync-migrate

    # Pages 3 to 10 without writing anything
    staffsync-migrate -s 3 -e 10 --dry-run
        """,
    )
    parser.add_argument("--batch-size", "-b", type=int, default=100, help="Jobs per page (default: 100)")
    parser.add_argument("--start-page", "-s", type=int, default=1, help="Page to start from (default: 1)")
    parser.add_argument("--end-page", "-e", type=int, default=None, help="Last page to process (default: all)")
    parser.add_argument(
        "--dry-run",
        "-d",
        action="store_true",
        help="Fetch and transform but do not persist",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def print_configuration(args: argparse.Namespace) -> None:
    print("Running provider job migration with the following configuration:")
    print(f"- Batch Size: {args.batch_size}")
    print(f"- Start Page: {args.start_page}")
    if args.end_page:
        print(f"- End Page: {args.end_page}")
    else:
        print("- End Page: (all available pages)")
    print(f"- Dry Run: {'Yes' if args.dry_run else 'No'}")
    print(f"- Verbose Logging: {'Yes' if args.verbose else 'No'}")
    print()


def print_summary(result: SyncResult, duration: float) -> None:
    print()
    print("Migration completed:")
    print(f"- Total Jobs: {result.total}")
    print(f"- Successfully Processed: {result.succeeded}")
    print(f"- Failed: {result.failed}")
    print(f"- Duration: {duration:.2f} seconds")
    if result.dry_run:
        print()
        print("NOTE: This was a dry run. No data was saved.")


async def migrate(
    args: argparse.Namespace,
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> SyncResult:
    components = build_components(
        settings,
        dry_run=args.dry_run,
        page_size=args.batch_size,
        page_pause_seconds=settings.migration_page_pause_seconds,
        transport=transport,
    )
    try:
        return await components.orchestrator.full_sync(start_page=args.start_page, end_page=args.end_page)
    finally:
        components.metrics.flush()
        await components.aclose()


def main(
    argv: Sequence[str] | None = None,
    *,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    args = build_parser().parse_args(argv)
    settings = settings or get_settings()
    configure_logging("DEBUG" if args.verbose else settings.log_level, settings.log_format)

    print_configuration(args)
    print("Starting migration...")
    started = time.monotonic()

    try:
        result = asyncio.run(migrate(args, settings, transport=transport))
    except Exception as exc:
        logger.error("Migration failed", error_code=error_code_of(exc), error=str(exc))
        print()
        print("Migration failed:")
        print(f"  {type(exc).__name__}: {exc}")
        return 1

    print_summary(result, time.monotonic() - started)
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
