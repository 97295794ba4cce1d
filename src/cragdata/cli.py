"""Command-line interface for cragdata.

Usage:
    cragdata run
    cragdata run summits locations --format json
    cragdata run --no-cache --export-dir export/
    cragdata cache stats
    cragdata cache clear
"""

import argparse
import asyncio
import json
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

from cragdata import __version__
from cragdata.cache import JsonStore
from cragdata.config import load_source_definitions, settings
from cragdata.core.errors import ProcessingError
from cragdata.core.results import RunSummary
from cragdata.export import ParquetExporter
from cragdata.pipeline import Orchestrator

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=1)


def create_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser.

    Returns:
        Configured ArgumentParser with all commands and arguments.
    """
    parser = argparse.ArgumentParser(
        prog="cragdata",
        description="cragdata — incremental climbing data processing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cragdata run
  cragdata run summits locations --format json
  cragdata cache clear
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser(
        "run",
        help="Process sources and their dependencies",
        description="Process configured sources, reusing fresh cache entries",
    )
    run_parser.add_argument(
        "sources",
        nargs="*",
        help="Source names to process (default: all configured sources)",
    )
    run_parser.add_argument(
        "--sources-file",
        type=Path,
        default=Path(settings.sources_file),
        help=f"Source definitions JSON (default: {settings.sources_file})",
    )
    run_parser.add_argument(
        "--cache-dir",
        type=Path,
        default=Path(settings.cache_dir),
        help=f"Directory for the JSON cache (default: {settings.cache_dir})",
    )
    run_parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Ignore the cache and process every source fresh",
    )
    run_parser.add_argument(
        "--export-dir",
        type=Path,
        default=None,
        help="Write completed datasets as Parquet into this directory",
    )
    run_parser.add_argument(
        "--format",
        type=str,
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )
    run_parser.add_argument(
        "--allow-partial",
        action="store_true",
        help="Exit with 0 even if some sources failed",
    )

    cache_parser = subparsers.add_parser("cache", help="Inspect or clear the cache")
    cache_parser.add_argument("action", choices=["stats", "clear"], help="Cache action")
    cache_parser.add_argument(
        "--cache-dir",
        type=Path,
        default=Path(settings.cache_dir),
        help=f"Directory for the JSON cache (default: {settings.cache_dir})",
    )

    subparsers.add_parser("version", help="Show version information")

    return parser


def _run_async(coro):
    """Run an async coroutine from synchronous CLI context.

    Spins up a new event loop in a dedicated thread to avoid conflicts
    with any existing event loop.
    """
    def _target():
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(coro)
        finally:
            loop.close()

    future = _executor.submit(_target)
    return future.result()


def format_summary(summary: RunSummary) -> str:
    """Render a run summary as plain text."""
    lines = []
    for name, result in summary.results.items():
        line = f"{name}: {result.status.value}"
        if result.ok:
            line += f" ({result.record_count} records, {result.processing_time_ms}ms)"
        elif result.error:
            line += f" — {result.error}"
        elif result.reason:
            line += f" ({result.reason})"
        lines.append(line)

    stats = summary.statistics
    lines.append("")
    lines.append(
        f"{stats.successful_sources} completed, {stats.failed_sources} failed, "
        f"{stats.skipped_sources} skipped — {stats.total_records} records, "
        f"{len(stats.errors)} errors, {len(stats.warnings)} warnings"
    )
    return "\n".join(lines)


async def _run(args: argparse.Namespace) -> RunSummary:
    definitions = load_source_definitions(args.sources_file)
    use_cache = settings.cache_enabled and not args.no_cache
    cache = JsonStore(args.cache_dir) if use_cache else None

    importers = [ParquetExporter(args.export_dir)] if args.export_dir is not None else []

    orchestrator = Orchestrator(definitions, cache=cache, importers=importers)
    return await orchestrator.process_all(args.sources or None)


def cmd_run(args: argparse.Namespace) -> int:
    """Execute the run command.

    Returns:
        0 if every source completed or was skipped (or --allow-partial),
        1 otherwise
    """
    try:
        logger.info(
            "Running sources from %s (cache_dir=%s, cache=%s)",
            args.sources_file, args.cache_dir, not args.no_cache,
        )
        summary = _run_async(_run(args))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except ProcessingError as e:
        logger.error("Run failed: %s", e.formatted())
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.error("Run failed: %s", e, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.format == "json":
        print(json.dumps(summary.to_dict(), indent=2))
    else:
        print(format_summary(summary))

    if summary.statistics.failed_sources and not args.allow_partial:
        return 1
    return 0


def cmd_cache(args: argparse.Namespace) -> int:
    """Execute the cache command."""
    store = JsonStore(args.cache_dir)
    try:
        if args.action == "clear":
            _run_async(store.clear())
            print(f"Cache cleared: {args.cache_dir}")
        else:
            stats = _run_async(store.get_cache_stats())
            print(f"{stats['entries']} entries, {stats['size_bytes']} bytes in {args.cache_dir}")
    except OSError as e:
        logger.error("Cache %s failed: %s", args.action, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    """Execute the version command."""
    print(f"cragdata v{__version__}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command == "run":
        return cmd_run(args)
    elif args.command == "cache":
        return cmd_cache(args)
    elif args.command == "version":
        return cmd_version(args)
    else:
        parser.print_help()
        return 0


def cli_entry() -> None:
    """Entry point for console_scripts."""
    sys.exit(main())


if __name__ == "__main__":
    cli_entry()
