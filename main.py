# main.py

"""Entry point for the secondhand_search headless CLI."""

import argparse
import asyncio
import logging
import sys

from secondhand_search.config.logging_config import setup_logging
from secondhand_search.config.settings import Settings

logger = logging.getLogger("secondhand_search.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    valid_ids = ", ".join(s["id"] for s in Settings.AVAILABLE_SOURCES)

    parser = argparse.ArgumentParser(
        prog="secondhand_search",
        description="Korean second-hand marketplace search aggregator.",
        epilog=f"Available sources: {valid_ids}",
    )
    parser.add_argument(
        "query",
        nargs="?",
        default=None,
        help="Search query, e.g. \"아이폰 14\".",
    )
    parser.add_argument(
        "-s",
        "--sources",
        default=None,
        help="Comma-separated source IDs (default: all).",
    )
    parser.add_argument(
        "-l",
        "--limit",
        type=int,
        default=Settings.DEFAULT_LIMIT,
        help=(
            f"Maximum number of results, 1..{Settings.MAX_LIMIT} "
            f"(default: {Settings.DEFAULT_LIMIT})."
        ),
    )
    parser.add_argument(
        "--refresh",
        action="store_true",
        default=False,
        dest="force_refresh",
        help="Bypass the result cache.",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )
    parser.add_argument(
        "--details",
        action="store_true",
        default=False,
        help="Enrich every result with its product page detail.",
    )
    parser.add_argument(
        "--health",
        action="store_true",
        default=False,
        help="Run a connectivity health check on all sources.",
    )
    return parser


def _run_cli(args: argparse.Namespace) -> None:
    """Run headless CLI search and exit."""
    from secondhand_search.cli.runner import cli_search

    exit_code = asyncio.run(
        cli_search(
            query=args.query,
            source_csv=args.sources,
            limit=args.limit,
            force_refresh=args.force_refresh,
            output_format=args.output_format,
            with_details=args.details,
        )
    )
    sys.exit(exit_code)


def _run_health_check() -> None:
    """Run scraper connectivity health check."""
    from secondhand_search.cli.runner import run_health_check

    exit_code = asyncio.run(run_health_check())
    sys.exit(exit_code)


def main() -> None:
    """Route to the health check or a headless search."""
    log_file = setup_logging()
    logger.info("secondhand_search starting, log file: %s", log_file)

    parser = _build_parser()
    args = parser.parse_args()

    if args.health:
        _run_health_check()
    elif args.query is None:
        parser.print_usage(sys.stderr)
        sys.exit(1)
    else:
        _run_cli(args)


if __name__ == "__main__":
    main()
