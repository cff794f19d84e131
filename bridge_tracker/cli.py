"""
Bridge Tracker - CLI.

============================================================
USAGE
============================================================
bridge-tracker snapshot
bridge-tracker snapshot --json
bridge-tracker leaderboard --top 50 --query 0xab
bridge-tracker export --output bridgers.csv
bridge-tracker watch --interval 60
bridge-tracker serve --port 8000

Configuration comes from the environment (.env supported):
ETHERSCAN_API_KEY, BRIDGE_CA, BRIDGE_WINDOW_SECONDS, ...
============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import TrackerConfig, set_config
from .exceptions import BridgeTrackerError
from .export import format_snapshot_text, leaderboard_csv, leaderboard_rows
from .models import RefreshResult
from .ranker import search
from .service import TrackerService


logger = logging.getLogger(__name__)


LOG_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)s | %(message)s"


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {number}")
    return number


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="bridge-tracker",
        description="Bridge in/out totals and top bridgers for a watched contract",
    )
    parser.add_argument(
        "--address", "-a",
        type=str,
        default=None,
        help="Watched contract address (default: BRIDGE_CA env)",
    )
    parser.add_argument(
        "--window-hours",
        type=float,
        default=None,
        help="Trailing volume window in hours (default: 24)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    snapshot = commands.add_parser("snapshot", help="Fetch once and print totals")
    snapshot.add_argument("--json", action="store_true", help="Print JSON instead of text")
    snapshot.add_argument("--top", type=_positive_int, default=20, help="Leaderboard rows to show")

    leaderboard = commands.add_parser("leaderboard", help="Print ranked bridgers")
    leaderboard.add_argument("--top", type=_positive_int, default=20)
    leaderboard.add_argument("--query", "-q", type=str, default=None, help="Address filter")

    export = commands.add_parser("export", help="Export the full leaderboard as CSV")
    export.add_argument("--output", "-o", type=Path, default=None, help="File (default: stdout)")
    export.add_argument("--raw", action="store_true", help="Amounts in wei instead of ETH")
    export.add_argument("--delimiter", type=str, default=",")

    watch = commands.add_parser("watch", help="Refresh on an interval and print each result")
    watch.add_argument("--interval", type=float, default=None, help="Seconds between refreshes")

    serve = commands.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", type=str, default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    return parser


def build_config(args: argparse.Namespace) -> TrackerConfig:
    """Environment config with CLI overrides."""
    config = TrackerConfig.from_env()
    if args.address:
        config.watched_address = args.address.strip().lower()
    if args.window_hours is not None:
        config.window_seconds = int(args.window_hours * 3600)
    config.validate()
    return config


# ============================================================
# COMMANDS
# ============================================================

def _print_result(result: RefreshResult, top: int) -> None:
    if result.error:
        print(f"!! {result.error}")
    if result.snapshot is not None:
        print(format_snapshot_text(result.snapshot, top=top))


async def _run_once(service: TrackerService) -> RefreshResult:
    try:
        return await service.refresh()
    finally:
        await service.close()


async def cmd_snapshot(service: TrackerService, args: argparse.Namespace) -> int:
    result = await _run_once(service)
    if result.error:
        logger.error(result.error)
        return 1

    if args.json:
        print(json.dumps(result.snapshot.to_dict(leaderboard_limit=args.top), indent=2))
    else:
        print(format_snapshot_text(result.snapshot, top=args.top))
    return 0


async def cmd_leaderboard(service: TrackerService, args: argparse.Namespace) -> int:
    result = await _run_once(service)
    if result.error:
        logger.error(result.error)
        return 1

    wallets = search(result.snapshot.leaderboard, args.query)
    if not wallets:
        print("No bridge data available")
        return 0
    for row in leaderboard_rows(wallets[:args.top]):
        print(f"{row.rank}\t{row.address}\t{row.total_amount}\t{row.transfer_count}\t{row.last_seen}")
    return 0


async def cmd_export(service: TrackerService, args: argparse.Namespace) -> int:
    result = await _run_once(service)
    if result.error:
        logger.error(result.error)
        return 1

    content = leaderboard_csv(
        result.snapshot.leaderboard,
        delimiter=args.delimiter,
        display_units=not args.raw,
    )
    if args.output is None:
        sys.stdout.write(content)
    else:
        args.output.write_text(content, encoding="utf-8")
        logger.info(f"Wrote {result.snapshot.unique_counterparty_count} rows to {args.output}")
    return 0


async def cmd_watch(service: TrackerService, args: argparse.Namespace) -> int:
    try:
        await service.run_forever(
            interval=args.interval,
            on_result=lambda result: _print_result(result, top=10),
        )
    finally:
        await service.close()
    return 0


def cmd_serve(config: TrackerConfig, args: argparse.Namespace) -> int:
    import uvicorn

    from .api import create_app

    app = create_app(TrackerService(config), background_refresh=True)
    logger.info(f"Starting Bridge Tracker API on {args.host}:{args.port}")
    uvicorn.run(app, host=args.host, port=args.port, log_level="info")
    return 0


COMMANDS = {
    "snapshot": cmd_snapshot,
    "leaderboard": cmd_leaderboard,
    "export": cmd_export,
    "watch": cmd_watch,
}


# ============================================================
# ENTRY POINT
# ============================================================

def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        config = build_config(args)
    except BridgeTrackerError as e:
        logger.error(str(e))
        return 2
    set_config(config)

    if args.command == "serve":
        return cmd_serve(config, args)

    service = TrackerService(config)
    try:
        return asyncio.run(COMMANDS[args.command](service, args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
