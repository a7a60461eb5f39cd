"""Command line entry point: serve the HTTP API or run one automation in the foreground."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from automation import AutomationOrchestrator
from automation_types import RunSnapshot, RunStatus
from config import AppConfig, load_config
from exceptions import FormFillError
from history import JsonHistoryStore
from server import serve

STATUS_MARKS = {
    "pending": " ",
    "in-progress": "~",
    "success": "+",
    "error": "!",
}


def _setup_file_logging(log_file: Optional[Path], logger: logging.Logger) -> None:
    """Mirror log output into a rotating file next to the console handler."""
    if log_file is None:
        return
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        handler.setFormatter(logging.Formatter("[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"))
        logging.getLogger().addHandler(handler)
        logger.info(f"Logging to {log_file}")
    except OSError:
        logger.exception("Failed to set up file logging")


def print_summary(snapshot: RunSnapshot) -> None:
    """Print a step-by-step summary of a finished run."""
    print("\n" + "=" * 60)
    print("AUTOMATION SUMMARY")
    print("=" * 60)
    print(f"URL:      {snapshot.url}")
    print(f"Status:   {snapshot.status.value}")
    if snapshot.duration_ms is not None:
        print(f"Duration: {snapshot.duration_ms / 1000:.1f}s")
    for step in snapshot.steps:
        line = f"  [{STATUS_MARKS.get(step.status.value, '?')}] {step.title}"
        if step.error_message:
            line += f": {step.error_message}"
        print(line)
    for instance in snapshot.instances:
        print(f"  instance {instance.id} ({instance.value}): {instance.status.value}")
    print("=" * 60)


async def run_once(args: argparse.Namespace, config: AppConfig, logger: logging.Logger) -> int:
    """Execute a single run with the configured settings."""
    settings = config.settings
    if args.value:
        values = list(args.value)
    else:
        values = settings.values

    history = JsonHistoryStore(config.server.history_file, logger=logger)
    orchestrator = AutomationOrchestrator(history=history, logger=logger)
    try:
        snapshot = await orchestrator.run(args.url, values, settings.to_pipeline_options())
    except (KeyboardInterrupt, asyncio.CancelledError):
        await orchestrator.cancel()
        raise

    print_summary(snapshot)
    return 0 if snapshot.status == RunStatus.COMPLETED else 1


def _build_arg_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Fill and submit a web form in parallel browser sessions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s serve                                   # HTTP API on 127.0.0.1:5000
  %(prog)s serve --host 0.0.0.0 --port 8080
  %(prog)s run --url https://example.com/form      # values from settings
  %(prog)s run --url https://example.com/form --value 14 --value 15 --headful
        """,
    )
    parser.add_argument("--config", help="Path to config file (default: config.json if exists)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    parser.add_argument("--quiet", "-q", action="store_true", help="Suppress non-essential output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", help="Bind address (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, help="Bind port (default: 5000)")
    serve_parser.add_argument("--data-dir", help="Directory for history and settings files")
    serve_parser.add_argument("--headful", action="store_true", help="Show browser windows")

    run_parser = subparsers.add_parser("run", help="Run one automation and print the result")
    run_parser.add_argument("--url", required=True, help="Form URL to open in every browser")
    run_parser.add_argument(
        "--value",
        action="append",
        help="Value for one browser instance (repeat per instance; default: settings value1/value2)",
    )
    run_parser.add_argument("--timeout", type=int, metavar="SECONDS", help="Per-operation timeout")
    run_parser.add_argument(
        "--browser",
        choices=["chromium", "firefox", "webkit"],
        help="Browser engine to use (default: chromium)",
    )
    run_parser.add_argument("--headful", action="store_true", help="Show browser windows")

    return parser


def main() -> None:
    """Main entry point."""
    parser = _build_arg_parser()
    args = parser.parse_args()

    if args.quiet:
        log_level = logging.WARNING
    elif args.verbose:
        log_level = logging.DEBUG
    else:
        log_level = logging.INFO

    logging.basicConfig(
        level=log_level,
        format="[%(levelname)s] %(message)s" if not args.verbose else "[%(levelname)s] %(name)s: %(message)s",
    )
    logger = logging.getLogger("formfill")

    cli_overrides = {
        "host": getattr(args, "host", None),
        "port": getattr(args, "port", None),
        "data_dir": getattr(args, "data_dir", None),
        "timeout": getattr(args, "timeout", None),
        "browser": getattr(args, "browser", None),
        "headful": getattr(args, "headful", None),
        "verbose": args.verbose or None,
    }

    try:
        config = load_config(Path(args.config) if args.config else None, cli_overrides)
        if args.command == "serve":
            _setup_file_logging(config.server.log_file, logger)
            asyncio.run(serve(config))
            exit_code = 0
        else:
            exit_code = asyncio.run(run_once(args, config, logger))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        exit_code = 130
    except FormFillError as exc:
        logger.error(f"Error: {exc}")
        exit_code = 1
    except Exception as exc:
        logger.exception(f"Unexpected error: {exc}")
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
