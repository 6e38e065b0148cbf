"""Command-line entry point — one-off runs, source listing, and the scheduler."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from techscout.config import Config, load_config
from techscout.ingestion import build_default_registry
from techscout.ingestion.adapter import VALID_TIERS
from techscout.ingestion.aggregator import aggregator_stats
from techscout.jobs import aggregator_config, all_sources_failed, run_ingestion
from techscout.storage import init_db

logger = logging.getLogger("techscout")


def _setup_logging(log_level: str, log_format: str) -> None:
    """Configure root logger based on config."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps(
                {
                    "time": "%(asctime)s",
                    "level": "%(levelname)s",
                    "logger": "%(name)s",
                    "message": "%(message)s",
                }
            )
        )
    else:
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="techscout",
        description="Aggregate technology signals from public feeds.",
    )
    parser.add_argument("--env-file", help="Path to a .env file to load")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run one ingestion pass")
    run.add_argument("--dry-run", action="store_true", help="Fetch and dedup without storing")
    run.add_argument(
        "--source", action="append", default=[], dest="sources", metavar="NAME",
        help="Restrict to a source (repeatable)",
    )
    run.add_argument(
        "--tier", action="append", default=[], dest="tiers", choices=sorted(VALID_TIERS),
        help="Restrict to a tier (repeatable)",
    )
    run.add_argument("--stack", help="Comma-separated project stack, e.g. react,supabase")
    run.add_argument("--max-items", type=int, help="Cap on raw items per source")
    run.add_argument("--timeout", type=float, help="Per-source timeout in seconds")
    run.add_argument(
        "--stop-on-error", action="store_true", help="Stop after the first failed source"
    )

    subparsers.add_parser("sources", help="List registered sources")
    subparsers.add_parser("schedule", help="Run ingestion on an interval")
    return parser


def _run_overrides(args: argparse.Namespace) -> dict:
    overrides: dict = {
        "sources": args.sources,
        "tiers": args.tiers,
        "dry_run": args.dry_run,
    }
    if args.stack is not None:
        overrides["stack"] = [s.strip() for s in args.stack.split(",") if s.strip()]
    if args.max_items is not None:
        overrides["max_items_per_source"] = args.max_items
    if args.timeout is not None:
        overrides["source_timeout_seconds"] = args.timeout
    if args.stop_on_error:
        overrides["continue_on_error"] = False
    return overrides


def _cmd_run(config: Config, args: argparse.Namespace) -> int:
    options = aggregator_config(config, **_run_overrides(args))
    if not options.dry_run:
        init_db(config.database_path)
    result = run_ingestion(config, options=options)
    print(json.dumps(result.summary(), indent=2))
    return 1 if all_sources_failed(result) else 0


def _cmd_sources(config: Config) -> int:
    print(json.dumps(aggregator_stats(build_default_registry(config)), indent=2))
    return 0


def _build_scheduler(config: Config) -> BlockingScheduler:
    """Create a BlockingScheduler with the ingestion job, first run immediately."""
    scheduler = BlockingScheduler()

    def _scheduled_ingestion() -> None:
        try:
            run_ingestion(config)
        except Exception:
            logger.exception("Scheduled ingestion failed; scheduler will continue")

    scheduler.add_job(
        _scheduled_ingestion,
        trigger=IntervalTrigger(minutes=config.fetch_interval_minutes),
        id="ingestion",
        name="Feed ingestion",
        next_run_time=datetime.now(timezone.utc),
    )
    return scheduler


def _cmd_schedule(config: Config) -> int:
    init_db(config.database_path)
    scheduler = _build_scheduler(config)
    logger.info("Scheduler starting (every %d minutes)", config.fetch_interval_minutes)
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler shutting down")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, load config, set up logging, and dispatch."""
    args = _build_parser().parse_args(argv)
    uses_database = args.command == "schedule" or (args.command == "run" and not args.dry_run)
    config = load_config(args.env_file, require_database=uses_database)

    _setup_logging(config.log_level, config.log_format)
    logger.info("TechScout starting (env=%s, db=%s)", config.app_env, config.database_path)

    if args.command == "run":
        return _cmd_run(config, args)
    if args.command == "sources":
        return _cmd_sources(config)
    return _cmd_schedule(config)


if __name__ == "__main__":
    sys.exit(main())
