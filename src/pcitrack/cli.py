"""PCI Tracker CLI.

Usage:
    pcitrack jobs list
    pcitrack jobs run <name>
    pcitrack schedule
    pcitrack status --expiration-date DATE [--validated true|false] [--now DATE]
    pcitrack migrate [--revision REV]

Jobs: expiration_scan, status_reconciliation, weekly_report

Exit codes:
    0: Success
    1: Internal error
    2: Invalid input / unknown job
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from pcitrack.config import ConfigError, load_settings
from pcitrack.errors import JobNotFoundError
from pcitrack.jobs.context import build_context
from pcitrack.lifecycle.status import days_remaining, derive_status
from pcitrack.models.document import ValidationMethod, ValidationResult
from pcitrack.scheduler.cron import CronError
from pcitrack.scheduler.registry import build_scheduler

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _output_json(data: Any) -> None:
    """Output JSON to stdout with deterministic ordering."""
    print(json.dumps(data, sort_keys=True, indent=2, default=str))


def _error(code: str, message: str, **details: Any) -> dict[str, Any]:
    return {"code": code, "message": message, "details": details or None}


def _parse_datetime(raw: str) -> datetime:
    """ISO date or datetime; naive values are taken as UTC."""
    value = datetime.fromisoformat(raw)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def _parse_bool(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in ("1", "true", "yes"):
        return True
    if lowered in ("0", "false", "no"):
        return False
    raise ValueError(f"expected true or false, got {raw!r}")


def cmd_jobs_list(args: argparse.Namespace) -> int:
    """List registered jobs with their schedules and next firing time."""
    scheduler = build_scheduler(build_context())
    now = scheduler.now()
    _output_json(
        [
            {
                "name": job.name,
                "schedule": job.schedule.expression,
                "next_run_at": job.schedule.next_after(now).isoformat(),
            }
            for job in scheduler.jobs()
        ]
    )
    return 0


def cmd_jobs_run(args: argparse.Namespace) -> int:
    """Run one job now and print its summary.

    Exit codes:
        0: Job completed
        2: Unknown job name
    """
    scheduler = build_scheduler(build_context())
    try:
        result = asyncio.run(scheduler.run(args.name))
    except JobNotFoundError as e:
        _output_json(_error(e.code, str(e), known_jobs=e.known))
        return 2

    _output_json(result.model_dump(mode="json"))
    return 0


async def _run_scheduler_forever() -> None:
    scheduler = build_scheduler(build_context())
    await scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.stop()


def cmd_schedule(args: argparse.Namespace) -> int:
    """Run the scheduler loop in the foreground until interrupted."""
    try:
        asyncio.run(_run_scheduler_forever())
    except KeyboardInterrupt:
        logger.info("Scheduler interrupted")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Derive the lifecycle status for the given dates and verdict.

    Exit codes:
        0: Status derived
        2: Invalid date or verdict
    """
    try:
        expiration = _parse_datetime(args.expiration_date)
        now = _parse_datetime(args.now) if args.now else datetime.now(UTC)
        validation: ValidationResult | None = None
        if args.validated is not None:
            validation = ValidationResult(
                is_valid=_parse_bool(args.validated),
                method=ValidationMethod.MANUAL,
                validated_at=now,
            )
    except ValueError as e:
        _output_json(_error("INVALID_INPUT", str(e)))
        return 2

    status = derive_status(expiration, validation, now, args.threshold)
    _output_json(
        {
            "status": status.value,
            "days_remaining": days_remaining(expiration, now),
            "now": now.isoformat(),
        }
    )
    return 0


def cmd_migrate(args: argparse.Namespace) -> int:
    """Apply database migrations up to a revision."""
    from pcitrack.persistence.db import DatabaseConfigError
    from pcitrack.persistence.migrate import run_upgrade

    try:
        run_upgrade(revision=args.revision)
    except DatabaseConfigError as e:
        _output_json(_error("DATABASE_NOT_CONFIGURED", str(e)))
        return 2

    _output_json({"migrated_to": args.revision})
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="pcitrack",
        description="PCI Tracker - compliance document lifecycle jobs",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (logs go to stderr)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    jobs_parser = subparsers.add_parser("jobs", help="List or run lifecycle jobs")
    jobs_subparsers = jobs_parser.add_subparsers(dest="jobs_command", help="Job subcommands")
    jobs_subparsers.add_parser("list", help="List registered jobs")
    run_parser = jobs_subparsers.add_parser("run", help="Run a job now")
    run_parser.add_argument("name", help="Job name")

    subparsers.add_parser("schedule", help="Run the scheduler loop in the foreground")

    status_parser = subparsers.add_parser("status", help="Derive a document status")
    status_parser.add_argument(
        "--expiration-date", required=True, metavar="DATE", help="ISO expiration date"
    )
    status_parser.add_argument(
        "--validated",
        default=None,
        metavar="BOOL",
        help="Validation verdict (true/false); omit when not yet validated",
    )
    status_parser.add_argument(
        "--now", default=None, metavar="DATE", help="Reference instant (default: current time)"
    )
    status_parser.add_argument(
        "--threshold",
        type=int,
        default=None,
        metavar="DAYS",
        help="Expiring-soon window in days (default: PCITRACK_EXPIRING_SOON_DAYS)",
    )

    migrate_parser = subparsers.add_parser("migrate", help="Apply database migrations")
    migrate_parser.add_argument("--revision", default="head", help="Target revision")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Exit codes:
        0: Success
        1: Internal error (unexpected)
        2: Invalid input / unknown job / missing configuration
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)

    try:
        if args.command is None:
            parser.print_help()
            return 0

        if args.command == "jobs":
            if args.jobs_command == "list":
                return cmd_jobs_list(args)
            if args.jobs_command == "run":
                return cmd_jobs_run(args)
            parser.parse_args(["jobs", "--help"])
            return 0

        if args.command == "schedule":
            return cmd_schedule(args)

        if args.command == "status":
            if args.threshold is None:
                args.threshold = load_settings().expiring_soon_days
            return cmd_status(args)

        if args.command == "migrate":
            return cmd_migrate(args)

        return 0

    except (ConfigError, CronError) as e:
        _output_json(_error("INVALID_CONFIGURATION", str(e)))
        return 2

    except Exception as e:
        logger.error("Command failed: %s", e, exc_info=True)
        _output_json(_error("INTERNAL_ERROR", str(e)))
        return 1


if __name__ == "__main__":
    sys.exit(main())
