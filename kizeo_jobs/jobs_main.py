"""CLI entrypoint for ledger status and maintenance."""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict

from kizeo_jobs.config import KizeoJobsConfig
from kizeo_jobs.download_main import setup_logging
from kizeo_jobs.errors import KizeoJobsError
from kizeo_jobs.models import JobKind
from kizeo_jobs.service import JobService
from kizeo_jobs.session import ConnectionRegistry


async def run_command(
    args: argparse.Namespace, config: KizeoJobsConfig, logger: logging.Logger
) -> Dict[str, Any]:
    """Run one maintenance command and return its report."""
    registry = await ConnectionRegistry.create(config.db_dsn)
    try:
        async with registry.open_session(logger) as session:
            service = JobService(config, session, logger)
            kind = JobKind(args.kind) if getattr(args, "kind", None) else None

            if args.command == "status":
                report = await service.get_stats(args.agency)
                if args.failed:
                    failed = await service.list_recent_failed(
                        limit=args.limit, kind=kind, tenant_code=args.agency
                    )
                    report["recent_failed"] = [job.to_dict() for job in failed]
                return report

            if args.command == "purge":
                return await service.purge_jobs(
                    days=args.days,
                    include_failed=args.include_failed,
                    failed_days=args.failed_days,
                    dry_run=args.dry_run,
                )

            if args.command == "reset-failed":
                count = await service.reset_failed_jobs(kind=kind, tenant_code=args.agency)
                return {"reset": count}

            raise ValueError(f"Unknown command {args.command}")
    finally:
        await registry.close()


def print_status(report: Dict[str, Any]) -> None:
    for kind, counts in report["by_kind"].items():
        line = ", ".join(f"{status}={count}" for status, count in counts.items())
        print(f"{kind:<6} {line}")
    for tenant, counts in report.get("by_tenant", {}).items():
        line = ", ".join(f"{status}={count}" for status, count in sorted(counts.items()))
        print(f"  {tenant:<5} {line}")
    for job in report.get("recent_failed", []):
        print(
            f"  #{job['id']} {job['kind']} {job['tenant_code']} "
            f"attempts={job['attempts']} error={job['last_error']}"
        )


def main(argv=None):
    """Main entrypoint for ledger maintenance."""
    setup_logging()
    logger = logging.getLogger(__name__)

    # --json goes on each subcommand so it can follow the subcommand name
    output = argparse.ArgumentParser(add_help=False)
    output.add_argument("--json", action="store_true", help="Print the report as JSON")

    parser = argparse.ArgumentParser(description="Job ledger status and maintenance")
    subparsers = parser.add_subparsers(dest="command", required=True)

    status = subparsers.add_parser("status", help="Show job counts", parents=[output])
    status.add_argument("--agency", help="Only this tenant")
    status.add_argument("--failed", action="store_true", help="List recent failed jobs")
    status.add_argument("--kind", choices=[kind.value for kind in JobKind])
    status.add_argument(
        "--limit", type=int, default=10, help="Failed jobs to list (default: 10)"
    )

    purge = subparsers.add_parser(
        "purge", help="Delete old terminal jobs", parents=[output]
    )
    purge.add_argument(
        "--days", type=int, default=14, help="Age of done jobs to delete (default: 14)"
    )
    purge.add_argument(
        "--include-failed", action="store_true", help="Also delete old failed jobs"
    )
    purge.add_argument(
        "--failed-days",
        type=int,
        default=30,
        help="Age of failed jobs to delete (default: 30)",
    )
    purge.add_argument("--dry-run", action="store_true", help="Only count")

    reset = subparsers.add_parser(
        "reset-failed", help="Move failed jobs back to pending", parents=[output]
    )
    reset.add_argument("--agency", help="Only this tenant")
    reset.add_argument("--kind", choices=[kind.value for kind in JobKind])

    args = parser.parse_args(argv)

    try:
        config = KizeoJobsConfig.from_env()
    except ValueError as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    try:
        report = asyncio.run(run_command(args, config, logger))
    except (KizeoJobsError, ValueError) as e:
        logger.error(str(e))
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)

    if args.json or args.command != "status":
        print(json.dumps(report, default=str))
    else:
        print_status(report)


if __name__ == "__main__":
    main()
