"""CLI entrypoint for provider list synchronisation."""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, Optional

from kizeo_jobs.client_list import ClientListService
from kizeo_jobs.config import KizeoJobsConfig
from kizeo_jobs.download_main import create_api_client, setup_logging
from kizeo_jobs.errors import KizeoJobsError
from kizeo_jobs.http_client import KizeoApiClient
from kizeo_jobs.lists import EquipmentListBuilder
from kizeo_jobs.reconciler import ListReconciler
from kizeo_jobs.repositories import (
    ContactRepository,
    EquipmentRepository,
    TenantRepository,
)
from kizeo_jobs.session import ConnectionRegistry, LedgerSession


def build_reconciler(
    config: KizeoJobsConfig,
    session: LedgerSession,
    api: KizeoApiClient,
    logger: logging.Logger,
) -> ListReconciler:
    """Wire a ListReconciler on one session."""
    builder = EquipmentListBuilder(EquipmentRepository(session, config), logger)
    return ListReconciler(
        config, api, builder, TenantRepository(session, config), logger=logger
    )


def build_client_service(
    config: KizeoJobsConfig,
    session: LedgerSession,
    api: KizeoApiClient,
    logger: logging.Logger,
) -> ClientListService:
    """Wire a ClientListService on one session."""
    return ClientListService(
        config,
        api,
        TenantRepository(session, config),
        ContactRepository(session, config),
        logger=logger,
    )


async def run_sync(
    command: str,
    config: KizeoJobsConfig,
    tenant_code: Optional[str] = None,
    subject_id: Optional[str] = None,
    dry_run: bool = False,
    logger: Optional[logging.Logger] = None,
) -> Dict[str, Any]:
    """Run one sync command and return its report."""
    logger = logger or logging.getLogger(__name__)
    api = create_api_client(config)
    registry = await ConnectionRegistry.create(config.db_dsn)

    try:
        async with registry.open_session(logger) as session:
            if command == "equipment":
                reconciler = build_reconciler(config, session, api, logger)
                return await reconciler.reconcile_all(tenant_code, dry_run=dry_run)

            service = build_client_service(config, session, api, logger)
            if command == "client-names":
                tenants = (
                    [tenant_code]
                    if tenant_code
                    else [t.code for t in await TenantRepository(session, config).list_active()]
                )
                report: Dict[str, Any] = {"tenants_failed": 0, "results": {}}
                for code in tenants:
                    try:
                        report["results"][code] = await service.sync_names(code, dry_run)
                    except KizeoJobsError as e:
                        logger.error(f"Name sync failed for tenant {code}: {e}")
                        report["tenants_failed"] += 1
                return report

            if command == "add-client":
                items = await service.append_client(tenant_code, subject_id)
                return {"tenants_failed": 0, "total": len(items)}

            raise ValueError(f"Unknown command {command}")
    finally:
        await registry.close()


def main(argv=None):
    """Main entrypoint for list synchronisation."""
    setup_logging()
    logger = logging.getLogger(__name__)

    # --json goes on each subcommand so it can follow the subcommand name
    output = argparse.ArgumentParser(add_help=False)
    output.add_argument("--json", action="store_true", help="Print the report as JSON")

    parser = argparse.ArgumentParser(description="Synchronise provider lists")
    subparsers = parser.add_subparsers(dest="command", required=True)

    equipment = subparsers.add_parser(
        "equipment",
        help="Merge local equipment into the provider equipment lists",
        parents=[output],
    )
    equipment.add_argument("--agency", help="Only this tenant (e.g. S40)")
    equipment.add_argument(
        "--dry-run", action="store_true", help="Compute the merge without writing it"
    )

    names = subparsers.add_parser(
        "client-names",
        help="Copy client names from the provider to local contacts",
        parents=[output],
    )
    names.add_argument("--agency", help="Only this tenant (e.g. S40)")
    names.add_argument(
        "--dry-run", action="store_true", help="Report changes without applying them"
    )

    add_client = subparsers.add_parser(
        "add-client",
        help="Append a local contact to the provider client list",
        parents=[output],
    )
    add_client.add_argument("--agency", required=True, help="Tenant of the contact")
    add_client.add_argument("--subject", required=True, help="Contact id to append")

    args = parser.parse_args(argv)

    try:
        config = KizeoJobsConfig.from_env()
    except ValueError as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    agency = args.agency.upper() if args.agency else None
    if agency and not config.is_valid_tenant(agency):
        logger.error(f"Invalid agency code: {args.agency}")
        sys.exit(1)

    try:
        report = asyncio.run(
            run_sync(
                args.command,
                config,
                tenant_code=agency,
                subject_id=getattr(args, "subject", None),
                dry_run=getattr(args, "dry_run", False),
                logger=logger,
            )
        )
    except KizeoJobsError as e:
        logger.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)

    if args.json:
        print(json.dumps(report, default=str))

    sys.exit(1 if report.get("tenants_failed") else 0)


if __name__ == "__main__":
    main()
