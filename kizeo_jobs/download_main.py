"""CLI entrypoint and programmatic interface for artifact downloads."""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Optional

from kizeo_jobs.config import KizeoJobsConfig
from kizeo_jobs.errors import InvalidTenantError, SessionUnavailableError
from kizeo_jobs.http_client import KizeoApiClient
from kizeo_jobs.models import JobKind, ProcessStats
from kizeo_jobs.processor import JobQueueProcessor
from kizeo_jobs.session import ConnectionRegistry


def setup_logging():
    """Setup logging configuration."""
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_api_client(config: KizeoJobsConfig) -> KizeoApiClient:
    """Create the provider API client from config."""
    return KizeoApiClient(
        config.api_url,
        config.api_token,
        timeout=config.api_timeout_seconds,
        media_timeout=config.media_timeout_seconds,
        pdf_timeout=config.pdf_timeout_seconds,
    )


async def run_downloads(
    kind: JobKind,
    limit: int = 30,
    chunk_size: int = 5,
    tenant_code: Optional[str] = None,
    dry_run: bool = False,
    retry_failed: bool = False,
    config: Optional[KizeoJobsConfig] = None,
    registry: Optional[ConnectionRegistry] = None,
    api: Optional[KizeoApiClient] = None,
    logger: Optional[logging.Logger] = None,
) -> ProcessStats:
    """
    Run one bounded download batch programmatically.

    Args:
        kind: Job kind to process
        limit: Maximum number of jobs handled
        chunk_size: Jobs per chunk
        tenant_code: Optional tenant filter
        dry_run: Only list what would be fetched
        retry_failed: Reset failed jobs to pending first
        config: KizeoJobsConfig instance. If None, will load from environment.
        registry: ConnectionRegistry. If None, will create one from config.
        api: Provider API client. If None, will create one from config.
        logger: Logger instance. If None, will create default logger.

    Example:
        ```python
        from kizeo_jobs import JobKind, run_downloads
        import asyncio

        stats = asyncio.run(run_downloads(JobKind.PDF, limit=50, tenant_code="S40"))
        ```
    """
    if config is None:
        config = KizeoJobsConfig.from_env()

    if logger is None:
        logger = logging.getLogger(__name__)

    if api is None:
        api = create_api_client(config)

    registry_provided = registry is not None
    if registry is None:
        registry = await ConnectionRegistry.create(config.db_dsn)

    try:
        async with registry.open_session(logger) as session:
            processor = JobQueueProcessor(config, session, api, logger=logger)
            return await processor.run(
                kind,
                limit=limit,
                chunk_size=chunk_size,
                tenant_code=tenant_code,
                dry_run=dry_run,
                retry_failed=retry_failed,
            )
    finally:
        if not registry_provided:
            await registry.close()


def main(argv=None):
    """Main entrypoint for downloads."""
    setup_logging()
    logger = logging.getLogger(__name__)

    parser = argparse.ArgumentParser(description="Download PDFs and photos from the forms provider")
    parser.add_argument(
        "--kind",
        required=True,
        choices=[kind.value for kind in JobKind],
        help="Kind of artifact to download",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=30,
        help="Max number of jobs handled in this run (default: 30)",
    )
    parser.add_argument(
        "--chunk",
        type=int,
        default=5,
        help="Jobs fetched and claimed per chunk (default: 5)",
    )
    parser.add_argument("--agency", help="Only process jobs of this tenant (e.g. S40)")
    parser.add_argument(
        "--dry-run", action="store_true", help="List candidates without fetching"
    )
    parser.add_argument(
        "--retry-failed",
        action="store_true",
        help="Reset failed jobs to pending before processing",
    )
    parser.add_argument("--json", action="store_true", help="Print the summary as JSON")

    args = parser.parse_args(argv)

    try:
        config = KizeoJobsConfig.from_env()
    except ValueError as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    try:
        stats = asyncio.run(
            run_downloads(
                JobKind(args.kind),
                limit=args.limit,
                chunk_size=args.chunk,
                tenant_code=args.agency,
                dry_run=args.dry_run,
                retry_failed=args.retry_failed,
                config=config,
                logger=logger,
            )
        )
    except (InvalidTenantError, ValueError) as e:
        logger.error(str(e))
        sys.exit(1)
    except SessionUnavailableError as e:
        logger.error(f"Aborting run, database session lost: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)

    if args.json:
        print(json.dumps(stats.to_dict()))
    else:
        print(
            f"done={stats.done} failed={stats.failed} skipped={stats.skipped} "
            f"bytes={stats.bytes}"
            + (f" would_fetch={stats.would_fetch}" if args.dry_run else "")
        )

    sys.exit(stats.exit_code)


if __name__ == "__main__":
    main()
