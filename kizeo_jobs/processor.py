"""Bounded batch processor for the job ledger."""

import asyncio
import gc
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, List, Optional, Tuple

import psutil

from kizeo_jobs.artifacts import ArtifactStore
from kizeo_jobs.config import KizeoJobsConfig
from kizeo_jobs.errors import (
    EmptyArtifactError,
    InvalidTenantError,
    KizeoJobsError,
    SessionUnavailableError,
)
from kizeo_jobs.http_client import KizeoApiClient
from kizeo_jobs.models import Job, JobKind, ProcessStats
from kizeo_jobs.registry import FetcherRegistry, fetcher_registry
from kizeo_jobs.session import CONNECTION_ERRORS, LedgerSession
from kizeo_jobs.store import JobStore

MB = 1024 * 1024
# Warn when a forced collection leaves more than this share of memory in use.
RETAINED_MEMORY_WARN_RATIO = 0.95


def current_rss() -> int:
    """Resident set size of this process in bytes."""
    return psutil.Process().memory_info().rss


class JobQueueProcessor:
    """
    Drains pending jobs of one kind in chunks.

    Each run resets stuck jobs, optionally resets failed ones, then fetches
    chunks fresh from the ledger until the limit is reached or nothing is
    pending. Everything is sequential: one external call at a time, paced by
    a fixed delay.
    """

    def __init__(
        self,
        config: KizeoJobsConfig,
        session: LedgerSession,
        api: KizeoApiClient,
        artifacts: Optional[ArtifactStore] = None,
        registry: Optional[FetcherRegistry] = None,
        logger: Optional[logging.Logger] = None,
        store: Optional[JobStore] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        memory_probe: Callable[[], int] = current_rss,
    ):
        self.config = config
        self.session = session
        self.api = api
        self.artifacts = artifacts or ArtifactStore(
            config.pdf_dir, config.photo_dir, logger
        )
        self.registry = registry or fetcher_registry
        self.logger = logger or logging.getLogger(__name__)
        self.store = store or JobStore(session)
        self.sleep = sleep
        self.memory_probe = memory_probe
        self._consecutive_recoveries = 0

    async def run(
        self,
        kind: JobKind,
        limit: int = 30,
        chunk_size: int = 5,
        tenant_code: Optional[str] = None,
        dry_run: bool = False,
        retry_failed: bool = False,
    ) -> ProcessStats:
        """
        Process up to ``limit`` pending jobs of ``kind``.

        Args:
            kind: Job kind to process
            limit: Maximum number of jobs handled in this run
            chunk_size: Number of jobs fetched and claimed per chunk
            tenant_code: Only process jobs of this tenant
            dry_run: List candidates without claiming or fetching anything
            retry_failed: Reset failed jobs to pending before starting

        Returns:
            ProcessStats with done, failed, skipped and bytes counters

        Raises:
            InvalidTenantError: If tenant_code is not a configured tenant
            SessionUnavailableError: If the ledger connection cannot be recovered
        """
        if limit < 1 or chunk_size < 1:
            raise ValueError("limit and chunk_size must be positive")
        if tenant_code is not None:
            tenant_code = tenant_code.upper()
            if not self.config.is_valid_tenant(tenant_code):
                raise InvalidTenantError(tenant_code)

        stats = ProcessStats()
        self._consecutive_recoveries = 0
        mode = " (dry run)" if dry_run else ""
        self.logger.info(
            f"Starting {kind.value} run{mode}: limit={limit}, chunk={chunk_size}, "
            f"tenant={tenant_code or 'all'}"
        )

        try:
            await self._prepare(kind, tenant_code, dry_run, retry_failed, stats)
            await self._drain(kind, limit, chunk_size, tenant_code, dry_run, stats)
        finally:
            self.logger.info(
                f"Finished {kind.value} run{mode}: done={stats.done}, "
                f"failed={stats.failed}, skipped={stats.skipped}, "
                f"would_fetch={stats.would_fetch}, bytes={stats.bytes}, chunks={stats.chunks}"
            )

        return stats

    async def _prepare(
        self,
        kind: JobKind,
        tenant_code: Optional[str],
        dry_run: bool,
        retry_failed: bool,
        stats: ProcessStats,
    ) -> None:
        if dry_run:
            self.logger.info("Dry run: stuck and failed jobs are left as they are")
            return

        stats.stuck_reset = await self._call_ledger(
            self.store.reset_stuck_jobs, kind, self.config.stuck_timeout_minutes
        )
        if stats.stuck_reset:
            self.logger.warning(
                f"Reset {stats.stuck_reset} {kind.value} jobs stuck in processing "
                f"for more than {self.config.stuck_timeout_minutes} minutes"
            )

        if retry_failed:
            stats.failed_reset = await self._call_ledger(
                self.store.reset_failed_jobs, kind, tenant_code
            )
            self.logger.info(f"Reset {stats.failed_reset} failed {kind.value} jobs to pending")

    async def _drain(
        self,
        kind: JobKind,
        limit: int,
        chunk_size: int,
        tenant_code: Optional[str],
        dry_run: bool,
        stats: ProcessStats,
    ) -> None:
        handled = 0
        offset = 0

        while handled < limit:
            chunk = await self._call_ledger(
                self.store.fetch_pending_chunk,
                kind,
                min(chunk_size, limit - handled),
                tenant_code,
                offset,
            )
            if not chunk:
                self.logger.info(f"No more pending {kind.value} jobs")
                break

            stats.chunks += 1

            if dry_run:
                # nothing is claimed, so page past what was already listed
                offset += len(chunk)
                for job in chunk:
                    self._report_dry_run(job, stats)
                handled += len(chunk)
                continue

            exhausted = [job for job in chunk if job.attempts_exhausted]
            if exhausted:
                failed_ids = await self._call_ledger(
                    self.store.fail_exhausted, [job.id for job in exhausted]
                )
                stats.skipped += len(failed_ids)
                handled += len(failed_ids)
                for job_id in failed_ids:
                    self.logger.warning(f"Job {job_id} reached its max attempts, marked as failed")

            claimable = [job for job in chunk if not job.attempts_exhausted]
            claimed = set(
                await self._call_ledger(
                    self.store.mark_chunk_processing, [job.id for job in claimable]
                )
            )
            jobs = [job for job in claimable if job.id in claimed]
            if len(jobs) < len(claimable):
                self.logger.info(
                    f"{len(claimable) - len(jobs)} jobs of chunk {stats.chunks} were "
                    f"claimed by another run"
                )
            self.logger.info(f"Processing chunk {stats.chunks} ({len(jobs)} jobs)")

            for job in jobs:
                await self._run_job(job, stats)
                handled += 1

            del chunk, exhausted, claimable, jobs, claimed
            self._release_memory(stats.chunks)

    def _report_dry_run(self, job: Job, stats: ProcessStats) -> None:
        if job.attempts_exhausted:
            stats.skipped += 1
            self.logger.info(f"[dry run] job {job.id} would be failed (max attempts reached)")
            return
        stats.would_fetch += 1
        parts = ", ".join(job.media_refs) if job.media_refs else "-"
        self.logger.info(
            f"[dry run] job {job.id} would fetch {self.artifacts.build_path(job)} "
            f"(tenant={job.tenant_code}, record={job.external_record_id}, media={parts})"
        )

    async def _run_job(self, job: Job, stats: ProcessStats) -> None:
        try:
            await self._process_job(job, stats)
        except CONNECTION_ERRORS as e:
            # the ledger write may not have happened; the stuck reset reclaims the row
            stats.failed += 1
            self.logger.error(f"Lost ledger connection while processing job {job.id}: {e}")
            await self._recover(e)
            return
        self._consecutive_recoveries = 0

    async def _process_job(self, job: Job, stats: ProcessStats) -> None:
        attempt = await self.store.increment_attempts(job.id)
        self.logger.info(
            f"Fetching {job.kind.value} job {job.id} "
            f"(attempt {attempt}/{job.max_attempts}, record={job.external_record_id})"
        )

        try:
            path, size = await self._fetch_and_store(job)
        except Exception as e:
            error = str(e) or type(e).__name__
            await self.store.mark_failed(job.id, error)
            stats.failed += 1
            self.logger.error(f"Job {job.id} failed: {error}")
            return

        await self.store.mark_done(job.id, str(path), size)
        stats.done += 1
        stats.bytes += size
        self.logger.info(f"Job {job.id} done: {path} ({size} bytes)")

    async def _fetch_and_store(self, job: Job) -> Tuple[Path, int]:
        """
        Fetch every part of a job and write it to its deterministic path.

        Returns:
            Path of the last written part and the total size written
        """
        handler = self.registry.get_handler(job.kind)
        if handler is None:
            raise KizeoJobsError(f"No fetch handler registered for kind {job.kind.value}")

        ctx = {"api": self.api, "logger": self.logger}
        parts: List[Optional[str]] = list(job.media_refs) or [None]
        multi_part = len(parts) > 1

        last_path: Optional[Path] = None
        total = 0
        errors: List[str] = []

        for number, media_ref in enumerate(parts, start=1):
            if multi_part and not media_ref:
                self.logger.warning(f"Job {job.id}: empty media reference for part {number}")
                continue

            path = self.artifacts.build_path(job, number if multi_part else None)
            try:
                content = await handler(ctx, job, media_ref)
                size = self.artifacts.write(path, content)
            except Exception as e:
                if not multi_part:
                    raise
                errors.append(f"part {number}: {e}")
                self.logger.warning(f"Job {job.id}: part {number} failed: {e}")
                continue
            finally:
                await self._pace()

            last_path = path
            total += size

        if last_path is None:
            raise EmptyArtifactError(
                message="No media part could be downloaded: " + "; ".join(errors)
            )

        return last_path, total

    async def _pace(self) -> None:
        if self.config.api_delay_ms > 0:
            await self.sleep(self.config.api_delay_ms / 1000)

    async def _call_ledger(self, operation, *args):
        """Run a repeatable ledger call, reacquiring the session on connection loss."""
        while True:
            try:
                result = await operation(*args)
            except CONNECTION_ERRORS as e:
                self.logger.error(f"Lost ledger connection: {e}")
                await self._recover(e)
                continue
            self._consecutive_recoveries = 0
            return result

    async def _recover(self, error: BaseException) -> None:
        self._consecutive_recoveries += 1
        if self._consecutive_recoveries > self.config.max_session_recoveries:
            raise SessionUnavailableError(
                f"Ledger connection lost {self._consecutive_recoveries} times in a row"
            ) from error
        await self.session.ensure_usable()

    def _release_memory(self, chunk_number: int) -> None:
        gc.collect()
        before = self.memory_probe()
        threshold = self.config.memory_threshold_mb * MB
        if before <= threshold:
            self.logger.debug(f"Memory after chunk {chunk_number}: {before / MB:.1f} MB")
            return

        gc.collect()
        after = self.memory_probe()
        self.logger.info(
            f"Memory after chunk {chunk_number}: {before / MB:.1f} MB -> {after / MB:.1f} MB"
        )
        if after > before * RETAINED_MEMORY_WARN_RATIO:
            self.logger.warning(
                f"Memory still at {after / MB:.1f} MB after collection "
                f"(threshold {self.config.memory_threshold_mb} MB)"
            )
