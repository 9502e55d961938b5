"""High-level service layer for ledger operations."""

import logging
from typing import Any, Dict, List, Optional

from kizeo_jobs.config import KizeoJobsConfig
from kizeo_jobs.errors import InvalidTenantError
from kizeo_jobs.models import Job, JobKind, JobPriority, JobStatus
from kizeo_jobs.session import LedgerSession
from kizeo_jobs.store import JobStore


class JobService:
    """High-level API used by producers, operators and the status endpoints."""

    def __init__(
        self,
        config: KizeoJobsConfig,
        session: LedgerSession,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.store = JobStore(session)
        self.logger = logger or logging.getLogger(__name__)

    def _normalize_tenant(self, tenant_code: Optional[str]) -> Optional[str]:
        if tenant_code is None:
            return None
        tenant_code = tenant_code.upper()
        if not self.config.is_valid_tenant(tenant_code):
            raise InvalidTenantError(tenant_code)
        return tenant_code

    async def enqueue_pdf_job(
        self,
        *,
        tenant_code: str,
        form_id: str,
        record_id: str,
        subject_id: Optional[str] = None,
        year: Optional[str] = None,
        visit_code: Optional[str] = None,
        equipment_ref: Optional[str] = None,
        client_name: Optional[str] = None,
        priority: int = JobPriority.URGENT,
    ) -> Optional[Job]:
        """
        Enqueue the technician PDF of one form record.

        Returns:
            The new job, or None if the record already has a PDF job
        """
        return await self._enqueue(
            kind=JobKind.PDF,
            tenant_code=tenant_code,
            form_id=form_id,
            record_id=record_id,
            media_refs=[],
            subject_id=subject_id,
            year=year,
            visit_code=visit_code,
            equipment_ref=equipment_ref,
            client_name=client_name,
            priority=priority,
        )

    async def enqueue_photo_job(
        self,
        *,
        tenant_code: str,
        form_id: str,
        record_id: str,
        media_refs: List[str],
        subject_id: Optional[str] = None,
        year: Optional[str] = None,
        visit_code: Optional[str] = None,
        equipment_ref: Optional[str] = None,
        priority: int = JobPriority.NORMAL,
    ) -> Optional[Job]:
        """
        Enqueue one equipment photo (possibly multi-part) of a form record.

        Returns:
            The new job, or None if an identical job already exists
        """
        if not media_refs:
            raise ValueError("A photo job needs at least one media reference")
        return await self._enqueue(
            kind=JobKind.PHOTO,
            tenant_code=tenant_code,
            form_id=form_id,
            record_id=record_id,
            media_refs=media_refs,
            subject_id=subject_id,
            year=year,
            visit_code=visit_code,
            equipment_ref=equipment_ref,
            client_name=None,
            priority=priority,
        )

    async def _enqueue(
        self,
        *,
        kind: JobKind,
        tenant_code: str,
        form_id: str,
        record_id: str,
        media_refs: List[str],
        subject_id: Optional[str],
        year: Optional[str],
        visit_code: Optional[str],
        equipment_ref: Optional[str],
        client_name: Optional[str],
        priority: int,
    ) -> Optional[Job]:
        tenant_code = self._normalize_tenant(tenant_code)

        if await self.store.job_exists(kind, form_id, record_id, media_refs):
            self.logger.debug(
                f"Skipping duplicate {kind.value} job for form {form_id} record {record_id}"
            )
            return None

        job = await self.store.insert_job(
            kind=kind,
            tenant_code=tenant_code,
            external_form_id=form_id,
            external_record_id=record_id,
            media_refs=media_refs,
            subject_id=subject_id,
            year=year,
            visit_code=visit_code,
            equipment_ref=equipment_ref,
            client_name=client_name,
            priority=priority,
            max_attempts=self.config.max_attempts,
        )
        self.logger.info(
            f"Enqueued {kind.value} job {job.id} for tenant {tenant_code}, "
            f"form {form_id}, record {record_id}"
        )
        return job

    async def get_job(self, job_id: int) -> Job:
        """Get a job by ID."""
        return await self.store.get_job(job_id)

    async def list_jobs(
        self,
        *,
        kind: Optional[JobKind] = None,
        status: Optional[JobStatus] = None,
        tenant_code: Optional[str] = None,
        limit: int = 50,
    ) -> List[Job]:
        """List jobs with optional filters."""
        return await self.store.list_jobs(
            kind=kind,
            status=status,
            tenant_code=self._normalize_tenant(tenant_code),
            limit=limit,
        )

    async def get_stats(self, tenant_code: Optional[str] = None) -> Dict[str, Any]:
        """Ledger counts per kind and status, plus per-tenant counts."""
        tenant_code = self._normalize_tenant(tenant_code)
        by_kind = await self.store.count_by_kind_and_status(tenant_code)
        stats: Dict[str, Any] = {"by_kind": by_kind}
        if tenant_code is None:
            stats["by_tenant"] = await self.store.count_by_tenant()
        return stats

    async def list_recent_failed(
        self,
        *,
        limit: int = 10,
        kind: Optional[JobKind] = None,
        tenant_code: Optional[str] = None,
    ) -> List[Job]:
        """List the most recently failed jobs."""
        return await self.store.list_recent_failed(
            limit=limit, kind=kind, tenant_code=self._normalize_tenant(tenant_code)
        )

    async def reset_failed_jobs(
        self,
        *,
        kind: Optional[JobKind] = None,
        tenant_code: Optional[str] = None,
    ) -> int:
        """Operator reset of failed jobs back to pending."""
        tenant_code = self._normalize_tenant(tenant_code)
        count = await self.store.reset_failed_jobs(kind=kind, tenant_code=tenant_code)
        self.logger.info(
            f"Reset {count} failed jobs to pending "
            f"(kind={kind.value if kind else 'all'}, tenant={tenant_code or 'all'})"
        )
        return count

    async def purge_jobs(
        self,
        *,
        days: int = 14,
        include_failed: bool = False,
        failed_days: int = 30,
        dry_run: bool = False,
    ) -> Dict[str, int]:
        """
        Delete old terminal jobs.

        Done jobs older than ``days`` are removed; failed jobs older than
        ``failed_days`` only when ``include_failed`` is set.
        """
        if days < 1 or failed_days < 1:
            raise ValueError("Purge retention must be at least one day")

        targets = [(JobStatus.DONE, days)]
        if include_failed:
            targets.append((JobStatus.FAILED, failed_days))

        result = {JobStatus.DONE.value: 0, JobStatus.FAILED.value: 0}
        for status, older_than in targets:
            if dry_run:
                result[status.value] = await self.store.count_purgeable(status, older_than)
            else:
                result[status.value] = await self.store.purge_jobs(status, older_than)

        verb = "Would purge" if dry_run else "Purged"
        self.logger.info(
            f"{verb} {result['done']} done and {result['failed']} failed jobs"
        )
        return result
