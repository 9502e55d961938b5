"""Database store layer for the job ledger."""

from typing import Any, Dict, List, Optional

from kizeo_jobs.errors import JobNotFoundError
from kizeo_jobs.models import (
    Job,
    JobKind,
    JobStatus,
    join_media_refs,
    truncate_error,
)
from kizeo_jobs.session import LedgerSession

MAX_ATTEMPTS_ERROR = "Max attempts reached"


class JobStore:
    """Database layer for ledger operations."""

    def __init__(self, session: LedgerSession):
        self.session = session

    @property
    def conn(self):
        return self.session.connection

    async def insert_job(
        self,
        kind: JobKind,
        tenant_code: str,
        external_form_id: str,
        external_record_id: str,
        media_refs: Optional[List[str]] = None,
        subject_id: Optional[str] = None,
        year: Optional[str] = None,
        visit_code: Optional[str] = None,
        equipment_ref: Optional[str] = None,
        client_name: Optional[str] = None,
        priority: int = 5,
        max_attempts: int = 3,
    ) -> Job:
        """Insert a new pending job into the ledger."""
        row = await self.conn.fetchrow(
            """
            INSERT INTO kizeo_jobs (
                kind, status, tenant_code, external_form_id, external_record_id,
                media_ref, subject_id, year, visit_code, equipment_ref,
                client_name, priority, attempts, max_attempts
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, 0, $13)
            RETURNING *
            """,
            kind.value,
            JobStatus.PENDING.value,
            tenant_code,
            external_form_id,
            external_record_id,
            join_media_refs(media_refs or []),
            subject_id,
            year,
            visit_code,
            equipment_ref,
            client_name,
            priority,
            max_attempts,
        )
        return Job.from_row(row)

    async def job_exists(
        self,
        kind: JobKind,
        external_form_id: str,
        external_record_id: str,
        media_refs: Optional[List[str]] = None,
    ) -> bool:
        """Check whether a job for this artifact has already been enqueued."""
        found = await self.conn.fetchval(
            """
            SELECT EXISTS (
                SELECT 1 FROM kizeo_jobs
                WHERE kind = $1
                  AND external_form_id = $2
                  AND external_record_id = $3
                  AND COALESCE(media_ref, '') = COALESCE($4, '')
            )
            """,
            kind.value,
            external_form_id,
            external_record_id,
            join_media_refs(media_refs or []),
        )
        return bool(found)

    async def get_job(self, job_id: int) -> Job:
        """Get a job by ID."""
        row = await self.conn.fetchrow("SELECT * FROM kizeo_jobs WHERE id = $1", job_id)

        if not row:
            raise JobNotFoundError(job_id)

        return Job.from_row(row)

    async def list_jobs(
        self,
        kind: Optional[JobKind] = None,
        status: Optional[JobStatus] = None,
        tenant_code: Optional[str] = None,
        limit: int = 50,
    ) -> List[Job]:
        """List jobs with optional filters, newest first."""
        query = "SELECT * FROM kizeo_jobs WHERE 1=1"
        params: List[Any] = []
        param_idx = 1

        if kind:
            query += f" AND kind = ${param_idx}"
            params.append(kind.value)
            param_idx += 1

        if status:
            query += f" AND status = ${param_idx}"
            params.append(status.value)
            param_idx += 1

        if tenant_code:
            query += f" AND tenant_code = ${param_idx}"
            params.append(tenant_code)
            param_idx += 1

        query += f" ORDER BY created_at DESC, id DESC LIMIT ${param_idx}"
        params.append(limit)

        rows = await self.conn.fetch(query, *params)
        return [Job.from_row(row) for row in rows]

    async def fetch_pending_chunk(
        self,
        kind: JobKind,
        limit: int,
        tenant_code: Optional[str] = None,
        offset: int = 0,
    ) -> List[Job]:
        """
        Select the next pending jobs of a kind, most urgent and oldest first.

        Always reads the ledger; callers must not cache the result between chunks.
        """
        rows = await self.conn.fetch(
            """
            SELECT * FROM kizeo_jobs
            WHERE kind = $1
              AND status = $2
              AND ($3::text IS NULL OR tenant_code = $3)
            ORDER BY priority ASC, created_at ASC, id ASC
            LIMIT $4 OFFSET $5
            """,
            kind.value,
            JobStatus.PENDING.value,
            tenant_code,
            limit,
            offset,
        )
        return [Job.from_row(row) for row in rows]

    async def mark_chunk_processing(self, job_ids: List[int]) -> List[int]:
        """
        Move a chunk to processing in one statement.

        Only rows still pending with attempts left are claimed; the claimed
        IDs are returned.
        """
        if not job_ids:
            return []
        rows = await self.conn.fetch(
            """
            UPDATE kizeo_jobs
            SET status = $1, started_at = now()
            WHERE id = ANY($2::bigint[]) AND status = $3
              AND attempts < max_attempts
            RETURNING id
            """,
            JobStatus.PROCESSING.value,
            job_ids,
            JobStatus.PENDING.value,
        )
        return [row["id"] for row in rows]

    async def increment_attempts(self, job_id: int) -> int:
        """Record one more attempt and return the new count."""
        attempts = await self.conn.fetchval(
            """
            UPDATE kizeo_jobs
            SET attempts = attempts + 1
            WHERE id = $1
            RETURNING attempts
            """,
            job_id,
        )
        if attempts is None:
            raise JobNotFoundError(job_id)
        return attempts

    async def mark_done(self, job_id: int, local_path: str, byte_size: int) -> None:
        """Mark a job as done with the artifact it produced."""
        await self.conn.execute(
            """
            UPDATE kizeo_jobs
            SET status = $1, local_path = $2, byte_size = $3,
                completed_at = now(), last_error = NULL
            WHERE id = $4
            """,
            JobStatus.DONE.value,
            local_path,
            byte_size,
            job_id,
        )

    async def mark_failed(self, job_id: int, error: str) -> None:
        """Mark a job as failed, keeping its attempt count."""
        await self.conn.execute(
            """
            UPDATE kizeo_jobs
            SET status = $1, last_error = $2, completed_at = now()
            WHERE id = $3
            """,
            JobStatus.FAILED.value,
            truncate_error(error),
            job_id,
        )

    async def fail_exhausted(self, job_ids: List[int]) -> List[int]:
        """
        Move pending jobs that used up their attempts straight to failed.

        They never pass through processing. The failed IDs are returned.
        """
        if not job_ids:
            return []
        rows = await self.conn.fetch(
            """
            UPDATE kizeo_jobs
            SET status = $1, last_error = $2, completed_at = now()
            WHERE id = ANY($3::bigint[]) AND status = $4
              AND attempts >= max_attempts
            RETURNING id
            """,
            JobStatus.FAILED.value,
            MAX_ATTEMPTS_ERROR,
            job_ids,
            JobStatus.PENDING.value,
        )
        return [row["id"] for row in rows]

    async def reset_stuck_jobs(self, kind: JobKind, timeout_minutes: int) -> int:
        """
        Return jobs stuck in processing for longer than the timeout to pending.

        Attempts are left untouched; the ceiling check still applies.
        """
        rows = await self.conn.fetch(
            """
            UPDATE kizeo_jobs
            SET status = $1, started_at = NULL
            WHERE kind = $2
              AND status = $3
              AND (started_at IS NULL OR started_at < now() - make_interval(mins => $4))
            RETURNING id
            """,
            JobStatus.PENDING.value,
            kind.value,
            JobStatus.PROCESSING.value,
            timeout_minutes,
        )
        return len(rows)

    async def reset_failed_jobs(
        self,
        kind: Optional[JobKind] = None,
        tenant_code: Optional[str] = None,
    ) -> int:
        """Operator reset: failed jobs go back to pending with a fresh attempt budget."""
        rows = await self.conn.fetch(
            """
            UPDATE kizeo_jobs
            SET status = $1, attempts = 0, last_error = NULL,
                started_at = NULL, completed_at = NULL
            WHERE status = $2
              AND ($3::text IS NULL OR kind = $3)
              AND ($4::text IS NULL OR tenant_code = $4)
            RETURNING id
            """,
            JobStatus.PENDING.value,
            JobStatus.FAILED.value,
            kind.value if kind else None,
            tenant_code,
        )
        return len(rows)

    async def count_purgeable(self, status: JobStatus, older_than_days: int) -> int:
        """Count terminal jobs completed more than N days ago."""
        count = await self.conn.fetchval(
            """
            SELECT COUNT(*) FROM kizeo_jobs
            WHERE status = $1
              AND completed_at < now() - make_interval(days => $2)
            """,
            status.value,
            older_than_days,
        )
        return count

    async def purge_jobs(self, status: JobStatus, older_than_days: int) -> int:
        """Delete terminal jobs completed more than N days ago."""
        rows = await self.conn.fetch(
            """
            DELETE FROM kizeo_jobs
            WHERE status = $1
              AND completed_at < now() - make_interval(days => $2)
            RETURNING id
            """,
            status.value,
            older_than_days,
        )
        return len(rows)

    async def count_by_kind_and_status(
        self, tenant_code: Optional[str] = None
    ) -> Dict[str, Dict[str, int]]:
        """Count jobs grouped by kind then status."""
        rows = await self.conn.fetch(
            """
            SELECT kind, status, COUNT(*) AS count
            FROM kizeo_jobs
            WHERE ($1::text IS NULL OR tenant_code = $1)
            GROUP BY kind, status
            """,
            tenant_code,
        )
        stats: Dict[str, Dict[str, int]] = {
            kind.value: {status.value: 0 for status in JobStatus} for kind in JobKind
        }
        for row in rows:
            stats.setdefault(row["kind"], {})[row["status"]] = row["count"]
        return stats

    async def count_by_tenant(self, kind: Optional[JobKind] = None) -> Dict[str, Dict[str, int]]:
        """Count jobs grouped by tenant then status."""
        rows = await self.conn.fetch(
            """
            SELECT tenant_code, status, COUNT(*) AS count
            FROM kizeo_jobs
            WHERE ($1::text IS NULL OR kind = $1)
            GROUP BY tenant_code, status
            ORDER BY tenant_code
            """,
            kind.value if kind else None,
        )
        stats: Dict[str, Dict[str, int]] = {}
        for row in rows:
            stats.setdefault(row["tenant_code"], {})[row["status"]] = row["count"]
        return stats

    async def list_recent_failed(
        self,
        limit: int = 10,
        kind: Optional[JobKind] = None,
        tenant_code: Optional[str] = None,
    ) -> List[Job]:
        """List the most recently failed jobs."""
        rows = await self.conn.fetch(
            """
            SELECT * FROM kizeo_jobs
            WHERE status = $1
              AND ($2::text IS NULL OR kind = $2)
              AND ($3::text IS NULL OR tenant_code = $3)
            ORDER BY completed_at DESC NULLS LAST, id DESC
            LIMIT $4
            """,
            JobStatus.FAILED.value,
            kind.value if kind else None,
            tenant_code,
            limit,
        )
        return [Job.from_row(row) for row in rows]
