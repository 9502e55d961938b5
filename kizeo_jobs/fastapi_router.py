"""FastAPI router exposing ledger status and operator actions."""

import logging
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel

from kizeo_jobs.errors import InvalidTenantError, JobNotFoundError
from kizeo_jobs.models import JobKind
from kizeo_jobs.service import JobService


logger = logging.getLogger(__name__)


class JobResponse(BaseModel):
    """Response model for job details."""

    id: int
    kind: str
    status: str
    tenant_code: str
    external_form_id: str
    external_record_id: str
    media_ref: Optional[str] = None
    subject_id: Optional[str] = None
    year: Optional[str] = None
    visit_code: Optional[str] = None
    equipment_ref: Optional[str] = None
    client_name: Optional[str] = None
    priority: int
    attempts: int
    max_attempts: int
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    local_path: Optional[str] = None
    byte_size: Optional[int] = None
    last_error: Optional[str] = None


class ResetFailedRequest(BaseModel):
    """Request model for resetting failed jobs."""

    kind: Optional[JobKind] = None
    tenant_code: Optional[str] = None


class ResetFailedResponse(BaseModel):
    """Response model for resetting failed jobs."""

    reset: int


def create_jobs_router(
    job_service_factory: Callable[[], JobService],
    auth_token: Optional[str] = None,
) -> APIRouter:
    """
    Create FastAPI router for the job ledger.

    Args:
        job_service_factory: Callable that returns a JobService instance
        auth_token: Optional operator token required by the reset endpoint

    Returns:
        APIRouter instance
    """
    router = APIRouter()

    async def get_job_service() -> JobService:
        """Dependency to get JobService instance."""
        return job_service_factory()

    async def verify_auth_token(
        x_kizeo_jobs_token: Optional[str] = Header(None, alias="X-Kizeo-Jobs-Token")
    ) -> None:
        """Verify auth token if configured."""
        if auth_token:
            if not x_kizeo_jobs_token or x_kizeo_jobs_token != auth_token:
                raise HTTPException(
                    status_code=401, detail="Invalid or missing auth token"
                )

    @router.get("/kizeo-jobs/stats")
    async def get_stats(
        tenant_code: Optional[str] = Query(None),
        job_service: JobService = Depends(get_job_service),
    ) -> Dict[str, Any]:
        """Job counts per kind and status."""
        try:
            return await job_service.get_stats(tenant_code)
        except InvalidTenantError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error getting stats")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.get("/kizeo-jobs/failed", response_model=List[JobResponse])
    async def list_failed(
        kind: Optional[JobKind] = Query(None),
        tenant_code: Optional[str] = Query(None),
        limit: int = Query(10, ge=1, le=500),
        job_service: JobService = Depends(get_job_service),
    ):
        """Most recently failed jobs."""
        try:
            jobs = await job_service.list_recent_failed(
                limit=limit, kind=kind, tenant_code=tenant_code
            )
            return [JobResponse(**job.to_dict()) for job in jobs]
        except InvalidTenantError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error listing failed jobs")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.post("/kizeo-jobs/reset-failed", response_model=ResetFailedResponse)
    async def reset_failed(
        request: ResetFailedRequest,
        job_service: JobService = Depends(get_job_service),
        _: None = Depends(verify_auth_token),
    ):
        """Move failed jobs back to pending with a fresh attempt budget."""
        try:
            count = await job_service.reset_failed_jobs(
                kind=request.kind, tenant_code=request.tenant_code
            )
            return ResetFailedResponse(reset=count)
        except InvalidTenantError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error resetting failed jobs")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.get("/kizeo-jobs/{job_id}", response_model=JobResponse)
    async def get_job(
        job_id: int,
        job_service: JobService = Depends(get_job_service),
    ):
        """Get job details by ID."""
        try:
            job = await job_service.get_job(job_id)
            return JobResponse(**job.to_dict())
        except JobNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error getting job")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    return router
