"""Unit tests for FastAPI router."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from fastapi import FastAPI
from fastapi.testclient import TestClient

from kizeo_jobs.errors import InvalidTenantError, JobNotFoundError
from kizeo_jobs.fastapi_router import create_jobs_router
from kizeo_jobs.models import Job, JobKind, JobStatus
from kizeo_jobs.service import JobService


@pytest.fixture
def mock_job_service():
    """Create a mock job service."""
    service = MagicMock(spec=JobService)
    service.get_job = AsyncMock()
    service.get_stats = AsyncMock(return_value={"by_kind": {}})
    service.list_recent_failed = AsyncMock(return_value=[])
    service.reset_failed_jobs = AsyncMock(return_value=0)
    return service


def make_client(service, auth_token=None):
    router = create_jobs_router(lambda: service, auth_token=auth_token)
    app = FastAPI()
    app.include_router(router)
    return TestClient(app)


@pytest.fixture
def client(mock_job_service):
    return make_client(mock_job_service)


def failed_job():
    return Job(
        id=9,
        kind=JobKind.PHOTO,
        status=JobStatus.FAILED,
        tenant_code="S40",
        external_form_id="1001",
        external_record_id="2002",
        media_refs=["a.jpg", "b.jpg"],
        attempts=3,
        last_error="HTTP 404: Not found",
    )


def test_get_job(client, mock_job_service):
    mock_job_service.get_job.return_value = failed_job()

    response = client.get("/kizeo-jobs/9")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "failed"
    assert data["media_ref"] == "a.jpg,b.jpg"
    mock_job_service.get_job.assert_awaited_once_with(9)


def test_get_job_not_found(client, mock_job_service):
    mock_job_service.get_job.side_effect = JobNotFoundError(9)

    response = client.get("/kizeo-jobs/9")

    assert response.status_code == 404


def test_stats(client, mock_job_service):
    mock_job_service.get_stats.return_value = {"by_kind": {"pdf": {"pending": 2}}}

    response = client.get("/kizeo-jobs/stats", params={"tenant_code": "S40"})

    assert response.status_code == 200
    assert response.json() == {"by_kind": {"pdf": {"pending": 2}}}
    mock_job_service.get_stats.assert_awaited_once_with("S40")


def test_stats_invalid_tenant(client, mock_job_service):
    mock_job_service.get_stats.side_effect = InvalidTenantError("S99")

    response = client.get("/kizeo-jobs/stats", params={"tenant_code": "S99"})

    assert response.status_code == 400


def test_list_failed(client, mock_job_service):
    mock_job_service.list_recent_failed.return_value = [failed_job()]

    response = client.get("/kizeo-jobs/failed", params={"kind": "photo", "limit": 5})

    assert response.status_code == 200
    assert [job["id"] for job in response.json()] == [9]
    mock_job_service.list_recent_failed.assert_awaited_once_with(
        limit=5, kind=JobKind.PHOTO, tenant_code=None
    )


def test_reset_failed(client, mock_job_service):
    mock_job_service.reset_failed_jobs.return_value = 3

    response = client.post("/kizeo-jobs/reset-failed", json={"kind": "pdf", "tenant_code": "S10"})

    assert response.status_code == 200
    assert response.json() == {"reset": 3}
    mock_job_service.reset_failed_jobs.assert_awaited_once_with(
        kind=JobKind.PDF, tenant_code="S10"
    )


def test_reset_failed_requires_token(mock_job_service):
    client = make_client(mock_job_service, auth_token="operator")

    denied = client.post("/kizeo-jobs/reset-failed", json={})
    allowed = client.post(
        "/kizeo-jobs/reset-failed", json={}, headers={"X-Kizeo-Jobs-Token": "operator"}
    )

    assert denied.status_code == 401
    assert allowed.status_code == 200
    mock_job_service.reset_failed_jobs.assert_awaited_once()
