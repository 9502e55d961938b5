"""Unit tests for error types."""

from kizeo_jobs.errors import (
    ClientCollisionError,
    EmptyArtifactError,
    InvalidTenantError,
    JobNotFoundError,
    KizeoJobsError,
    MissingListError,
    ProviderListUnavailableError,
    RemoteHttpError,
    SessionUnavailableError,
)


def test_job_not_found_error():
    error = JobNotFoundError(42)

    assert error.job_id == 42
    assert str(error) == "Job 42 not found"
    assert isinstance(error, KizeoJobsError)


def test_remote_http_error():
    error = RemoteHttpError(503, "Unavailable", response_body="later")

    assert error.status_code == 503
    assert error.response_body == "later"
    assert str(error) == "HTTP 503: Unavailable"


def test_empty_artifact_error_messages():
    assert "a.jpg" in str(EmptyArtifactError("/tmp/a.jpg"))
    assert str(EmptyArtifactError()) == "Empty artifact"
    assert str(EmptyArtifactError(message="nothing")) == "nothing"


def test_tenant_and_list_errors():
    assert InvalidTenantError("S99").tenant_code == "S99"
    assert str(MissingListError("S10", "equipment")) == (
        "No equipment list configured for tenant S10"
    )
    assert ProviderListUnavailableError("555").list_id == "555"
    collision = ClientCollisionError("12", "S40")
    assert collision.subject_id == "12"
    assert "S40" in str(collision)


def test_session_unavailable_is_library_error():
    assert issubclass(SessionUnavailableError, KizeoJobsError)
