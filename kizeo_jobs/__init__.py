"""Integration job engine for Kizeo Forms artifacts and external lists."""

from kizeo_jobs import handlers  # noqa: F401  registers the fetch handlers
from kizeo_jobs.artifacts import ArtifactStore
from kizeo_jobs.backups import ListBackupStore
from kizeo_jobs.client_list import ClientListService
from kizeo_jobs.config import KizeoJobsConfig
from kizeo_jobs.ddl import KIZEO_JOBS_TABLE_DDL
from kizeo_jobs.download_main import run_downloads
from kizeo_jobs.errors import (
    ArtifactWriteError,
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
from kizeo_jobs.http_client import KizeoApiClient
from kizeo_jobs.models import Job, JobKind, JobStatus, ProcessStats
from kizeo_jobs.processor import JobQueueProcessor
from kizeo_jobs.reconciler import ListReconciler, merge_items
from kizeo_jobs.registry import FetcherRegistry, fetcher_registry
from kizeo_jobs.service import JobService
from kizeo_jobs.session import ConnectionRegistry, LedgerSession
from kizeo_jobs.store import JobStore

__version__ = "0.1.0"

__all__ = [
    "ArtifactStore",
    "ListBackupStore",
    "ClientListService",
    "KizeoJobsConfig",
    "KIZEO_JOBS_TABLE_DDL",
    "run_downloads",
    "ArtifactWriteError",
    "ClientCollisionError",
    "EmptyArtifactError",
    "InvalidTenantError",
    "JobNotFoundError",
    "KizeoJobsError",
    "MissingListError",
    "ProviderListUnavailableError",
    "RemoteHttpError",
    "SessionUnavailableError",
    "KizeoApiClient",
    "Job",
    "JobKind",
    "JobStatus",
    "ProcessStats",
    "JobQueueProcessor",
    "ListReconciler",
    "merge_items",
    "FetcherRegistry",
    "fetcher_registry",
    "JobService",
    "ConnectionRegistry",
    "LedgerSession",
    "JobStore",
]
