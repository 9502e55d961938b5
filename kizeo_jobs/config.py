"""Configuration for the kizeo jobs engine."""

import os
from typing import List, Optional

DEFAULT_API_URL = "https://forms.kizeo.com/rest/v3"

DEFAULT_TENANTS = [
    "S10",
    "S40",
    "S50",
    "S60",
    "S70",
    "S80",
    "S100",
    "S120",
    "S130",
    "S140",
    "S150",
    "S160",
    "S170",
]


class KizeoJobsConfig:
    """Configuration object for the kizeo jobs engine."""

    def __init__(
        self,
        db_dsn: str,
        api_token: str,
        api_url: str = DEFAULT_API_URL,
        pdf_dir: str = "storage/pdf",
        photo_dir: str = "storage/img",
        backup_dir: str = "storage/backups/kizeo_lists",
        api_delay_ms: int = 500,
        stuck_timeout_minutes: int = 60,
        memory_threshold_mb: int = 200,
        max_attempts: int = 3,
        backup_retention_days: int = 7,
        backup_max_per_tenant: int = 2,
        tenants: Optional[List[str]] = None,
        api_timeout_seconds: float = 30.0,
        media_timeout_seconds: float = 60.0,
        pdf_timeout_seconds: float = 90.0,
        max_session_recoveries: int = 3,
        operator_token: Optional[str] = None,
    ):
        self.db_dsn = db_dsn
        self.api_token = api_token
        self.api_url = api_url
        self.pdf_dir = pdf_dir
        self.photo_dir = photo_dir
        self.backup_dir = backup_dir
        self.api_delay_ms = api_delay_ms
        self.stuck_timeout_minutes = stuck_timeout_minutes
        self.memory_threshold_mb = memory_threshold_mb
        self.max_attempts = max_attempts
        self.backup_retention_days = backup_retention_days
        self.backup_max_per_tenant = backup_max_per_tenant
        self.tenants = tenants or list(DEFAULT_TENANTS)
        self.api_timeout_seconds = api_timeout_seconds
        self.media_timeout_seconds = media_timeout_seconds
        self.pdf_timeout_seconds = pdf_timeout_seconds
        self.max_session_recoveries = max_session_recoveries
        self.operator_token = operator_token

    @classmethod
    def from_env(cls) -> "KizeoJobsConfig":
        """Create config from environment variables."""
        db_dsn = os.getenv("KIZEO_JOBS_DB_DSN")
        if not db_dsn:
            raise ValueError("KIZEO_JOBS_DB_DSN environment variable is required")

        api_token = os.getenv("KIZEO_API_TOKEN")
        if not api_token:
            raise ValueError("KIZEO_API_TOKEN environment variable is required")

        tenants_str = os.getenv("KIZEO_JOBS_TENANTS")
        tenants = None
        if tenants_str:
            tenants = [t.strip().upper() for t in tenants_str.split(",") if t.strip()]
            if not tenants:
                raise ValueError("KIZEO_JOBS_TENANTS must list at least one tenant")

        try:
            return cls(
                db_dsn=db_dsn,
                api_token=api_token,
                api_url=os.getenv("KIZEO_API_URL", DEFAULT_API_URL),
                pdf_dir=os.getenv("KIZEO_JOBS_PDF_DIR", "storage/pdf"),
                photo_dir=os.getenv("KIZEO_JOBS_PHOTO_DIR", "storage/img"),
                backup_dir=os.getenv(
                    "KIZEO_JOBS_BACKUP_DIR", "storage/backups/kizeo_lists"
                ),
                api_delay_ms=int(os.getenv("KIZEO_JOBS_API_DELAY_MS", "500")),
                stuck_timeout_minutes=int(
                    os.getenv("KIZEO_JOBS_STUCK_TIMEOUT_MINUTES", "60")
                ),
                memory_threshold_mb=int(
                    os.getenv("KIZEO_JOBS_MEMORY_THRESHOLD_MB", "200")
                ),
                max_attempts=int(os.getenv("KIZEO_JOBS_MAX_ATTEMPTS", "3")),
                backup_retention_days=int(
                    os.getenv("KIZEO_JOBS_BACKUP_RETENTION_DAYS", "7")
                ),
                backup_max_per_tenant=int(
                    os.getenv("KIZEO_JOBS_BACKUP_MAX_PER_TENANT", "2")
                ),
                tenants=tenants,
                max_session_recoveries=int(
                    os.getenv("KIZEO_JOBS_MAX_SESSION_RECOVERIES", "3")
                ),
                operator_token=os.getenv("KIZEO_JOBS_OPERATOR_TOKEN"),
            )
        except ValueError as e:
            raise ValueError(f"Invalid numeric setting: {e}") from e

    def is_valid_tenant(self, tenant_code: str) -> bool:
        """Check whether a tenant code is one of the configured agencies."""
        return tenant_code.upper() in self.tenants
