"""Data models for ledger jobs and run reports."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

MAX_ERROR_LENGTH = 500


class JobKind(str, Enum):
    """Kind of artifact a job fetches."""

    PDF = "pdf"
    PHOTO = "photo"


class JobStatus(str, Enum):
    """Job status values."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


class JobPriority:
    """Priority values, lower runs first."""

    URGENT = 1
    NORMAL = 5
    LOW = 10

    @classmethod
    def default_for(cls, kind: JobKind) -> int:
        return cls.URGENT if kind == JobKind.PDF else cls.NORMAL


def split_media_ref(media_ref: Optional[str]) -> List[str]:
    """Split the comma-joined ledger column into individual media names."""
    if not media_ref:
        return []
    return [part.strip() for part in media_ref.split(",")]


def join_media_refs(media_refs: List[str]) -> Optional[str]:
    """Join media names into the ledger column format."""
    if not media_refs:
        return None
    return ",".join(media_refs)


def truncate_error(message: str, limit: int = MAX_ERROR_LENGTH) -> str:
    """Truncate an error message to the ledger column limit."""
    return message[:limit]


class Job(BaseModel):
    """A ledger row, validated when read from the database."""

    id: int
    kind: JobKind
    status: JobStatus
    tenant_code: str
    external_form_id: str
    external_record_id: str
    media_refs: List[str] = Field(default_factory=list)
    subject_id: Optional[str] = None
    year: Optional[str] = None
    visit_code: Optional[str] = None
    equipment_ref: Optional[str] = None
    client_name: Optional[str] = None
    priority: int = JobPriority.NORMAL
    attempts: int = 0
    max_attempts: int = 3
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    local_path: Optional[str] = None
    byte_size: Optional[int] = None
    last_error: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "Job":
        """Build a job from an asyncpg record or a plain mapping."""
        data = dict(row)
        data["media_refs"] = split_media_ref(data.pop("media_ref", None))
        return cls.model_validate(data)

    @property
    def is_multi_part(self) -> bool:
        return len(self.media_refs) > 1

    @property
    def attempts_exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def to_dict(self) -> Dict[str, Any]:
        """Convert job to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "status": self.status.value,
            "tenant_code": self.tenant_code,
            "external_form_id": self.external_form_id,
            "external_record_id": self.external_record_id,
            "media_ref": join_media_refs(self.media_refs),
            "subject_id": self.subject_id,
            "year": self.year,
            "visit_code": self.visit_code,
            "equipment_ref": self.equipment_ref,
            "client_name": self.client_name,
            "priority": self.priority,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
            "local_path": self.local_path,
            "byte_size": self.byte_size,
            "last_error": self.last_error,
        }


class ProcessStats:
    """Counters reported by one run of the job queue processor."""

    def __init__(self):
        self.done = 0
        self.failed = 0
        self.skipped = 0
        # dry-run candidates, never counted as done
        self.would_fetch = 0
        self.bytes = 0
        self.chunks = 0
        self.stuck_reset = 0
        self.failed_reset = 0

    @property
    def processed(self) -> int:
        return self.done + self.failed + self.skipped

    @property
    def attempted(self) -> int:
        return self.done + self.failed

    @property
    def exit_code(self) -> int:
        """Non-zero only when jobs were attempted and none succeeded."""
        if self.attempted > 0 and self.done == 0:
            return 1
        return 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "done": self.done,
            "failed": self.failed,
            "skipped": self.skipped,
            "would_fetch": self.would_fetch,
            "bytes": self.bytes,
            "chunks": self.chunks,
            "stuck_reset": self.stuck_reset,
            "failed_reset": self.failed_reset,
        }


class MergeResult:
    """Outcome of merging a provider list with the local authoritative list."""

    def __init__(self, items: List[str]):
        self.items = items
        self.added = 0
        self.updated = 0
        self.kept = 0
        self.removed = 0
        self.unresolved = 0

    def counts(self) -> Dict[str, int]:
        return {
            "added": self.added,
            "updated": self.updated,
            "kept": self.kept,
            "removed": self.removed,
            "unresolved": self.unresolved,
        }


class ReconcileResult:
    """Report of one tenant reconciliation."""

    def __init__(
        self,
        tenant_code: str,
        merge: MergeResult,
        backup_path: Optional[str],
        dry_run: bool,
    ):
        self.tenant_code = tenant_code
        self.merge = merge
        self.backup_path = backup_path
        self.dry_run = dry_run

    @property
    def total_sent(self) -> int:
        return 0 if self.dry_run else len(self.merge.items)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"tenant_code": self.tenant_code}
        result.update(self.merge.counts())
        result["total"] = len(self.merge.items)
        result["total_sent"] = self.total_sent
        result["backup_path"] = self.backup_path
        result["dry_run"] = self.dry_run
        return result
