"""Deterministic on-disk storage for downloaded artifacts."""

import logging
import os
import re
from pathlib import Path
from typing import Optional

from kizeo_jobs.errors import ArtifactWriteError, EmptyArtifactError
from kizeo_jobs.models import Job, JobKind

UNKNOWN = "UNKNOWN"
MAX_LABEL_LENGTH = 50

EXTENSIONS = {
    JobKind.PDF: "pdf",
    JobKind.PHOTO: "jpg",
}


def sanitize_filename(value: Optional[str]) -> str:
    """Reduce a value to ``[A-Za-z0-9_-]`` with single, non-leading underscores."""
    if not value:
        return ""
    cleaned = re.sub(r"[^a-zA-Z0-9_-]", "_", value)
    cleaned = re.sub(r"_+", "_", cleaned)
    return cleaned.strip("_")


class ArtifactStore:
    """
    Maps jobs to file paths and writes their content.

    Layout: ``<root>/<TENANT>/<subject>/<year>/<VISIT>/<label>_<kind>_<record>.<ext>``
    where root depends on the kind and label is the equipment reference,
    else the client name, else ``UNKNOWN``. Multi-part media use
    ``<kind>_p<n>`` so every part gets its own file.
    """

    def __init__(
        self,
        pdf_root: str,
        photo_root: str,
        logger: Optional[logging.Logger] = None,
    ):
        self.roots = {
            JobKind.PDF: Path(pdf_root),
            JobKind.PHOTO: Path(photo_root),
        }
        self.logger = logger or logging.getLogger(__name__)

    def build_path(self, job: Job, part: Optional[int] = None) -> Path:
        """
        Build the deterministic path of a job's artifact.

        Args:
            job: The job whose artifact is stored
            part: 1-based part number for multi-part media, None otherwise
        """
        directory = self.roots[job.kind].joinpath(
            sanitize_filename(job.tenant_code).upper() or UNKNOWN,
            sanitize_filename(job.subject_id) or UNKNOWN,
            sanitize_filename(job.year) or UNKNOWN,
            sanitize_filename(job.visit_code).upper() or UNKNOWN,
        )

        label = (
            sanitize_filename(job.equipment_ref)
            or sanitize_filename(job.client_name)[:MAX_LABEL_LENGTH].rstrip("_")
            or UNKNOWN
        )
        kind_token = job.kind.value if part is None else f"{job.kind.value}_p{part}"
        record = sanitize_filename(job.external_record_id) or UNKNOWN

        return directory / f"{label}_{kind_token}_{record}.{EXTENSIONS[job.kind]}"

    def write(self, path: Path, content: bytes) -> int:
        """
        Write content to path, replacing any previous file.

        Returns:
            Size in bytes of the written file

        Raises:
            EmptyArtifactError: If there is nothing to write or the file ends up empty
            ArtifactWriteError: If the filesystem write fails
        """
        if not content:
            raise EmptyArtifactError(str(path), f"Empty content received for {path}")

        tmp_path = path.with_name(path.name + ".part")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(content)
            os.replace(tmp_path, path)
            size = path.stat().st_size
        except OSError as e:
            self.remove(tmp_path)
            raise ArtifactWriteError(str(path), f"Failed to write {path}: {e}") from e

        if size == 0:
            self.remove(path)
            raise EmptyArtifactError(str(path))

        return size

    def remove(self, path: Path) -> None:
        """Delete a file if it exists."""
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            self.logger.warning(f"Failed to remove {path}: {e}")
