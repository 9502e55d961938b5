"""Verbatim backups of provider lists, taken before every overwrite."""

import json
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

TIMESTAMP_FORMAT = "%Y-%m-%d_%H%M%S_%f"


class ListBackupStore:
    """
    Writes one JSON file per backup and enforces retention.

    Files are named ``<prefix>_<TENANT>_<timestamp>.json`` so that sorting by
    name sorts by age within a tenant.
    """

    def __init__(
        self,
        backup_dir: str,
        retention_days: int = 7,
        max_per_tenant: int = 2,
        logger: Optional[logging.Logger] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.backup_dir = Path(backup_dir)
        self.retention_days = retention_days
        self.max_per_tenant = max_per_tenant
        self.logger = logger or logging.getLogger(__name__)
        self.now = now

    def save(
        self, prefix: str, tenant_code: str, list_id: str, items: List[str]
    ) -> Path:
        """
        Write a backup of a list and prune old ones.

        Returns:
            Path of the new backup file
        """
        taken_at = self.now()
        tenant_code = tenant_code.upper()
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        path = self.backup_dir / (
            f"{prefix}_{tenant_code}_{taken_at.strftime(TIMESTAMP_FORMAT)}.json"
        )

        document = {
            "list_id": list_id,
            "tenant_code": tenant_code,
            "date": taken_at.isoformat(),
            "count": len(items),
            "items": items,
        }
        path.write_text(json.dumps(document, ensure_ascii=False, indent=2), encoding="utf-8")
        self.logger.info(f"Backed up {len(items)} items of list {list_id} to {path}")

        self.prune(prefix, tenant_code)
        return path

    def list_backups(self, prefix: str, tenant_code: str) -> List[Path]:
        """Backups of a tenant, oldest first."""
        if not self.backup_dir.is_dir():
            return []
        return sorted(self.backup_dir.glob(f"{prefix}_{tenant_code.upper()}_*.json"))

    def load(self, path: Path) -> dict:
        return json.loads(path.read_text(encoding="utf-8"))

    def prune(self, prefix: str, tenant_code: str) -> int:
        """
        Delete expired backups, then the oldest ones above the per-tenant cap.

        Returns:
            Number of files deleted
        """
        deleted = 0
        cutoff = (self.now() - timedelta(days=self.retention_days)).timestamp()

        if self.backup_dir.is_dir():
            for path in sorted(self.backup_dir.glob(f"{prefix}_*.json")):
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    deleted += 1
                    self.logger.info(f"Deleted expired backup {path.name}")

        backups = self.list_backups(prefix, tenant_code)
        excess = len(backups) - self.max_per_tenant
        for path in backups[: max(excess, 0)]:
            path.unlink()
            deleted += 1
            self.logger.info(f"Deleted backup {path.name} (keeping {self.max_per_tenant})")

        return deleted
