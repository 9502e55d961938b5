"""Three-way merge of provider equipment lists with the local tables."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Dict, Iterable, List, Optional, Set

from kizeo_jobs.backups import ListBackupStore
from kizeo_jobs.config import KizeoJobsConfig
from kizeo_jobs.errors import (
    InvalidTenantError,
    KizeoJobsError,
    MissingListError,
    ProviderListUnavailableError,
    RemoteHttpError,
)
from kizeo_jobs.http_client import KizeoApiClient
from kizeo_jobs.lists import EquipmentListBuilder, extract_merge_key
from kizeo_jobs.models import MergeResult, ReconcileResult
from kizeo_jobs.repositories import TenantRepository

EQUIPMENT_BACKUP_PREFIX = "equipements"


def merge_items(
    provider_items: Iterable[str],
    local_items: Dict[str, str],
    archived_keys: Set[str],
    logger: Optional[logging.Logger] = None,
) -> MergeResult:
    """
    Merge a provider list with the local authoritative lines.

    Provider lines are visited in order: archived keys are dropped, keys
    known locally are replaced by the local line, anything else is kept
    verbatim. Local lines never matched are appended in local order.
    Running the merge on its own output with the same local state yields
    the same list.
    """
    logger = logger or logging.getLogger(__name__)
    merged: List[str] = []
    consumed: Set[str] = set()
    result = MergeResult(merged)

    for line in provider_items:
        key = extract_merge_key(line)

        if key is None:
            result.unresolved += 1
            result.kept += 1
            merged.append(line)
            logger.warning(f"Keeping provider line without a usable key: {line[:120]}")
            continue

        if key in archived_keys:
            result.removed += 1
            continue

        if key in consumed:
            # later provider copy of a line already replaced
            result.removed += 1
            continue

        if key in local_items:
            merged.append(local_items[key])
            consumed.add(key)
            result.updated += 1
            continue

        merged.append(line)
        result.kept += 1

    for key, line in local_items.items():
        if key not in consumed:
            merged.append(line)
            result.added += 1

    return result


class ListReconciler:
    """Reconciles the equipment list of each tenant with the provider copy."""

    def __init__(
        self,
        config: KizeoJobsConfig,
        api: KizeoApiClient,
        builder: EquipmentListBuilder,
        tenants: TenantRepository,
        backups: Optional[ListBackupStore] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.api = api
        self.builder = builder
        self.tenants = tenants
        self.backups = backups or ListBackupStore(
            config.backup_dir,
            retention_days=config.backup_retention_days,
            max_per_tenant=config.backup_max_per_tenant,
            logger=logger,
        )
        self.logger = logger or logging.getLogger(__name__)
        self.sleep = sleep

    async def reconcile(
        self, tenant_code: str, list_id: str, dry_run: bool = False
    ) -> ReconcileResult:
        """
        Reconcile one tenant's provider list.

        Raises:
            ProviderListUnavailableError: If the provider list cannot be fetched
            RemoteHttpError: If the merged list cannot be written back
        """
        tenant_code = tenant_code.upper()
        if not self.config.is_valid_tenant(tenant_code):
            raise InvalidTenantError(tenant_code)

        try:
            provider_items = await self.api.fetch_list(list_id)
        except RemoteHttpError as e:
            raise ProviderListUnavailableError(
                list_id, f"Provider list {list_id} of tenant {tenant_code}: {e}"
            ) from e

        try:
            backup_path = self.backups.save(
                EQUIPMENT_BACKUP_PREFIX, tenant_code, list_id, provider_items
            )
        except OSError as e:
            raise KizeoJobsError(
                f"Could not back up list {list_id} of tenant {tenant_code}: {e}"
            ) from e

        local_items = await self.builder.build_local_items(tenant_code)
        archived_keys = await self.builder.fetch_archived_keys(tenant_code)

        merge = merge_items(provider_items, local_items, archived_keys, self.logger)

        if dry_run:
            self.logger.info(f"Dry run: list {list_id} of tenant {tenant_code} left unchanged")
        else:
            await self.api.replace_list(list_id, merge.items)

        counts = merge.counts()
        self.logger.info(
            f"Tenant {tenant_code} list {list_id}: provider={len(provider_items)}, "
            f"local={len(local_items)}, archived={len(archived_keys)}, "
            f"added={counts['added']}, updated={counts['updated']}, "
            f"kept={counts['kept']}, removed={counts['removed']}, "
            f"unresolved={counts['unresolved']}, total={len(merge.items)}"
        )

        return ReconcileResult(
            tenant_code=tenant_code,
            merge=merge,
            backup_path=str(backup_path),
            dry_run=dry_run,
        )

    async def reconcile_tenant(self, tenant_code: str, dry_run: bool = False) -> ReconcileResult:
        """Reconcile a tenant using the equipment list configured for it."""
        tenant = await self.tenants.get(tenant_code)
        if not tenant.equipment_list_id:
            raise MissingListError(tenant.code, "equipment")
        return await self.reconcile(tenant.code, tenant.equipment_list_id, dry_run)

    async def reconcile_all(
        self, tenant_code: Optional[str] = None, dry_run: bool = False
    ) -> Dict[str, Any]:
        """
        Reconcile every active tenant with an equipment list, or just one.

        A failing tenant is logged and counted; the others still run.
        """
        if tenant_code:
            tenants = [await self.tenants.get(tenant_code)]
        else:
            tenants = await self.tenants.list_active()

        summary: Dict[str, Any] = {
            "tenants_ok": 0,
            "tenants_failed": 0,
            "tenants_skipped": 0,
            "results": [],
            "errors": {},
        }

        for index, tenant in enumerate(tenants):
            if not tenant.equipment_list_id:
                self.logger.warning(f"Tenant {tenant.code} has no equipment list, skipping")
                summary["tenants_skipped"] += 1
                continue

            if index > 0:
                await self.sleep(self.config.api_delay_ms / 1000)

            try:
                result = await self.reconcile(tenant.code, tenant.equipment_list_id, dry_run)
            except KizeoJobsError as e:
                self.logger.error(f"Reconciliation failed for tenant {tenant.code}: {e}")
                summary["tenants_failed"] += 1
                summary["errors"][tenant.code] = str(e)
                continue

            summary["tenants_ok"] += 1
            summary["results"].append(result.to_dict())

        self.logger.info(
            f"Reconciliation finished: ok={summary['tenants_ok']}, "
            f"failed={summary['tenants_failed']}, skipped={summary['tenants_skipped']}"
        )
        return summary
