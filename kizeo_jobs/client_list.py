"""Provider client lists: one-way name sync and new client append."""

import logging
from typing import Any, Dict, List, Optional

from kizeo_jobs.backups import ListBackupStore
from kizeo_jobs.config import KizeoJobsConfig
from kizeo_jobs.errors import (
    ClientCollisionError,
    KizeoJobsError,
    MissingListError,
    ProviderListUnavailableError,
    RemoteHttpError,
)
from kizeo_jobs.http_client import KizeoApiClient
from kizeo_jobs.lists import SEGMENT_SEPARATOR, format_segment, segment_value
from kizeo_jobs.repositories import ContactRepository, TenantRepository

CLIENT_BACKUP_PREFIX = "clients"
NAME_SEGMENT_INDEX = 0
SUBJECT_SEGMENT_INDEX = 3


def build_client_line(contact: Dict[str, Any], tenant_code: str) -> str:
    """
    Serialize a contact as ``NAME|ZIP|CITY|SUBJECT|TENANT|COMPANY`` segments.

    A company id of 0 is treated as missing.
    """
    company = contact.get("id_societe")
    if company is not None and str(company).strip() == "0":
        company = None
    segments = [
        format_segment(contact.get("raison_sociale")),
        format_segment(contact.get("cpostalp")),
        format_segment(contact.get("villep")),
        format_segment(contact.get("id_contact")),
        format_segment(tenant_code),
        format_segment(company),
    ]
    return SEGMENT_SEPARATOR.join(segments)


def parse_client_line(line: str) -> Optional[Dict[str, str]]:
    """Extract name and subject id from a client line, None if malformed."""
    segments = line.split(SEGMENT_SEPARATOR)
    if len(segments) < 4:
        return None
    subject_id = segment_value(segments[SUBJECT_SEGMENT_INDEX])
    if not subject_id:
        return None
    return {
        "subject_id": subject_id,
        "name": segment_value(segments[NAME_SEGMENT_INDEX]),
        "zip_code": segment_value(segments[1]),
        "city": segment_value(segments[2]),
    }


class ClientListService:
    """Keeps local client names and the provider client list in step."""

    def __init__(
        self,
        config: KizeoJobsConfig,
        api: KizeoApiClient,
        tenants: TenantRepository,
        contacts: ContactRepository,
        backups: Optional[ListBackupStore] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.api = api
        self.tenants = tenants
        self.contacts = contacts
        self.backups = backups or ListBackupStore(
            config.backup_dir,
            retention_days=config.backup_retention_days,
            max_per_tenant=config.backup_max_per_tenant,
            logger=logger,
        )
        self.logger = logger or logging.getLogger(__name__)

    async def _client_list(self, tenant_code: str):
        tenant = await self.tenants.get(tenant_code)
        if not tenant.client_list_id:
            raise MissingListError(tenant.code, "client")
        try:
            items = await self.api.fetch_list(tenant.client_list_id)
        except RemoteHttpError as e:
            raise ProviderListUnavailableError(tenant.client_list_id, str(e)) from e
        return tenant, items

    async def sync_names(self, tenant_code: str, dry_run: bool = False) -> Dict[str, int]:
        """
        Overwrite local client names with the provider's when they differ.

        Returns:
            Counts of updated, unchanged and not_found clients
        """
        tenant, items = await self._client_list(tenant_code)
        local_names = await self.contacts.get_names(tenant.code)

        stats = {"updated": 0, "unchanged": 0, "not_found": 0, "malformed": 0}
        for line in items:
            parsed = parse_client_line(line)
            if parsed is None:
                stats["malformed"] += 1
                continue

            subject_id = parsed["subject_id"]
            provider_name = parsed["name"]
            if subject_id not in local_names:
                stats["not_found"] += 1
                continue

            if not provider_name or local_names[subject_id] == provider_name:
                stats["unchanged"] += 1
                continue

            self.logger.info(
                f"Tenant {tenant.code} client {subject_id}: "
                f"'{local_names[subject_id]}' -> '{provider_name}'"
            )
            if not dry_run:
                await self.contacts.update_name(tenant.code, subject_id, provider_name)
            stats["updated"] += 1

        verb = "would update" if dry_run else "updated"
        self.logger.info(
            f"Tenant {tenant.code} name sync: {verb} {stats['updated']}, "
            f"unchanged {stats['unchanged']}, not found {stats['not_found']}"
        )
        return stats

    async def append_client(self, tenant_code: str, subject_id: str) -> List[str]:
        """
        Add a locally created contact to the provider client list.

        Returns:
            The list as written back

        Raises:
            ClientCollisionError: If the subject id is already on the list
        """
        contact = await self.contacts.get_contact(tenant_code, subject_id)
        if contact is None:
            raise KizeoJobsError(f"Contact {subject_id} not found for tenant {tenant_code}")

        tenant, items = await self._client_list(tenant_code)

        for line in items:
            parsed = parse_client_line(line)
            if parsed and parsed["subject_id"] == str(subject_id):
                raise ClientCollisionError(str(subject_id), tenant.code)

        try:
            self.backups.save(CLIENT_BACKUP_PREFIX, tenant.code, tenant.client_list_id, items)
        except OSError as e:
            raise KizeoJobsError(
                f"Could not back up client list of tenant {tenant.code}: {e}"
            ) from e

        updated = items + [build_client_line(contact, tenant.code)]
        await self.api.replace_list(tenant.client_list_id, updated)
        self.logger.info(
            f"Added client {subject_id} to list {tenant.client_list_id} "
            f"of tenant {tenant.code} ({len(updated)} items)"
        )
        return updated
