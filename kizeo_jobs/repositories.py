"""
Read/write access to the local authoritative tables.

These tables are owned by the main backend; this module only relies on:

    agencies (code, nom, is_active, kizeo_list_equipments_id, kizeo_list_clients_id)
    equipement_<tenant> (id, id_contact, visite, numero_equipement, libelle_equipement,
                         mise_en_service, numero_serie, marque, longueur, largeur,
                         hauteur, is_archive)
    contact_<tenant> (id_contact, raison_sociale, cpostalp, villep, id_societe)

Tenant tables are addressed by name, so tenant codes are checked against the
configured tenants before they reach any SQL text.
"""

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from kizeo_jobs.config import KizeoJobsConfig
from kizeo_jobs.errors import InvalidTenantError
from kizeo_jobs.session import LedgerSession

TENANT_CODE_RE = re.compile(r"^S\d+$")


def tenant_table(prefix: str, tenant_code: str, config: KizeoJobsConfig) -> str:
    """Return the per-tenant table name, e.g. ``equipement_s10``."""
    code = (tenant_code or "").upper()
    if not TENANT_CODE_RE.match(code) or not config.is_valid_tenant(code):
        raise InvalidTenantError(tenant_code)
    return f"{prefix}_{code.lower()}"


class Tenant(BaseModel):
    """An agency and the provider lists attached to it."""

    code: str
    name: Optional[str] = None
    is_active: bool = True
    equipment_list_id: Optional[str] = None
    client_list_id: Optional[str] = None


class TenantRepository:
    """Access to the agencies table."""

    def __init__(self, session: LedgerSession, config: KizeoJobsConfig):
        self.session = session
        self.config = config

    @staticmethod
    def _row_to_tenant(row) -> Tenant:
        return Tenant(
            code=row["code"],
            name=row["nom"],
            is_active=row["is_active"],
            equipment_list_id=(
                str(row["kizeo_list_equipments_id"])
                if row["kizeo_list_equipments_id"] is not None
                else None
            ),
            client_list_id=(
                str(row["kizeo_list_clients_id"])
                if row["kizeo_list_clients_id"] is not None
                else None
            ),
        )

    async def list_active(self) -> List[Tenant]:
        """Active configured tenants, in configuration order."""
        rows = await self.session.connection.fetch(
            """
            SELECT code, nom, is_active, kizeo_list_equipments_id, kizeo_list_clients_id
            FROM agencies
            WHERE is_active = TRUE AND code = ANY($1::text[])
            """,
            self.config.tenants,
        )
        by_code = {row["code"]: self._row_to_tenant(row) for row in rows}
        return [by_code[code] for code in self.config.tenants if code in by_code]

    async def get(self, tenant_code: str) -> Tenant:
        """Get a configured tenant by code."""
        code = tenant_code.upper()
        if not self.config.is_valid_tenant(code):
            raise InvalidTenantError(tenant_code)
        row = await self.session.connection.fetchrow(
            """
            SELECT code, nom, is_active, kizeo_list_equipments_id, kizeo_list_clients_id
            FROM agencies
            WHERE code = $1
            """,
            code,
        )
        if not row:
            raise InvalidTenantError(tenant_code, f"Tenant {code} not found in agencies")
        return self._row_to_tenant(row)


class EquipmentRepository:
    """Read-only access to the per-tenant equipment tables."""

    def __init__(self, session: LedgerSession, config: KizeoJobsConfig):
        self.session = session
        self.config = config

    async def fetch_active(self, tenant_code: str) -> List[Dict[str, Any]]:
        """
        Latest non-archived row per (subject, visit, equipment), with client info.

        Ordered by client name, visit, then equipment number.
        """
        equipment = tenant_table("equipement", tenant_code, self.config)
        contact = tenant_table("contact", tenant_code, self.config)
        rows = await self.session.connection.fetch(
            f"""
            SELECT
                e.numero_equipement,
                e.visite,
                e.libelle_equipement,
                e.mise_en_service,
                e.numero_serie,
                e.marque,
                e.longueur,
                e.largeur,
                e.hauteur,
                e.id_contact,
                c.raison_sociale,
                c.id_societe
            FROM {equipment} e
            INNER JOIN {contact} c ON e.id_contact = c.id_contact
            INNER JOIN (
                SELECT id_contact, visite, numero_equipement, MAX(id) AS max_id
                FROM {equipment}
                WHERE is_archive = FALSE
                GROUP BY id_contact, visite, numero_equipement
            ) latest ON e.id = latest.max_id
            WHERE e.is_archive = FALSE
            ORDER BY c.raison_sociale, e.visite, e.numero_equipement
            """
        )
        return [dict(row) for row in rows]

    async def fetch_archived(self, tenant_code: str) -> List[Dict[str, Any]]:
        """Equipment that is archived and has no active version left."""
        equipment = tenant_table("equipement", tenant_code, self.config)
        rows = await self.session.connection.fetch(
            f"""
            SELECT DISTINCT e.id_contact, e.visite, e.numero_equipement
            FROM {equipment} e
            WHERE e.is_archive = TRUE
              AND NOT EXISTS (
                SELECT 1 FROM {equipment} e2
                WHERE e2.id_contact = e.id_contact
                  AND e2.visite = e.visite
                  AND e2.numero_equipement = e.numero_equipement
                  AND e2.is_archive = FALSE
              )
            """
        )
        return [dict(row) for row in rows]


class ContactRepository:
    """Access to the per-tenant contact tables."""

    def __init__(self, session: LedgerSession, config: KizeoJobsConfig):
        self.session = session
        self.config = config

    async def get_contact(self, tenant_code: str, subject_id: str) -> Optional[Dict[str, Any]]:
        contact = tenant_table("contact", tenant_code, self.config)
        row = await self.session.connection.fetchrow(
            f"""
            SELECT id_contact, raison_sociale, cpostalp, villep, id_societe
            FROM {contact}
            WHERE id_contact = $1
            """,
            subject_id,
        )
        return dict(row) if row else None

    async def get_names(self, tenant_code: str) -> Dict[str, str]:
        """Map of subject id to display name."""
        contact = tenant_table("contact", tenant_code, self.config)
        rows = await self.session.connection.fetch(
            f"SELECT id_contact, raison_sociale FROM {contact} WHERE id_contact IS NOT NULL"
        )
        return {str(row["id_contact"]): row["raison_sociale"] or "" for row in rows}

    async def update_name(self, tenant_code: str, subject_id: str, name: str) -> None:
        contact = tenant_table("contact", tenant_code, self.config)
        await self.session.connection.execute(
            f"UPDATE {contact} SET raison_sociale = $1 WHERE id_contact = $2",
            name,
            subject_id,
        )
