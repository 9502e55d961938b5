"""
Equipment list line format and merge keys.

A provider line holds 11 pipe-separated ``value:value`` segments, the first
one hierarchical::

    CLIENT:CLIENT\\VISIT:VISIT\\NUM:NUM|type|commissioning|serial|brand|
    length|width|height|subject_id|company_id|tenant

Empty values are written as ``:``. Lines are matched on
``<subject_id>\\<VISIT>\\<NUM>``, never on the client name, because names
typed on the provider side drift from the local ones.
"""

import logging
from typing import Any, Dict, Optional, Set

from kizeo_jobs.repositories import EquipmentRepository

SEGMENT_SEPARATOR = "|"
HIERARCHY_SEPARATOR = "\\"
SUBJECT_SEGMENT_INDEX = 8


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def clean_value(value: Any, key_part: bool = False) -> str:
    """
    Field text with the line separators replaced.

    Merge key parts also lose their colons, since a segment value is read
    after its last colon.
    """
    text = _text(value).replace(SEGMENT_SEPARATOR, "/").replace(HIERARCHY_SEPARATOR, "/")
    if key_part:
        text = text.replace(":", "-")
    return text.strip()


def format_segment(value: Any, key_part: bool = False) -> str:
    """Render one ``value:value`` segment, ``:`` when empty."""
    text = clean_value(value, key_part)
    if not text:
        return ":"
    return f"{text}:{text}"


def segment_value(segment: str) -> str:
    """Value carried by a segment: the text after its last colon."""
    if ":" in segment:
        return segment.rsplit(":", 1)[1].strip()
    return segment.strip()


def build_merge_key(subject_id: Any, visit: Any, equipment: Any) -> str:
    return HIERARCHY_SEPARATOR.join(
        [
            clean_value(subject_id, key_part=True),
            clean_value(visit, key_part=True).upper(),
            clean_value(equipment, key_part=True).upper(),
        ]
    )


def extract_merge_key(line: str) -> Optional[str]:
    """
    Merge key of a provider line, or None when a component is missing.

    Visit and equipment number come from the hierarchical first segment,
    the subject id from segment 9.
    """
    segments = line.split(SEGMENT_SEPARATOR)
    hierarchy = segments[0].split(HIERARCHY_SEPARATOR)

    visit = segment_value(hierarchy[1]) if len(hierarchy) > 1 else ""
    equipment = segment_value(hierarchy[2]) if len(hierarchy) > 2 else ""
    subject_id = (
        segment_value(segments[SUBJECT_SEGMENT_INDEX])
        if len(segments) > SUBJECT_SEGMENT_INDEX
        else ""
    )

    if not (subject_id and visit and equipment):
        return None
    return build_merge_key(subject_id, visit, equipment)


def build_equipment_line(row: Dict[str, Any], tenant_code: str) -> str:
    """Serialize one local equipment row into a provider line."""
    client = clean_value(row.get("raison_sociale"))
    visit = clean_value(row.get("visite"), key_part=True)
    equipment = clean_value(row.get("numero_equipement"), key_part=True)

    hierarchy = HIERARCHY_SEPARATOR.join(
        [f"{client}:{client}", f"{visit}:{visit}", f"{equipment}:{equipment}"]
    )
    segments = [
        hierarchy,
        format_segment(row.get("libelle_equipement")),
        format_segment(row.get("mise_en_service")),
        format_segment(row.get("numero_serie")),
        format_segment(row.get("marque")),
        format_segment(row.get("longueur")),
        format_segment(row.get("largeur")),
        format_segment(row.get("hauteur")),
        format_segment(row.get("id_contact"), key_part=True),
        format_segment(row.get("id_societe")),
        format_segment(tenant_code),
    ]
    return SEGMENT_SEPARATOR.join(segments)


class EquipmentListBuilder:
    """Builds the authoritative side of a reconciliation from local tables."""

    def __init__(
        self,
        repository: EquipmentRepository,
        logger: Optional[logging.Logger] = None,
    ):
        self.repository = repository
        self.logger = logger or logging.getLogger(__name__)

    async def build_local_items(self, tenant_code: str) -> Dict[str, str]:
        """Active equipment as an ordered map of merge key to line."""
        rows = await self.repository.fetch_active(tenant_code)
        items: Dict[str, str] = {}
        for row in rows:
            key = build_merge_key(
                row.get("id_contact"), row.get("visite"), row.get("numero_equipement")
            )
            items[key] = build_equipment_line(row, tenant_code)

        self.logger.debug(f"Built {len(items)} local items for tenant {tenant_code}")
        return items

    async def fetch_archived_keys(self, tenant_code: str) -> Set[str]:
        """Merge keys of equipment archived with no active version left."""
        rows = await self.repository.fetch_archived(tenant_code)
        keys = {
            build_merge_key(
                row.get("id_contact"), row.get("visite"), row.get("numero_equipement")
            )
            for row in rows
        }
        self.logger.debug(f"Found {len(keys)} archived keys for tenant {tenant_code}")
        return keys
