"""Unit tests for the equipment list line format."""

from datetime import date
from unittest.mock import AsyncMock

import pytest

from kizeo_jobs.lists import (
    EquipmentListBuilder,
    build_equipment_line,
    build_merge_key,
    extract_merge_key,
    format_segment,
    segment_value,
)


def equipment_row(**overrides):
    row = {
        "raison_sociale": "ACME",
        "visite": "CE1",
        "numero_equipement": "RAP01",
        "libelle_equipement": "Porte rapide",
        "mise_en_service": date(2019, 5, 1),
        "numero_serie": "SN-1",
        "marque": "Hormann",
        "longueur": None,
        "largeur": "3000",
        "hauteur": "",
        "id_contact": 3352,
        "id_societe": "77",
    }
    row.update(overrides)
    return row


def test_format_segment():
    assert format_segment("x") == "x:x"
    assert format_segment("  x ") == "x:x"
    assert format_segment("") == ":"
    assert format_segment(None) == ":"


def test_segment_value_takes_text_after_last_colon():
    assert segment_value("a:b") == "b"
    assert segment_value("12:30:12:30") == "30"
    assert segment_value("plain") == "plain"


def test_build_equipment_line():
    line = build_equipment_line(equipment_row(), "S40")

    assert line == (
        "ACME:ACME\\CE1:CE1\\RAP01:RAP01|Porte rapide:Porte rapide|"
        "2019-05-01:2019-05-01|SN-1:SN-1|Hormann:Hormann|:|3000:3000|:|"
        "3352:3352|77:77|S40:S40"
    )
    assert len(line.split("|")) == 11


def test_build_merge_key_normalizes():
    assert build_merge_key(" 3352 ", "ce1", " rap01") == "3352\\CE1\\RAP01"


def test_extract_merge_key_from_built_line():
    line = build_equipment_line(equipment_row(), "S40")

    assert extract_merge_key(line) == "3352\\CE1\\RAP01"


def test_extract_merge_key_ignores_client_name():
    line = build_equipment_line(equipment_row(raison_sociale="Acme (old name)"), "S40")

    assert extract_merge_key(line) == "3352\\CE1\\RAP01"


def test_extract_merge_key_lowercase_provider_line():
    line = "X:X\\ce1:ce1\\rap01:rap01|:|:|:|:|:|:|:|3352:3352|:|S40:S40"

    assert extract_merge_key(line) == "3352\\CE1\\RAP01"


@pytest.mark.parametrize(
    "line",
    [
        "just a label",
        "ACME:ACME\\CE1:CE1",
        "ACME:ACME\\CE1:CE1\\RAP01:RAP01|:|:|:|:|:|:|:",
        "ACME:ACME\\CE1:CE1\\RAP01:RAP01|:|:|:|:|:|:|:|:|:|S40:S40",
    ],
)
def test_extract_merge_key_unresolvable(line):
    assert extract_merge_key(line) is None


@pytest.mark.asyncio
async def test_builder_maps_rows_by_key():
    repository = AsyncMock()
    repository.fetch_active.return_value = [
        equipment_row(),
        equipment_row(visite="CE2", numero_equipement="RAP02"),
    ]
    repository.fetch_archived.return_value = [
        {"id_contact": 3352, "visite": "ce1", "numero_equipement": "rap09"},
    ]
    builder = EquipmentListBuilder(repository)

    items = await builder.build_local_items("S40")
    archived = await builder.fetch_archived_keys("S40")

    assert list(items) == ["3352\\CE1\\RAP01", "3352\\CE2\\RAP02"]
    assert items["3352\\CE1\\RAP01"].endswith("|S40:S40")
    assert archived == {"3352\\CE1\\RAP09"}


@pytest.mark.parametrize(
    "overrides",
    [
        {"raison_sociale": "DUPONT\\FILS"},
        {"marque": "A|B"},
        {"libelle_equipement": "porte\\sectionnelle|rapide"},
        {"visite": "CE:1", "numero_equipement": "RAP\\01"},
        {"numero_equipement": "RAP|02", "id_contact": "33:52"},
    ],
)
def test_separators_in_values_keep_the_merge_key(overrides):
    row = equipment_row(**overrides)

    line = build_equipment_line(row, "S40")

    assert len(line.split("|")) == 11
    assert len(line.split("|")[0].split("\\")) == 3
    assert extract_merge_key(line) == build_merge_key(
        row["id_contact"], row["visite"], row["numero_equipement"]
    )


def test_format_segment_replaces_separators():
    assert format_segment("A|B") == "A/B:A/B"
    assert format_segment("A\\B") == "A/B:A/B"
    assert format_segment("12:30") == "12:30:12:30"
    assert format_segment("CE:1", key_part=True) == "CE-1:CE-1"
