"""Unit tests for the list reconciler."""

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from kizeo_jobs.backups import ListBackupStore
from kizeo_jobs.errors import (
    InvalidTenantError,
    MissingListError,
    ProviderListUnavailableError,
    RemoteHttpError,
)
from kizeo_jobs.http_client import KizeoApiClient
from kizeo_jobs.lists import build_equipment_line, build_merge_key
from kizeo_jobs.reconciler import ListReconciler, merge_items
from kizeo_jobs.repositories import Tenant


def line(num: str, label: str, visit: str = "CE1", subject: str = "100") -> str:
    return (
        f"ACME:ACME\\{visit}:{visit}\\{num}:{num}|{label}:{label}|:|:|:|:|:|:|"
        f"{subject}:{subject}|:|S40:S40"
    )


A = line("RAP01", "old door")
A_LOCAL = line("RAP01", "new door")
B = line("RAP02", "archived door")
C = line("RAP03", "provider only")
D = line("RAP04", "local only", visit="CE2")

KEY_A = build_merge_key("100", "CE1", "RAP01")
KEY_B = build_merge_key("100", "CE1", "RAP02")
KEY_D = build_merge_key("100", "CE2", "RAP04")


def test_merge_classifies_every_line():
    result = merge_items([A, B, C], {KEY_A: A_LOCAL, KEY_D: D}, {KEY_B})

    assert result.items == [A_LOCAL, C, D]
    assert result.counts() == {
        "added": 1,
        "updated": 1,
        "kept": 1,
        "removed": 1,
        "unresolved": 0,
    }


def test_merge_is_idempotent():
    local = {KEY_A: A_LOCAL, KEY_D: D}
    first = merge_items([A, B, C], local, {KEY_B})

    second = merge_items(first.items, local, {KEY_B})

    assert second.items == first.items
    assert second.added == 0
    assert second.removed == 0


@pytest.mark.parametrize(
    "overrides",
    [{"raison_sociale": "DUPONT\\FILS"}, {"marque": "A|B"}, {"visite": "CE:1"}],
)
def test_merge_stays_idempotent_with_separators_in_values(overrides):
    row = {
        "raison_sociale": "ACME",
        "visite": "CE1",
        "numero_equipement": "RAP01",
        "id_contact": "100",
        **overrides,
    }
    key = build_merge_key(row["id_contact"], row["visite"], row["numero_equipement"])
    local = {key: build_equipment_line(row, "S40")}
    first = merge_items([], local, set())

    second = merge_items(first.items, local, set())

    assert second.items == first.items
    assert second.counts() == {
        "added": 0,
        "updated": 1,
        "kept": 0,
        "removed": 0,
        "unresolved": 0,
    }


def test_merge_with_empty_provider_list_appends_everything():
    result = merge_items([], {KEY_A: A_LOCAL, KEY_D: D}, set())

    assert result.items == [A_LOCAL, D]
    assert result.added == 2


def test_merge_keeps_unknown_lines_verbatim():
    result = merge_items([C], {}, set())

    assert result.items == [C]
    assert result.kept == 1


def test_merge_drops_provider_duplicates_of_replaced_line():
    result = merge_items([A, A], {KEY_A: A_LOCAL}, set())

    assert result.items == [A_LOCAL]
    assert result.updated == 1
    assert result.removed == 1


def test_merge_keeps_unresolvable_lines():
    garbage = "free text line"

    result = merge_items([garbage, A], {KEY_A: A_LOCAL}, set())

    assert result.items == [garbage, A_LOCAL]
    assert result.unresolved == 1
    assert result.kept == 1


def test_archived_key_wins_over_nothing_local():
    result = merge_items([B], {}, {KEY_B})

    assert result.items == []
    assert result.removed == 1


@pytest.fixture
def api():
    client = MagicMock()
    client.fetch_list = AsyncMock(return_value=[A, B, C])
    client.replace_list = AsyncMock()
    return client


@pytest.fixture
def builder():
    builder = MagicMock()
    builder.build_local_items = AsyncMock(return_value={KEY_A: A_LOCAL, KEY_D: D})
    builder.fetch_archived_keys = AsyncMock(return_value={KEY_B})
    return builder


@pytest.fixture
def tenants():
    repository = MagicMock()
    repository.get = AsyncMock(
        return_value=Tenant(code="S40", equipment_list_id="555", client_list_id="556")
    )
    repository.list_active = AsyncMock(
        return_value=[
            Tenant(code="S10", equipment_list_id="111"),
            Tenant(code="S40", equipment_list_id="555"),
            Tenant(code="S50", equipment_list_id=None),
        ]
    )
    return repository


@pytest.fixture
def reconciler(config, api, builder, tenants):
    return ListReconciler(config, api, builder, tenants, sleep=AsyncMock())


@pytest.mark.asyncio
async def test_reconcile_writes_backup_then_merged_list(reconciler, api, config):
    result = await reconciler.reconcile("s40", "555")

    api.replace_list.assert_awaited_once_with("555", [A_LOCAL, C, D])
    assert result.tenant_code == "S40"
    assert result.total_sent == 3

    backup = json.loads(Path(result.backup_path).read_text(encoding="utf-8"))
    assert backup["items"] == [A, B, C]
    assert backup["count"] == 3
    assert backup["list_id"] == "555"
    assert backup["tenant_code"] == "S40"
    assert Path(result.backup_path).parent == Path(config.backup_dir)


@pytest.mark.asyncio
async def test_backup_happens_before_replace(config, api, builder, tenants):
    backups = MagicMock(spec=ListBackupStore)
    order = []
    backups.save.side_effect = lambda *args: order.append("backup") or Path("/tmp/b.json")
    api.replace_list.side_effect = lambda *args: order.append("replace")
    reconciler = ListReconciler(config, api, builder, tenants, backups=backups)

    await reconciler.reconcile("S40", "555")

    assert order == ["backup", "replace"]


@pytest.mark.asyncio
async def test_dry_run_does_not_replace(reconciler, api):
    result = await reconciler.reconcile("S40", "555", dry_run=True)

    api.replace_list.assert_not_awaited()
    assert result.merge.counts()["added"] == 1
    assert result.total_sent == 0
    assert Path(result.backup_path).exists()


@pytest.mark.asyncio
async def test_fetch_failure_aborts_without_backup(reconciler, api, builder, config):
    api.fetch_list.side_effect = RemoteHttpError(503, "unavailable")

    with pytest.raises(ProviderListUnavailableError):
        await reconciler.reconcile("S40", "555")

    api.replace_list.assert_not_awaited()
    builder.build_local_items.assert_not_awaited()
    assert not Path(config.backup_dir).exists()


@pytest.mark.asyncio
async def test_invalid_tenant_rejected(reconciler, api):
    with pytest.raises(InvalidTenantError):
        await reconciler.reconcile("X1", "555")

    api.fetch_list.assert_not_awaited()


@pytest.mark.asyncio
async def test_reconcile_tenant_requires_list(reconciler, tenants):
    tenants.get.return_value = Tenant(code="S40", equipment_list_id=None)

    with pytest.raises(MissingListError):
        await reconciler.reconcile_tenant("S40")


@pytest.mark.asyncio
async def test_reconcile_all_isolates_tenant_failures(reconciler, api):
    api.fetch_list.side_effect = [RemoteHttpError(500, "boom"), [A, B, C]]

    summary = await reconciler.reconcile_all()

    assert summary["tenants_failed"] == 1
    assert summary["tenants_ok"] == 1
    assert summary["tenants_skipped"] == 1
    assert "S10" in summary["errors"]
    assert summary["results"][0]["tenant_code"] == "S40"
    api.replace_list.assert_awaited_once()
    reconciler.sleep.assert_awaited_once_with(0.5)


@pytest.mark.asyncio
async def test_reconcile_all_single_tenant(reconciler, tenants, api):
    summary = await reconciler.reconcile_all("S40")

    tenants.get.assert_awaited_once_with("S40")
    tenants.list_active.assert_not_awaited()
    assert summary["tenants_ok"] == 1


@pytest.mark.asyncio
async def test_reconcile_all_survives_provider_timeout(config, builder, tenants):
    """A timed out list fetch fails only its own tenant."""
    api = KizeoApiClient(config.api_url, config.api_token)
    reconciler = ListReconciler(config, api, builder, tenants, sleep=AsyncMock())
    listed = MagicMock()
    listed.status = 200
    listed.json = AsyncMock(return_value={"list": {"items": [A, B, C]}})
    fetch_ok = MagicMock()
    fetch_ok.__aenter__.return_value = listed

    with patch("aiohttp.ClientSession") as mock_session:
        session = MagicMock()
        mock_session.return_value.__aenter__.return_value = session
        session.get.side_effect = [asyncio.TimeoutError(), fetch_ok]
        session.put.return_value.__aenter__.return_value = MagicMock(status=200)

        summary = await reconciler.reconcile_all()

    assert summary["tenants_failed"] == 1
    assert summary["tenants_ok"] == 1
    assert "S10" in summary["errors"]
    assert session.put.call_args[1]["json"] == {"items": [A_LOCAL, C, D]}
