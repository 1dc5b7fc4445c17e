from dataclasses import replace
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from fuel_reimbursement.domain.errors import ConflictError, NotFoundError, ValidationError
from fuel_reimbursement.domain.models import (
    CalculationDailyEntry,
    CalculationDetail,
    CalculationHeader,
    CollaboratorRecord,
    VehicleClass,
)
from fuel_reimbursement.infrastructure.storage.calculation_repository import SqliteCalculationRepository
from fuel_reimbursement.infrastructure.storage.db import Database
from fuel_reimbursement.infrastructure.storage.registry_repository import SqliteRegistryRepository


@pytest.fixture
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "data" / "fuel.db")
    db.init_schema()
    return db


@pytest.fixture
def registry(database: Database) -> SqliteRegistryRepository:
    return SqliteRegistryRepository(database)


def make_collaborator(external_id: int, name: str, group: str = "Vendedor") -> CollaboratorRecord:
    return CollaboratorRecord(
        collaborator_id=0,
        external_id=external_id,
        sector_code=10,
        name=name,
        group=group,
        vehicle_class=VehicleClass.MOTORCYCLE,
    )


def make_detail(external_id: int, name: str, group: str) -> CalculationDetail:
    return CalculationDetail(
        external_id=external_id,
        collaborator_id=1,
        name=name,
        group=group,
        vehicle_class=VehicleClass.CAR,
        total_distance=Decimal("10"),
        liters=Decimal("1"),
        value=Decimal("5"),
        unit_price=Decimal("5"),
        efficiency=Decimal("10"),
        entries=(CalculationDailyEntry(occurrence_date=date(2024, 1, 1), distance=Decimal("10"), value=Decimal("5")),),
    )


def test_schema_health_check(database: Database):
    assert database.health_check()


def test_add_and_list_collaborators(registry: SqliteRegistryRepository):
    added = registry.add_collaborator(make_collaborator(101, "Ana"), "admin", "Created")

    assert added.collaborator_id > 0
    assert added.vehicle_class is VehicleClass.MOTORCYCLE
    assert added.last_editor == "admin"
    assert added.last_changed_at is not None
    assert [c.external_id for c in registry.list_collaborators()] == [101]
    assert registry.list_groups() == ["Vendedor"]


def test_duplicate_external_id_conflicts(registry: SqliteRegistryRepository):
    registry.add_collaborator(make_collaborator(101, "Ana"), "admin")

    with pytest.raises(ConflictError):
        registry.add_collaborator(make_collaborator(101, "Other"), "admin")


def test_update_name_and_sector_keeps_group(registry: SqliteRegistryRepository):
    added = registry.add_collaborator(make_collaborator(101, "Ana", group="Promotor"), "admin")

    registry.update_name_and_sector(added.collaborator_id, "Ana Maria", 99, "sync", "Registry sync")

    updated = registry.get_collaborator(added.collaborator_id)
    assert (updated.name, updated.sector_code, updated.group) == ("Ana Maria", 99, "Promotor")
    assert updated.last_reason == "Registry sync"
    with pytest.raises(ValidationError):
        registry.update_name_and_sector(added.collaborator_id, "X", 1, "sync", "")
    with pytest.raises(NotFoundError):
        registry.update_name_and_sector(999, "X", 1, "sync", "reason")


def test_manual_update_can_change_group(registry: SqliteRegistryRepository):
    added = registry.add_collaborator(make_collaborator(101, "Ana"), "admin")
    registry.add_collaborator(make_collaborator(102, "Bruno"), "admin")

    updated = registry.update_collaborator(replace(added, group="Promotor"), "admin", "Role change")

    assert updated.group == "Promotor"
    with pytest.raises(ConflictError):
        registry.update_collaborator(replace(added, external_id=102), "admin", "typo")
    with pytest.raises(NotFoundError):
        registry.update_collaborator(replace(added, collaborator_id=999), "admin", "reason")


def test_deactivated_collaborators_are_hidden_by_default(registry: SqliteRegistryRepository):
    added = registry.add_collaborator(make_collaborator(101, "Ana"), "admin")

    registry.deactivate(added.collaborator_id, "admin", "Left the company")

    assert registry.list_collaborators() == []
    assert [c.active for c in registry.list_collaborators(include_inactive=True)] == [False]


def test_absences_round_trip_and_validation(registry: SqliteRegistryRepository):
    added = registry.add_collaborator(make_collaborator(101, "Ana"), "admin")

    absence = registry.add_absence(added.collaborator_id, "05/01/2024", "2024-01-07", "Vacation", "admin")

    assert registry.list_absences() == [absence]
    assert absence.start == date(2024, 1, 5)
    with pytest.raises(ValidationError):
        registry.add_absence(added.collaborator_id, "2024-01-07", "2024-01-05", "Vacation", "admin")
    with pytest.raises(ValidationError):
        registry.add_absence(added.collaborator_id, "soon", "2024-01-05", "Vacation", "admin")
    with pytest.raises(NotFoundError):
        registry.add_absence(999, "2024-01-01", "2024-01-05", "Vacation", "admin")

    registry.delete_absence(absence.absence_id)
    assert registry.list_absences() == []


def test_latest_history_uses_most_recent_calculation(database: Database, registry: SqliteRegistryRepository):
    calculations = SqliteCalculationRepository(database)
    for label, name in (("2024-01", "Old Name"), ("2024-02", "New Name")):
        header = CalculationHeader(period_label=label, generated_by="admin", grand_total=Decimal("5"), item_count=1)
        calculations.save_calculation(header, [make_detail(555, name, "Vendedor")])

    entry = registry.get_latest_history_by_external_id(555)

    assert entry.name == "New Name"
    assert entry.group == "Vendedor"
    assert registry.get_latest_history_by_external_id(777) is None


def test_relink_external_id_changes_only_the_id(registry: SqliteRegistryRepository):
    added = registry.add_collaborator(make_collaborator(101, "Ana", group="Promotor"), "admin")
    registry.add_collaborator(make_collaborator(102, "Bruno"), "admin")

    registry.relink_external_id(added.collaborator_id, 901, "sync", "Device swap")

    relinked = registry.get_collaborator(added.collaborator_id)
    assert (relinked.external_id, relinked.name, relinked.group) == (901, "Ana", "Promotor")
    assert relinked.last_reason == "Device swap"
    with pytest.raises(ConflictError):
        registry.relink_external_id(added.collaborator_id, 102, "sync", "Device swap")
    with pytest.raises(NotFoundError):
        registry.relink_external_id(999, 903, "sync", "Device swap")
    with pytest.raises(ValidationError):
        registry.relink_external_id(added.collaborator_id, 904, "sync", " ")
