from decimal import Decimal
from pathlib import Path

import pytest

from fuel_reimbursement.application import audit
from fuel_reimbursement.application.dto import TelemetryImportRequest
from fuel_reimbursement.composition import Services, build_services
from fuel_reimbursement.config import load_settings
from fuel_reimbursement.domain.errors import UnreadableInputError, ValidationError
from fuel_reimbursement.domain.models import CollaboratorRecord, FuelParameters, VehicleClass

TELEMETRY = (
    "ID Pulsus;Nome;Data;Estimativa de distância percorrida (KM)\n"
    "101;Carla;01/01/2024;50\n"
    "101;Carla;02/01/2024;30\n"
    "202;Moto Man;01/01/2024;90\n"
    "303;Outsider;01/01/2024;40\n"
    "999;Unknown;03/01/2024;12\n"
    "abc;Broken;03/01/2024;12\n"
).encode("utf-8")


@pytest.fixture
def services(tmp_path: Path) -> Services:
    settings = load_settings({"FUEL_DB_PATH": str(tmp_path / "fuel.db"), "FUEL_ACTOR": "tester"})
    services = build_services(settings)
    for external_id, name, group, vehicle in (
        (101, "Carla", "Vendedor", VehicleClass.CAR),
        (202, "Moto Man", "Promotor", VehicleClass.MOTORCYCLE),
        (303, "Outsider", "Outros", VehicleClass.CAR),
    ):
        services.registry.add_collaborator(
            CollaboratorRecord(
                collaborator_id=0,
                external_id=external_id,
                sector_code=1,
                name=name,
                group=group,
                vehicle_class=vehicle,
            ),
            "admin",
        )
    return services


def test_import_and_calculate(services: Services):
    response = services.import_telemetry().execute(
        TelemetryImportRequest(source=TELEMETRY, file_name="jan.csv", actor="tester")
    )

    session = response.workflow.session
    summary = session.summary()
    assert summary.staged == 4
    assert summary.ignored_ids == 1
    assert summary.rejected == 1
    assert session.period_label == "01/01/2024 to 02/01/2024"
    assert len(response.file_hash) == 64
    assert len(services.audit_log.list_entries(action=audit.TELEMETRY_IMPORT)) == 1

    result = services.calculate().execute(session)

    values = {item.collaborator.external_id: item.value for item in result.aggregates}
    assert values == {101: Decimal("40"), 202: Decimal("15")}
    assert result.grand_total == Decimal("55")


def test_absence_registered_after_import_is_picked_up_by_revalidate(services: Services):
    response = services.import_telemetry().execute(
        TelemetryImportRequest(source=TELEMETRY, file_name="jan.csv", actor="tester")
    )
    carla = next(c for c in services.registry.list_collaborators() if c.external_id == 101)
    services.registry.add_absence(carla.collaborator_id, "2024-01-01", "2024-01-01", "Vacation", "admin")

    report = response.workflow.revalidate()

    assert len(report.newly_blocked) == 1
    result = services.calculate().execute(response.workflow.session)
    carla_item = next(item for item in result.aggregates if item.collaborator.external_id == 101)
    assert carla_item.value == Decimal("15")
    assert carla_item.lines[0].entry.observation == "Vacation"


def test_fuel_parameter_update_changes_next_calculation(services: Services):
    response = services.import_telemetry().execute(
        TelemetryImportRequest(source=TELEMETRY, file_name="jan.csv", actor="tester")
    )
    update = services.update_fuel_parameters()

    with pytest.raises(ValidationError):
        update.execute(FuelParameters(Decimal("6"), Decimal("10"), Decimal("30")), "admin", " ")
    update.execute(FuelParameters(Decimal("6"), Decimal("10"), Decimal("30")), "admin", "Price increase")

    result = services.calculate().execute(response.workflow.session)
    assert result.grand_total == Decimal("66")
    assert len(services.audit_log.list_entries(action=audit.CONFIG_UPDATE)) == 1


def test_unreadable_input(services: Services):
    with pytest.raises(UnreadableInputError):
        services.import_telemetry().execute(
            TelemetryImportRequest(source=Path("/does/not/exist.csv"), file_name="x.csv", actor="tester")
        )
    with pytest.raises(UnreadableInputError):
        services.import_telemetry().execute(
            TelemetryImportRequest(source=b"just;some;header\n", file_name="x.csv", actor="tester")
        )


def test_malformed_line_is_rejected_without_losing_its_neighbours(services: Services):
    data = (
        "ID Pulsus;Nome;Data;Estimativa de distância percorrida (KM)\n"
        "101;Carla;01/01/2024;5\n"
        "102;Bob;Junior;02/01/2024;7\n"
        "202;Moto Man;03/01/2024;9\n"
    ).encode("utf-8")

    response = services.import_telemetry().execute(
        TelemetryImportRequest(source=data, file_name="jan.csv", actor="tester")
    )

    session = response.workflow.session
    assert [r.external_id for r in session.records] == [101, 202]
    assert [(r.line_number, r.reason) for r in session.rejected] == [(3, "expected 4 fields, found 5")]
    assert session.period_label == "01/01/2024 to 03/01/2024"
