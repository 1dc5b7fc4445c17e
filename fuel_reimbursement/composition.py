"""Composition root: wires settings, stores and use cases together."""
from __future__ import annotations

from dataclasses import dataclass

from fuel_reimbursement.application.use_cases import (
    ApplyRegistrySyncUseCase,
    CalculateReimbursementUseCase,
    FindAbsenceConflictsUseCase,
    ImportContext,
    ImportTelemetryUseCase,
    PreviewRegistrySyncUseCase,
    SaveCalculationUseCase,
    UpdateFuelParametersUseCase,
    ZeroDailyEntriesUseCase,
)
from fuel_reimbursement.config import Settings
from fuel_reimbursement.domain.master_data import MasterDataDiff
from fuel_reimbursement.domain.matching import TelemetryMatcher
from fuel_reimbursement.infrastructure.external.personnel_source import SqlPersonnelSource
from fuel_reimbursement.infrastructure.storage.audit_log import SqliteAuditLog
from fuel_reimbursement.infrastructure.storage.calculation_repository import SqliteCalculationRepository
from fuel_reimbursement.infrastructure.storage.db import Database
from fuel_reimbursement.infrastructure.storage.fuel_parameters_repository import SqliteFuelParametersRepository
from fuel_reimbursement.infrastructure.storage.registry_repository import SqliteRegistryRepository


@dataclass(slots=True)
class Services:
    settings: Settings
    database: Database
    registry: SqliteRegistryRepository
    calculations: SqliteCalculationRepository
    audit_log: SqliteAuditLog
    fuel_parameters: SqliteFuelParametersRepository

    def import_telemetry(self) -> ImportTelemetryUseCase:
        matcher = TelemetryMatcher(
            tie_break=self.settings.absence_tie_break,
            low_distance_threshold=self.settings.low_distance_threshold,
        )
        return ImportTelemetryUseCase(
            ImportContext(
                registry=self.registry,
                matcher=matcher,
                audit_log=self.audit_log,
                delimiter=self.settings.telemetry_delimiter,
            )
        )

    def calculate(self) -> CalculateReimbursementUseCase:
        return CalculateReimbursementUseCase(self.fuel_parameters, self.settings.catch_all_group)

    def save_calculation(self) -> SaveCalculationUseCase:
        return SaveCalculationUseCase(calculations=self.calculations, audit_log=self.audit_log)

    def zero_daily_entries(self) -> ZeroDailyEntriesUseCase:
        return ZeroDailyEntriesUseCase(calculations=self.calculations, audit_log=self.audit_log)

    def find_absence_conflicts(self) -> FindAbsenceConflictsUseCase:
        return FindAbsenceConflictsUseCase(
            registry=self.registry,
            calculations=self.calculations,
            tie_break=self.settings.absence_tie_break,
        )

    def preview_registry_sync(self) -> PreviewRegistrySyncUseCase:
        return PreviewRegistrySyncUseCase(
            registry=self.registry,
            source=SqlPersonnelSource(self.settings.external_db_url, self.settings.external_query),
            differ=MasterDataDiff(self.settings.catch_all_group, self.settings.default_groups),
        )

    def apply_registry_sync(self) -> ApplyRegistrySyncUseCase:
        return ApplyRegistrySyncUseCase(
            registry=self.registry,
            audit_log=self.audit_log,
            default_vehicle_class=self.settings.default_vehicle_class,
        )

    def update_fuel_parameters(self) -> UpdateFuelParametersUseCase:
        return UpdateFuelParametersUseCase(fuel_parameters=self.fuel_parameters, audit_log=self.audit_log)


def build_services(settings: Settings) -> Services:
    database = Database(settings.database_path)
    database.init_schema()
    return Services(
        settings=settings,
        database=database,
        registry=SqliteRegistryRepository(database),
        calculations=SqliteCalculationRepository(database),
        audit_log=SqliteAuditLog(database),
        fuel_parameters=SqliteFuelParametersRepository(database, settings.default_fuel),
    )
