"""Repository interfaces anchoring the domain layer."""
from __future__ import annotations

from datetime import date
from typing import Mapping, Protocol, Sequence

from .models import (
    AbsencePeriod,
    CalculationDetail,
    CalculationHeader,
    CollaboratorRecord,
    FuelParameters,
    HistoryEntry,
)


class RegistryRepository(Protocol):
    """Collaborator master records, absences and payout history."""

    def list_collaborators(self, include_inactive: bool = False) -> Sequence[CollaboratorRecord]:
        ...

    def list_absences(self) -> Sequence[AbsencePeriod]:
        ...

    def get_latest_history_by_external_id(self, external_id: int) -> HistoryEntry | None:
        ...

    def add_collaborator(self, record: CollaboratorRecord, actor: str, reason: str) -> CollaboratorRecord:
        ...

    def update_name_and_sector(
        self, collaborator_id: int, name: str, sector_code: int, actor: str, reason: str
    ) -> None:
        ...

    def relink_external_id(self, collaborator_id: int, external_id: int, actor: str, reason: str) -> None:
        ...


class CalculationRepository(Protocol):
    """Persisted calculation headers, details and daily entries."""

    def period_exists(self, period_label: str) -> bool:
        ...

    def save_calculation(
        self,
        header: CalculationHeader,
        details: Sequence[CalculationDetail],
        replace_existing: bool = False,
    ) -> int:
        ...

    def zero_daily_entries(self, entry_ids: Sequence[int], marker: str) -> int:
        ...

    def list_daily_entries(
        self,
        start: date | None = None,
        end: date | None = None,
        external_id: int | None = None,
        group: str | None = None,
    ) -> Sequence[Mapping[str, object]]:
        ...


class ExternalPersonnelSource(Protocol):
    """External system of record for personnel master data."""

    def query_external_personnel(self) -> Sequence[Mapping[str, object]]:
        ...


class AuditLog(Protocol):
    def record(self, actor: str, action: str, details: str) -> None:
        ...


class FuelParametersRepository(Protocol):
    def get(self) -> FuelParameters:
        ...

    def update(self, parameters: FuelParameters, actor: str, reason: str) -> None:
        ...
