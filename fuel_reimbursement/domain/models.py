"""Domain models for the telemetry reconciliation and reimbursement pipeline.

Records are immutable; workflows produce new instances with
``dataclasses.replace`` so a failed operation never leaves half-applied state.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Sequence


class VehicleClass(str, Enum):
    CAR = "Car"
    MOTORCYCLE = "Motorcycle"

    @classmethod
    def parse(cls, value: object) -> "VehicleClass":
        text = str(value or "").strip().lower()
        if text in ("car", "carro"):
            return cls.CAR
        if text in ("motorcycle", "moto", "motorbike"):
            return cls.MOTORCYCLE
        raise ValueError(f"Unknown vehicle class: {value!r}")


@dataclass(frozen=True)
class CollaboratorRecord:
    """Registry entry for one field collaborator."""

    collaborator_id: int
    external_id: int
    sector_code: int
    name: str
    group: str
    vehicle_class: VehicleClass = VehicleClass.CAR
    active: bool = True
    last_editor: str | None = None
    last_reason: str | None = None
    last_changed_at: datetime | None = None


@dataclass(frozen=True)
class AbsencePeriod:
    """Inclusive date range during which a collaborator is not reimbursed."""

    absence_id: int
    collaborator_id: int
    start: date
    end: date
    reason: str

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"Absence start {self.start} is after end {self.end}")

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


@dataclass(frozen=True)
class RawTelemetryRow:
    """One line of the telemetry input exactly as read, before coercion."""

    line_number: int
    external_id: str
    name: str
    raw_date: str
    distance: str
    error: str = ""  # set when the line itself was malformed


@dataclass(frozen=True)
class TelemetryRow:
    """Typed telemetry observation for one external id on one day."""

    line_number: int
    external_id: int
    name: str
    raw_date: str
    distance: Decimal


@dataclass(frozen=True)
class StagingRecord:
    """Candidate payout line for one matched telemetry observation."""

    record_id: int
    external_id: int
    collaborator_id: int
    name: str
    raw_date: str
    date_key: date | None
    original_distance: Decimal
    considered_distance: Decimal
    low_distance: bool = False
    blocked: bool = False
    block_reason: str = ""
    edited: bool = False
    edit_reason: str = ""


@dataclass(frozen=True)
class IgnoredGroup:
    """Telemetry rows whose external id has no collaborator in the registry."""

    external_id: int
    rows: tuple[TelemetryRow, ...]

    @property
    def name(self) -> str:
        for row in self.rows:
            if row.name:
                return row.name
        return f"Collaborator {self.external_id}"

    @property
    def total_distance(self) -> Decimal:
        return sum((row.distance for row in self.rows), Decimal("0"))


@dataclass(frozen=True)
class HistoryEntry:
    """Name and group last recorded in a payout for an external id."""

    external_id: int
    name: str
    group: str


@dataclass(frozen=True)
class FuelParameters:
    unit_price: Decimal
    car_efficiency: Decimal
    motorcycle_efficiency: Decimal

    def efficiency_for(self, vehicle_class: VehicleClass) -> Decimal:
        if vehicle_class is VehicleClass.MOTORCYCLE:
            return self.motorcycle_efficiency
        return self.car_efficiency

    def problems(self) -> list[str]:
        issues = []
        if self.unit_price < 0:
            issues.append("unit price must be >= 0")
        if self.car_efficiency <= 0:
            issues.append("car efficiency must be > 0")
        if self.motorcycle_efficiency <= 0:
            issues.append("motorcycle efficiency must be > 0")
        return issues


@dataclass(frozen=True)
class CalculationDailyEntry:
    occurrence_date: date | None
    distance: Decimal
    value: Decimal
    observation: str = ""
    entry_id: int | None = None


@dataclass(frozen=True)
class CalculationDetail:
    external_id: int
    collaborator_id: int
    name: str
    group: str
    vehicle_class: VehicleClass
    total_distance: Decimal
    liters: Decimal
    value: Decimal
    unit_price: Decimal
    efficiency: Decimal
    entries: Sequence[CalculationDailyEntry] = field(default_factory=tuple)
    detail_id: int | None = None


@dataclass(frozen=True)
class CalculationHeader:
    period_label: str
    generated_by: str
    grand_total: Decimal
    item_count: int
    overwrite_reason: str = ""
    created_at: datetime | None = None
    header_id: int | None = None


@dataclass(frozen=True)
class FieldChange:
    field: str
    old_value: object
    new_value: object


@dataclass(frozen=True)
class DiffItem:
    """External personnel row classified against the registry."""

    kind: str  # "new", "changed" or "conflict"
    external_id: int
    name: str
    sector_code: int
    group: str
    changes: tuple[FieldChange, ...] = ()
    collaborator_id: int | None = None

    @property
    def is_new(self) -> bool:
        return self.kind == "new"

    @property
    def is_conflict(self) -> bool:
        return self.kind == "conflict"
