"""Result objects produced by the staging, revalidation and sync services."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Mapping, Sequence

from .models import (
    CalculationDailyEntry,
    CollaboratorRecord,
    DiffItem,
    IgnoredGroup,
    StagingRecord,
)


@dataclass(frozen=True)
class RejectedRow:
    line_number: int
    reason: str


@dataclass(frozen=True)
class StagingResult:
    records: Sequence[StagingRecord]
    ignored: Mapping[int, IgnoredGroup]
    rejected: Sequence[RejectedRow]
    period_label: str


@dataclass(frozen=True)
class StagingSummary:
    staged: int
    blocked: int
    low_distance: int
    edited: int
    ignored_ids: int
    ignored_rows: int
    rejected: int

    @classmethod
    def from_state(
        cls,
        records: Iterable[StagingRecord],
        ignored: Mapping[int, IgnoredGroup],
        rejected: Sequence[RejectedRow] = (),
    ) -> "StagingSummary":
        records = list(records)
        return cls(
            staged=len(records),
            blocked=sum(1 for r in records if r.blocked),
            low_distance=sum(1 for r in records if r.low_distance),
            edited=sum(1 for r in records if r.edited),
            ignored_ids=len(ignored),
            ignored_rows=sum(len(group.rows) for group in ignored.values()),
            rejected=len(rejected),
        )


@dataclass(frozen=True)
class MergeSuggestion:
    external_id: int
    collaborator_id: int
    collaborator_name: str
    group: str
    historical_name: str


@dataclass(frozen=True)
class RevalidationReport:
    newly_blocked: Sequence[int] = field(default_factory=tuple)
    newly_unblocked: Sequence[int] = field(default_factory=tuple)
    reason_changed: Sequence[int] = field(default_factory=tuple)

    def has_changes(self) -> bool:
        return bool(self.newly_blocked or self.newly_unblocked or self.reason_changed)


@dataclass(frozen=True)
class DailyEntryLine:
    record_id: int
    entry: CalculationDailyEntry


@dataclass(frozen=True)
class CollaboratorAggregate:
    collaborator: CollaboratorRecord
    total_distance: Decimal
    liters: Decimal
    value: Decimal
    efficiency: Decimal
    unit_price: Decimal
    per_unit_rate: Decimal
    lines: Sequence[DailyEntryLine] = field(default_factory=tuple)


@dataclass(frozen=True)
class AggregationResult:
    aggregates: Sequence[CollaboratorAggregate]
    excluded_record_ids: Sequence[int] = field(default_factory=tuple)

    @property
    def grand_total(self) -> Decimal:
        return sum((item.value for item in self.aggregates), Decimal("0"))

    @property
    def total_distance(self) -> Decimal:
        return sum((item.total_distance for item in self.aggregates), Decimal("0"))


@dataclass(frozen=True)
class DiffResult:
    new: Sequence[DiffItem]
    changed: Sequence[DiffItem]
    total_external: int
    skipped: int = 0
    conflicts: Sequence[DiffItem] = ()

    def has_changes(self) -> bool:
        return bool(self.new or self.changed or self.conflicts)


@dataclass(frozen=True)
class SyncItemResult:
    external_id: int
    kind: str
    success: bool
    error: str = ""


@dataclass(frozen=True)
class SyncResult:
    items: Sequence[SyncItemResult]

    @property
    def applied_count(self) -> int:
        return sum(1 for item in self.items if item.success)

    @property
    def failures(self) -> Sequence[SyncItemResult]:
        return tuple(item for item in self.items if not item.success)
