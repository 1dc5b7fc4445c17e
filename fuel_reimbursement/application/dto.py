"""Application-level DTOs for the reimbursement workflows."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from io import BytesIO
from pathlib import Path
from typing import Sequence

from fuel_reimbursement.domain.corrections import CorrectionWorkflow
from fuel_reimbursement.domain.models import DiffItem
from fuel_reimbursement.domain.results import AggregationResult


@dataclass(slots=True, frozen=True)
class TelemetryImportRequest:
    source: BytesIO | Path | bytes | str
    file_name: str
    actor: str


@dataclass(slots=True, frozen=True)
class TelemetryImportResponse:
    workflow: CorrectionWorkflow
    file_hash: str


@dataclass(slots=True, frozen=True)
class SaveCalculationRequest:
    period_label: str
    aggregation: AggregationResult
    actor: str
    overwrite: bool = False
    overwrite_reason: str = ""


@dataclass(slots=True, frozen=True)
class SaveCalculationResponse:
    header_id: int
    overwritten: bool
    grand_total: Decimal
    item_count: int


@dataclass(slots=True, frozen=True)
class AbsenceConflict:
    entry_id: int
    external_id: int
    name: str
    occurrence_date: date
    distance: Decimal
    value: Decimal
    period_label: str
    absence_reason: str


@dataclass(slots=True, frozen=True)
class SyncRequest:
    items: Sequence[DiffItem]
    actor: str
