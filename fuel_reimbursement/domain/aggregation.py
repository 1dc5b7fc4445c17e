"""Aggregation of staging records into payable per-collaborator totals.

Values keep full ``Decimal`` precision; rounding to cents happens only when
results are rendered.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Mapping, Sequence

from .errors import NotFoundError, ValidationError
from .models import (
    CalculationDailyEntry,
    CalculationDetail,
    CalculationHeader,
    CollaboratorRecord,
    FuelParameters,
    StagingRecord,
)
from .results import AggregationResult, CollaboratorAggregate, DailyEntryLine

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
ADJUSTMENT_PREFIX = "Adjustment: "


def observation_for(record: StagingRecord) -> str:
    adjustment = f"{ADJUSTMENT_PREFIX}{record.edit_reason}" if record.edited else ""
    if record.blocked and adjustment:
        return f"{record.block_reason}; {adjustment}"
    if record.blocked:
        return record.block_reason
    return adjustment


class Aggregator:
    def __init__(self, parameters: FuelParameters, catch_all_group: str = "Outros") -> None:
        problems = parameters.problems()
        if problems:
            raise ValidationError("; ".join(problems))
        self._parameters = parameters
        self._catch_all = catch_all_group.strip().casefold()

    def is_payable(self, collaborator: CollaboratorRecord) -> bool:
        return collaborator.group.strip().casefold() != self._catch_all

    def aggregate(
        self,
        records: Sequence[StagingRecord],
        collaborators: Mapping[int, CollaboratorRecord],
    ) -> AggregationResult:
        grouped: dict[int, list[StagingRecord]] = defaultdict(list)
        for record in records:
            grouped[record.collaborator_id].append(record)

        aggregates: list[CollaboratorAggregate] = []
        excluded: list[int] = []
        for collaborator_id, group in grouped.items():
            collaborator = collaborators.get(collaborator_id)
            if collaborator is None:
                raise NotFoundError(f"collaborator {collaborator_id} is not in the registry snapshot")
            if not self.is_payable(collaborator):
                excluded.extend(record.record_id for record in group)
                continue
            aggregates.append(self._aggregate_one(collaborator, group))

        aggregates.sort(key=lambda item: (item.collaborator.name.casefold(), item.collaborator.external_id))
        logger.info(
            "Aggregated %d payable collaborators; %d records excluded by catch-all group",
            len(aggregates),
            len(excluded),
        )
        return AggregationResult(aggregates=tuple(aggregates), excluded_record_ids=tuple(excluded))

    def _aggregate_one(self, collaborator: CollaboratorRecord, records: list[StagingRecord]) -> CollaboratorAggregate:
        efficiency = self._parameters.efficiency_for(collaborator.vehicle_class)
        unit_price = self._parameters.unit_price
        total_distance = sum((r.considered_distance for r in records), ZERO)
        liters = total_distance / efficiency
        per_unit_rate = unit_price / efficiency
        ordered = sorted(records, key=lambda r: (r.date_key is None, r.date_key, r.record_id))
        lines = tuple(
            DailyEntryLine(
                record_id=record.record_id,
                entry=CalculationDailyEntry(
                    occurrence_date=record.date_key,
                    distance=record.considered_distance,
                    value=record.considered_distance * per_unit_rate,
                    observation=observation_for(record),
                ),
            )
            for record in ordered
        )
        return CollaboratorAggregate(
            collaborator=collaborator,
            total_distance=total_distance,
            liters=liters,
            value=liters * unit_price,
            efficiency=efficiency,
            unit_price=unit_price,
            per_unit_rate=per_unit_rate,
            lines=lines,
        )


def build_calculation(
    result: AggregationResult,
    period_label: str,
    generated_by: str,
    overwrite_reason: str = "",
) -> tuple[CalculationHeader, tuple[CalculationDetail, ...]]:
    """Turn an aggregation result into the persistable header/detail hierarchy."""
    details = tuple(
        CalculationDetail(
            external_id=item.collaborator.external_id,
            collaborator_id=item.collaborator.collaborator_id,
            name=item.collaborator.name,
            group=item.collaborator.group,
            vehicle_class=item.collaborator.vehicle_class,
            total_distance=item.total_distance,
            liters=item.liters,
            value=item.value,
            unit_price=item.unit_price,
            efficiency=item.efficiency,
            entries=tuple(line.entry for line in item.lines),
        )
        for item in result.aggregates
    )
    header = CalculationHeader(
        period_label=period_label,
        generated_by=generated_by,
        grand_total=result.grand_total,
        item_count=len(details),
        overwrite_reason=overwrite_reason,
    )
    return header, details
