"""Matcher and staging builder.

Maps telemetry rows to registry entries, partitions them into staged and
ignored observations and applies the absence-blocking rule.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, Sequence

from .absences import AbsenceIndex, AbsenceTieBreak
from .coercion import parse_distance, parse_external_id
from .dates import parse_flexible_date, period_label
from .errors import InputError
from .models import (
    AbsencePeriod,
    CollaboratorRecord,
    IgnoredGroup,
    RawTelemetryRow,
    StagingRecord,
    TelemetryRow,
)
from .results import RejectedRow, StagingResult

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def coerce_row(raw: RawTelemetryRow) -> TelemetryRow:
    if raw.error:
        raise InputError(raw.error, raw.line_number)
    external_id = parse_external_id(raw.external_id)
    if external_id is None:
        raise InputError(f"invalid external id {raw.external_id!r}", raw.line_number)
    distance = parse_distance(raw.distance)
    if distance is None:
        raise InputError(f"invalid distance {raw.distance!r}", raw.line_number)
    if distance < 0:
        raise InputError(f"negative distance {raw.distance!r}", raw.line_number)
    return TelemetryRow(
        line_number=raw.line_number,
        external_id=external_id,
        name=(raw.name or "").strip(),
        raw_date=(raw.raw_date or "").strip(),
        distance=distance,
    )


def stage_row(
    record_id: int,
    row: TelemetryRow,
    collaborator: CollaboratorRecord,
    absences: AbsenceIndex,
    low_distance_threshold: Decimal = Decimal("1"),
    edit_reason: str | None = None,
) -> StagingRecord:
    """Build the staging record for ``row`` attributed to ``collaborator``.

    ``edit_reason`` marks the record as edited (used when rows are merged in
    from an ignored external id).
    """
    date_key = parse_flexible_date(row.raw_date)
    absence = absences.find_blocking(collaborator.collaborator_id, date_key)
    edited = edit_reason is not None
    if absence is not None:
        considered = ZERO
        low_distance = False
    else:
        considered = row.distance
        low_distance = not edited and considered < low_distance_threshold
    return StagingRecord(
        record_id=record_id,
        external_id=row.external_id,
        collaborator_id=collaborator.collaborator_id,
        name=row.name or collaborator.name,
        raw_date=row.raw_date,
        date_key=date_key,
        original_distance=row.distance,
        considered_distance=considered,
        low_distance=low_distance,
        blocked=absence is not None,
        block_reason=absence.reason if absence is not None else "",
        edited=edited,
        edit_reason=edit_reason or "",
    )


class TelemetryMatcher:
    """Builds the staging set for one import run."""

    def __init__(
        self,
        tie_break: AbsenceTieBreak = AbsenceTieBreak.FIRST_FOUND,
        low_distance_threshold: Decimal = Decimal("1"),
    ) -> None:
        self._tie_break = tie_break
        self._threshold = low_distance_threshold

    @property
    def tie_break(self) -> AbsenceTieBreak:
        return self._tie_break

    @property
    def low_distance_threshold(self) -> Decimal:
        return self._threshold

    def build(
        self,
        rows: Iterable[RawTelemetryRow],
        collaborators: Sequence[CollaboratorRecord],
        absences: Sequence[AbsencePeriod],
    ) -> StagingResult:
        by_external_id = {c.external_id: c for c in collaborators if c.active}
        absence_index = AbsenceIndex(absences, self._tie_break)

        records: list[StagingRecord] = []
        ignored_rows: dict[int, list[TelemetryRow]] = {}
        rejected: list[RejectedRow] = []
        date_keys = []

        for raw in rows:
            try:
                row = coerce_row(raw)
            except InputError as exc:
                logger.warning("Skipping telemetry line %s: %s", exc.line_number, exc)
                rejected.append(RejectedRow(line_number=raw.line_number, reason=str(exc)))
                continue

            collaborator = by_external_id.get(row.external_id)
            if collaborator is None:
                ignored_rows.setdefault(row.external_id, []).append(row)
                continue
            # unmatched rows never widen the period
            date_keys.append(parse_flexible_date(row.raw_date))
            records.append(
                stage_row(len(records) + 1, row, collaborator, absence_index, self._threshold)
            )

        ignored = {
            external_id: IgnoredGroup(external_id=external_id, rows=tuple(group))
            for external_id, group in ignored_rows.items()
        }
        label = period_label(date_keys)
        logger.info(
            "Staged %d rows (%d blocked), %d unmatched external ids, %d rejected rows; period %s",
            len(records),
            sum(1 for r in records if r.blocked),
            len(ignored),
            len(rejected),
            label,
        )
        return StagingResult(
            records=tuple(records),
            ignored=ignored,
            rejected=tuple(rejected),
            period_label=label,
        )
