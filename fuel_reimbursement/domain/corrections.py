"""Human correction workflow over a staging session.

Every operation validates its inputs before touching state, so a rejected
call leaves the session exactly as it was.
"""
from __future__ import annotations

import logging
import math
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import Iterable, Mapping, Sequence

from .absences import AbsenceIndex, AbsenceTieBreak
from .errors import NotFoundError, ValidationError
from .matching import stage_row
from .models import (
    AbsencePeriod,
    CollaboratorRecord,
    IgnoredGroup,
    StagingRecord,
)
from .repositories import RegistryRepository
from .results import MergeSuggestion, RevalidationReport, StagingResult, StagingSummary

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


MERGE_REASON_PREFIX = "Merged from unmatched external id "


def merge_reason(external_id: int) -> str:
    return f"{MERGE_REASON_PREFIX}{external_id}"


def edit_reason_for(record: StagingRecord, reason: str) -> str:
    """Keep the merge trace of a merged record in front of later edit reasons."""
    if record.edit_reason.startswith(MERGE_REASON_PREFIX):
        trace = record.edit_reason.split("; ", 1)[0]
        return f"{trace}; {reason}"
    return reason


def _coerce_distance(value: object) -> Decimal:
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        raise ValidationError("distance must be a finite number")
    try:
        distance = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"distance {value!r} is not a number") from exc
    if not distance.is_finite():
        raise ValidationError("distance must be a finite number")
    if distance < 0:
        raise ValidationError("distance must be >= 0")
    return distance


class StagingSession:
    """Mutable container for one import run's staging state."""

    def __init__(
        self,
        result: StagingResult,
        collaborators: Sequence[CollaboratorRecord],
        absences: Sequence[AbsencePeriod],
    ) -> None:
        self._records: dict[int, StagingRecord] = {r.record_id: r for r in result.records}
        self._ignored: dict[int, IgnoredGroup] = dict(result.ignored)
        self._collaborators = {c.collaborator_id: c for c in collaborators}
        self._absences = tuple(absences)
        self.rejected = tuple(result.rejected)
        self.period_label = result.period_label

    @property
    def records(self) -> Sequence[StagingRecord]:
        return tuple(self._records.values())

    @property
    def ignored(self) -> Mapping[int, IgnoredGroup]:
        return dict(self._ignored)

    @property
    def collaborators(self) -> Mapping[int, CollaboratorRecord]:
        return dict(self._collaborators)

    @property
    def absences(self) -> Sequence[AbsencePeriod]:
        return self._absences

    def get(self, record_id: int) -> StagingRecord:
        try:
            return self._records[record_id]
        except KeyError:
            raise NotFoundError(f"staging record {record_id} does not exist") from None

    def summary(self) -> StagingSummary:
        return StagingSummary.from_state(self._records.values(), self._ignored, self.rejected)

    def blocked_records(self) -> Sequence[StagingRecord]:
        return tuple(r for r in self._records.values() if r.blocked)

    def next_record_id(self) -> int:
        return max(self._records, default=0) + 1

    def ignored_group(self, external_id: int) -> IgnoredGroup | None:
        return self._ignored.get(external_id)

    def collaborator(self, collaborator_id: int) -> CollaboratorRecord | None:
        return self._collaborators.get(collaborator_id)

    def store(self, records: Iterable[StagingRecord]) -> None:
        for record in records:
            self._records[record.record_id] = record

    def drop_ignored(self, external_id: int) -> None:
        self._ignored.pop(external_id, None)

    def replace_absences(self, absences: Sequence[AbsencePeriod]) -> None:
        self._absences = tuple(absences)


class CorrectionWorkflow:
    """Edit, merge, merge suggestion and absence revalidation operations."""

    def __init__(
        self,
        session: StagingSession,
        registry: RegistryRepository | None = None,
        tie_break: AbsenceTieBreak = AbsenceTieBreak.FIRST_FOUND,
        low_distance_threshold: Decimal = Decimal("1"),
    ) -> None:
        self.session = session
        self._registry = registry
        self._tie_break = tie_break
        self._threshold = low_distance_threshold

    def edit(self, record_id: int, new_distance: object, reason: str) -> StagingRecord:
        distance = _coerce_distance(new_distance)
        if not reason or not str(reason).strip():
            raise ValidationError("an edit reason is required")
        record = self.session.get(record_id)
        updated = replace(
            record,
            considered_distance=distance,
            edited=True,
            edit_reason=edit_reason_for(record, str(reason).strip()),
            low_distance=False,
        )
        self.session.store([updated])
        logger.info(
            "Record %s (external id %s, %s) edited: %s -> %s (%s)",
            record_id,
            record.external_id,
            record.raw_date,
            record.considered_distance,
            distance,
            updated.edit_reason,
        )
        return updated

    def merge(self, external_id: int, target_collaborator_id: int | None) -> Sequence[StagingRecord]:
        if target_collaborator_id is None:
            raise ValidationError("a merge target collaborator is required")
        group = self.session.ignored_group(external_id)
        if group is None:
            raise NotFoundError(f"no unmatched telemetry for external id {external_id}")
        target = self.session.collaborator(target_collaborator_id)
        if target is None:
            raise NotFoundError(f"collaborator {target_collaborator_id} does not exist")

        index = AbsenceIndex(self.session.absences, self._tie_break)
        next_id = self.session.next_record_id()
        reason = merge_reason(external_id)
        moved = [
            stage_row(next_id + offset, row, target, index, self._threshold, edit_reason=reason)
            for offset, row in enumerate(group.rows)
        ]
        self.session.store(moved)
        self.session.drop_ignored(external_id)
        logger.info(
            "Merged %d rows from external id %s into collaborator %s (%s)",
            len(moved),
            external_id,
            target.collaborator_id,
            target.name,
        )
        return tuple(moved)

    def suggest_merges(self, ignored_external_ids: Iterable[int] | None = None) -> Sequence[MergeSuggestion]:
        if self._registry is None:
            raise ValidationError("merge suggestions need a registry")
        if ignored_external_ids is None:
            ignored_external_ids = list(self.session.ignored)
        active = [c for c in self._registry.list_collaborators() if c.active]

        suggestions: list[MergeSuggestion] = []
        for external_id in ignored_external_ids:
            history = self._registry.get_latest_history_by_external_id(external_id)
            if history is None:
                continue
            wanted_name = history.name.strip().casefold()
            for candidate in active:
                if candidate.external_id == external_id:
                    continue
                if candidate.name.strip().casefold() == wanted_name and candidate.group == history.group:
                    suggestions.append(
                        MergeSuggestion(
                            external_id=external_id,
                            collaborator_id=candidate.collaborator_id,
                            collaborator_name=candidate.name,
                            group=candidate.group,
                            historical_name=history.name,
                        )
                    )
        return tuple(suggestions)

    def revalidate(self, absences: Sequence[AbsencePeriod] | None = None) -> RevalidationReport:
        """Re-apply absence blocking to every record that was not edited by hand."""
        if absences is None:
            if self._registry is None:
                raise ValidationError("revalidation needs a registry or an absence list")
            absences = self._registry.list_absences()
        absences = tuple(absences)
        index = AbsenceIndex(absences, self._tie_break)

        updates: dict[int, StagingRecord] = {}
        newly_blocked: list[int] = []
        newly_unblocked: list[int] = []
        reason_changed: list[int] = []
        for record in self.session.records:
            if record.edited:
                continue
            absence = index.find_blocking(record.collaborator_id, record.date_key)
            if absence is not None:
                if not record.blocked:
                    newly_blocked.append(record.record_id)
                elif record.block_reason != absence.reason:
                    reason_changed.append(record.record_id)
                else:
                    continue
                updates[record.record_id] = replace(
                    record,
                    considered_distance=ZERO,
                    blocked=True,
                    block_reason=absence.reason,
                    low_distance=False,
                )
            elif record.blocked:
                newly_unblocked.append(record.record_id)
                updates[record.record_id] = replace(
                    record,
                    considered_distance=record.original_distance,
                    blocked=False,
                    block_reason="",
                    low_distance=record.original_distance < self._threshold,
                )

        self.session.store(updates.values())
        self.session.replace_absences(absences)
        report = RevalidationReport(
            newly_blocked=tuple(newly_blocked),
            newly_unblocked=tuple(newly_unblocked),
            reason_changed=tuple(reason_changed),
        )
        logger.info(
            "Revalidation: %d newly blocked, %d unblocked, %d reason changes",
            len(newly_blocked),
            len(newly_unblocked),
            len(reason_changed),
        )
        return report
