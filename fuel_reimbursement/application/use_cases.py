"""Application services orchestrating the reimbursement workflows."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Sequence

from fuel_reimbursement.application import audit
from fuel_reimbursement.application.audit import record_audit
from fuel_reimbursement.application.dto import (
    AbsenceConflict,
    SaveCalculationRequest,
    SaveCalculationResponse,
    SyncRequest,
    TelemetryImportRequest,
    TelemetryImportResponse,
)
from fuel_reimbursement.domain.absences import AbsenceIndex, AbsenceTieBreak
from fuel_reimbursement.domain.aggregation import Aggregator, build_calculation
from fuel_reimbursement.domain.corrections import CorrectionWorkflow, StagingSession
from fuel_reimbursement.domain.errors import (
    ConflictError,
    ReimbursementError,
    UnreadableInputError,
    ValidationError,
)
from fuel_reimbursement.domain.master_data import MasterDataDiff
from fuel_reimbursement.domain.matching import TelemetryMatcher
from fuel_reimbursement.domain.models import (
    CollaboratorRecord,
    DiffItem,
    FuelParameters,
    VehicleClass,
)
from fuel_reimbursement.domain.repositories import (
    AuditLog,
    CalculationRepository,
    ExternalPersonnelSource,
    FuelParametersRepository,
    RegistryRepository,
)
from fuel_reimbursement.domain.results import AggregationResult, DiffResult, SyncItemResult, SyncResult
from fuel_reimbursement.infrastructure.parsing.telemetry import parse_telemetry
from fuel_reimbursement.infrastructure.parsing.utils import compute_file_hash, ensure_bytes

logger = logging.getLogger(__name__)

ABSENCE_FIX_MARKER = "[CORRECTED: ABSENCE]"
SYNC_REASON = "Registry sync"
RELINK_REASON = "Registry sync: device swap"


@dataclass(slots=True)
class ImportContext:
    registry: RegistryRepository
    matcher: TelemetryMatcher
    audit_log: AuditLog | None = None
    delimiter: str = ";"


class ImportTelemetryUseCase:
    def __init__(self, context: ImportContext) -> None:
        self._context = context

    def execute(self, request: TelemetryImportRequest) -> TelemetryImportResponse:
        try:
            data = ensure_bytes(request.source)
        except OSError as exc:
            raise UnreadableInputError(f"telemetry input could not be opened: {exc}") from exc
        raw_rows = parse_telemetry(data, self._context.delimiter)
        collaborators = self._context.registry.list_collaborators()
        absences = self._context.registry.list_absences()
        result = self._context.matcher.build(raw_rows, collaborators, absences)

        session = StagingSession(result, collaborators, absences)
        workflow = CorrectionWorkflow(
            session,
            registry=self._context.registry,
            tie_break=self._context.matcher.tie_break,
            low_distance_threshold=self._context.matcher.low_distance_threshold,
        )
        summary = session.summary()
        record_audit(
            self._context.audit_log,
            request.actor,
            audit.TELEMETRY_IMPORT,
            f"File {request.file_name}: {len(raw_rows)} rows read, {summary.staged} staged, "
            f"{summary.blocked} blocked, {summary.ignored_rows} unmatched, {summary.rejected} rejected. "
            f"Period: {result.period_label}",
        )
        return TelemetryImportResponse(workflow=workflow, file_hash=compute_file_hash(data))


class CalculateReimbursementUseCase:
    def __init__(self, fuel_parameters: FuelParametersRepository, catch_all_group: str) -> None:
        self._fuel_parameters = fuel_parameters
        self._catch_all_group = catch_all_group

    def execute(self, session: StagingSession) -> AggregationResult:
        aggregator = Aggregator(self._fuel_parameters.get(), self._catch_all_group)
        return aggregator.aggregate(session.records, session.collaborators)


@dataclass(slots=True)
class SaveCalculationUseCase:
    calculations: CalculationRepository
    audit_log: AuditLog | None = None

    def period_exists(self, period_label: str) -> bool:
        return self.calculations.period_exists(period_label)

    def execute(self, request: SaveCalculationRequest) -> SaveCalculationResponse:
        label = (request.period_label or "").strip()
        if not label:
            raise ValidationError("a period label is required")
        exists = self.calculations.period_exists(label)
        if exists and not request.overwrite:
            raise ConflictError(f"a calculation for period {label!r} already exists; confirm overwrite")
        reason = (request.overwrite_reason or "").strip()
        if request.overwrite and not reason:
            raise ValidationError("an overwrite reason is required")

        header, details = build_calculation(request.aggregation, label, request.actor, reason)
        header_id = self.calculations.save_calculation(header, details, replace_existing=request.overwrite)
        overwritten = exists and request.overwrite
        if overwritten:
            logger.info("Calculation for %s overwritten by %s: %s", label, request.actor, reason)
            record_audit(
                self.audit_log,
                request.actor,
                audit.CALCULATION_OVERWRITE,
                f"Period {label} overwritten. Reason: {reason}. New total {header.grand_total:.2f}, "
                f"{header.item_count} collaborators",
            )
        else:
            logger.info("Calculation for %s saved by %s", label, request.actor)
            record_audit(
                self.audit_log,
                request.actor,
                audit.CALCULATION_SAVED,
                f"Period {label} saved. Total {header.grand_total:.2f}, {header.item_count} collaborators",
            )
        return SaveCalculationResponse(
            header_id=header_id,
            overwritten=overwritten,
            grand_total=header.grand_total,
            item_count=header.item_count,
        )


@dataclass(slots=True)
class ZeroDailyEntriesUseCase:
    """Zeroes persisted daily entries that conflict with a later absence.

    Parent detail and header totals are left as they were saved; a fresh
    calculation must be saved to correct them.
    """

    calculations: CalculationRepository
    audit_log: AuditLog | None = None

    def execute(self, entry_ids: Sequence[int], actor_id: str) -> int:
        ids = sorted(set(entry_ids))
        if not ids:
            raise ValidationError("no daily entries selected")
        affected = self.calculations.zero_daily_entries(ids, ABSENCE_FIX_MARKER)
        logger.info("Zeroed %d historical daily entries", affected)
        record_audit(
            self.audit_log,
            actor_id,
            audit.HISTORY_ABSENCE_FIX,
            f"{affected} daily entries zeroed due to absence conflicts",
        )
        return affected


@dataclass(slots=True)
class FindAbsenceConflictsUseCase:
    registry: RegistryRepository
    calculations: CalculationRepository
    tie_break: AbsenceTieBreak = AbsenceTieBreak.FIRST_FOUND

    def execute(self, start: date | None = None, end: date | None = None) -> Sequence[AbsenceConflict]:
        collaborators = self.registry.list_collaborators(include_inactive=True)
        by_external_id = {c.external_id: c for c in collaborators}
        index = AbsenceIndex(self.registry.list_absences(), self.tie_break)

        conflicts: list[AbsenceConflict] = []
        for entry in self.calculations.list_daily_entries(start=start, end=end):
            occurrence = entry["occurrence_date"]
            if occurrence is None or (entry["distance"] == 0 and entry["value"] == 0):
                continue
            collaborator = by_external_id.get(entry["external_id"])
            if collaborator is None:
                continue
            absence = index.find_blocking(collaborator.collaborator_id, occurrence)
            if absence is None:
                continue
            conflicts.append(
                AbsenceConflict(
                    entry_id=entry["entry_id"],
                    external_id=entry["external_id"],
                    name=entry["name"],
                    occurrence_date=occurrence,
                    distance=entry["distance"],
                    value=entry["value"],
                    period_label=entry["period_label"],
                    absence_reason=absence.reason,
                )
            )
        return conflicts


@dataclass(slots=True)
class PreviewRegistrySyncUseCase:
    registry: RegistryRepository
    source: ExternalPersonnelSource
    differ: MasterDataDiff

    def execute(self) -> DiffResult:
        external_rows = self.source.query_external_personnel()
        snapshot = self.registry.list_collaborators(include_inactive=True)
        return self.differ.diff(external_rows, snapshot)


@dataclass(slots=True)
class ApplyRegistrySyncUseCase:
    """Applies user-selected diff items one by one.

    Items succeed or fail independently; the per-item outcome is returned and
    earlier successes are kept when a later item fails.
    """

    registry: RegistryRepository
    audit_log: AuditLog | None = None
    default_vehicle_class: VehicleClass = VehicleClass.CAR

    def execute(self, request: SyncRequest) -> SyncResult:
        results = [self._apply(item, request.actor) for item in request.items]
        outcome = SyncResult(items=tuple(results))
        relinked = sum(1 for result in results if result.success and result.kind == "conflict")
        logger.info(
            "Registry sync applied %d of %d items (%d failed)",
            outcome.applied_count,
            len(results),
            len(outcome.failures),
        )
        record_audit(
            self.audit_log,
            request.actor,
            audit.REGISTRY_SYNC,
            f"{outcome.applied_count} of {len(results)} registry changes applied "
            f"({relinked} external ids relinked)",
        )
        return outcome

    def _apply(self, item: DiffItem, actor: str) -> SyncItemResult:
        try:
            if item.is_new:
                self.registry.add_collaborator(
                    CollaboratorRecord(
                        collaborator_id=0,
                        external_id=item.external_id,
                        sector_code=item.sector_code,
                        name=item.name,
                        group=item.group,
                        vehicle_class=self.default_vehicle_class,
                        active=True,
                    ),
                    actor,
                    SYNC_REASON,
                )
            elif item.collaborator_id is None:
                raise ValidationError(f"{item.kind} item for external id {item.external_id} has no registry record")
            elif item.is_conflict:
                self.registry.relink_external_id(item.collaborator_id, item.external_id, actor, RELINK_REASON)
            else:
                self.registry.update_name_and_sector(
                    item.collaborator_id, item.name, item.sector_code, actor, SYNC_REASON
                )
        except ReimbursementError as exc:
            logger.warning("Sync of external id %s failed: %s", item.external_id, exc)
            return SyncItemResult(external_id=item.external_id, kind=item.kind, success=False, error=str(exc))
        return SyncItemResult(external_id=item.external_id, kind=item.kind, success=True)


@dataclass(slots=True)
class UpdateFuelParametersUseCase:
    fuel_parameters: FuelParametersRepository
    audit_log: AuditLog | None = None

    def execute(self, parameters: FuelParameters, actor: str, reason: str) -> FuelParameters:
        if not reason or not reason.strip():
            raise ValidationError("a reason is required to change fuel parameters")
        previous = self.fuel_parameters.get()
        self.fuel_parameters.update(parameters, actor, reason.strip())
        record_audit(
            self.audit_log,
            actor,
            audit.CONFIG_UPDATE,
            f"Fuel parameters changed from price {previous.unit_price}, car {previous.car_efficiency}, "
            f"motorcycle {previous.motorcycle_efficiency} to price {parameters.unit_price}, "
            f"car {parameters.car_efficiency}, motorcycle {parameters.motorcycle_efficiency}. "
            f"Reason: {reason.strip()}",
        )
        return parameters
