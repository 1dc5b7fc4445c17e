"""Command-line entrypoint for telemetry import, payout saving and registry sync."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from fuel_reimbursement.application.dto import SaveCalculationRequest, SyncRequest, TelemetryImportRequest
from fuel_reimbursement.composition import Services, build_services
from fuel_reimbursement.config import load_settings
from fuel_reimbursement.domain.errors import ConflictError, ReimbursementError
from fuel_reimbursement.presentation.calculation_report import aggregates_to_rows, money, render_csv


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fuel reimbursement reconciliation")
    parser.add_argument("--env-file", type=Path, help="Optional .env file with FUEL_* settings")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import", help="Import a telemetry export and compute reimbursements")
    imp.add_argument("telemetry", type=Path, help="Path to the telemetry CSV/XLSX export")
    imp.add_argument("--save", action="store_true", help="Persist the calculation for the detected period")
    imp.add_argument("--period", help="Override the detected period label")
    imp.add_argument("--overwrite-reason", help="Overwrite an existing calculation for the period, with this reason")
    imp.add_argument("--csv", type=Path, help="Write the per-collaborator summary to this CSV file")

    sub.add_parser("sync-preview", help="Compare the external personnel source with the registry")
    apply = sub.add_parser("sync-apply", help="Apply registry changes from the external personnel source")
    apply.add_argument(
        "--only",
        type=int,
        nargs="*",
        help="External ids to apply (default: all new and changed; conflicts only when listed)",
    )

    conflicts = sub.add_parser("absence-conflicts", help="List saved daily entries that overlap an absence")
    conflicts.add_argument("--fix", action="store_true", help="Zero the conflicting entries")
    return parser.parse_args(argv)


def run_import(services: Services, args: argparse.Namespace) -> int:
    actor = services.settings.actor
    response = services.import_telemetry().execute(
        TelemetryImportRequest(source=args.telemetry, file_name=args.telemetry.name, actor=actor)
    )
    session = response.workflow.session
    summary = session.summary()

    print("Import Summary")
    print("==============")
    print(f"Period: {session.period_label}")
    print(f"Staged rows: {summary.staged}")
    print(f"Blocked by absence: {summary.blocked}")
    print(f"Low distance: {summary.low_distance}")
    print(f"Rejected rows: {summary.rejected}")
    print(f"Unmatched external ids: {summary.ignored_ids} ({summary.ignored_rows} rows)")
    for group in session.ignored.values():
        print(f"- unmatched {group.external_id} ({group.name}): {len(group.rows)} rows")
    for record in session.blocked_records():
        print(f"- blocked {record.external_id} on {record.raw_date}: {record.block_reason}")

    result = services.calculate().execute(session)
    print(f"\nPayable collaborators: {len(result.aggregates)}")
    print(f"Total distance: {money(result.total_distance)}")
    print(f"Grand total: {money(result.grand_total)}")
    if args.csv:
        args.csv.write_bytes(render_csv(aggregates_to_rows(result)))

    if args.save:
        request = SaveCalculationRequest(
            period_label=args.period or session.period_label,
            aggregation=result,
            actor=actor,
            overwrite=bool(args.overwrite_reason),
            overwrite_reason=args.overwrite_reason or "",
        )
        try:
            saved = services.save_calculation().execute(request)
        except ConflictError as exc:
            print(f"\n{exc}. Re-run with --overwrite-reason to replace it.")
            return 2
        print(f"\nSaved calculation {saved.header_id} ({'overwritten' if saved.overwritten else 'new'})")
    return 0


def run_sync(services: Services, apply: bool, only: list[int] | None) -> int:
    diff = services.preview_registry_sync().execute()
    print(
        f"External rows: {diff.total_external}; new: {len(diff.new)}; changed: {len(diff.changed)}; "
        f"conflicts: {len(diff.conflicts)}"
    )
    for item in diff.new:
        print(f"+ {item.external_id} {item.name} (sector {item.sector_code}, group {item.group})")
    for item in diff.changed:
        changes = ", ".join(f"{c.field}: {c.old_value} -> {c.new_value}" for c in item.changes)
        print(f"~ {item.external_id} {item.name}: {changes}")
    for item in diff.conflicts:
        change = item.changes[0]
        print(f"? {item.external_id} {item.name}: probable device swap, relinks {change.old_value} -> {change.new_value}")
    if not apply:
        return 0
    selected = [item for item in (*diff.new, *diff.changed) if not only or item.external_id in only]
    selected.extend(item for item in diff.conflicts if only and item.external_id in only)
    result = services.apply_registry_sync().execute(SyncRequest(items=selected, actor=services.settings.actor))
    print(f"Applied {result.applied_count} of {len(selected)} changes")
    for failure in result.failures:
        print(f"! {failure.external_id}: {failure.error}")
    return 0 if not result.failures else 1


def run_absence_conflicts(services: Services, fix: bool) -> int:
    conflicts = services.find_absence_conflicts().execute()
    for conflict in conflicts:
        print(
            f"- entry {conflict.entry_id}: {conflict.external_id} {conflict.name} on {conflict.occurrence_date} "
            f"({conflict.period_label}) value {money(conflict.value)} overlaps '{conflict.absence_reason}'"
        )
    if not conflicts:
        print("No absence conflicts in saved calculations.")
    elif fix:
        affected = services.zero_daily_entries().execute(
            [conflict.entry_id for conflict in conflicts], services.settings.actor
        )
        print(f"Zeroed {affected} daily entries")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        services = build_services(load_settings(dotenv_path=args.env_file))
        if args.command == "import":
            return run_import(services, args)
        if args.command in ("sync-preview", "sync-apply"):
            return run_sync(services, args.command == "sync-apply", getattr(args, "only", None))
        return run_absence_conflicts(services, args.fix)
    except ReimbursementError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
