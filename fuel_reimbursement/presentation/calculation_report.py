"""Tabular renderings of staging, calculation and registry-diff results.

Money and distances are rounded to two decimals here and nowhere else.
"""
from __future__ import annotations

import csv
import io
from decimal import ROUND_HALF_UP, Decimal
from html import escape
from typing import Mapping, Sequence

import pandas as pd

from fuel_reimbursement.domain.absences import categorize_reason
from fuel_reimbursement.domain.models import DiffItem, StagingRecord
from fuel_reimbursement.domain.results import AggregationResult

CENT = Decimal("0.01")


def money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def aggregates_to_rows(result: AggregationResult) -> list[dict[str, object]]:
    rows: list[dict[str, object]] = []
    for item in result.aggregates:
        collaborator = item.collaborator
        rows.append(
            {
                "external_id": collaborator.external_id,
                "name": collaborator.name,
                "group": collaborator.group,
                "sector_code": collaborator.sector_code,
                "vehicle_class": collaborator.vehicle_class.value,
                "efficiency": item.efficiency,
                "total_distance": money(item.total_distance),
                "liters": money(item.liters),
                "value": money(item.value),
            }
        )
    return rows


def daily_entries_to_rows(result: AggregationResult) -> list[dict[str, object]]:
    rows: list[dict[str, object]] = []
    for item in result.aggregates:
        for line in item.lines:
            entry = line.entry
            rows.append(
                {
                    "external_id": item.collaborator.external_id,
                    "name": item.collaborator.name,
                    "date": entry.occurrence_date.isoformat() if entry.occurrence_date else "",
                    "distance": money(entry.distance),
                    "value": money(entry.value),
                    "observation": entry.observation,
                }
            )
    return rows


def staging_to_rows(records: Sequence[StagingRecord]) -> list[dict[str, object]]:
    return [
        {
            "record_id": record.record_id,
            "external_id": record.external_id,
            "name": record.name,
            "date": record.raw_date,
            "original_distance": record.original_distance,
            "considered_distance": record.considered_distance,
            "low_distance": record.low_distance,
            "blocked": record.blocked,
            "block_reason": record.block_reason,
            "absence_category": categorize_reason(record.block_reason) if record.blocked else "",
            "edited": record.edited,
            "edit_reason": record.edit_reason,
        }
        for record in sorted(records, key=lambda r: (r.external_id, r.date_key is None, r.date_key, r.record_id))
    ]


def diff_items_to_rows(items: Sequence[DiffItem]) -> list[dict[str, object]]:
    rows: list[dict[str, object]] = []
    for item in items:
        rows.append(
            {
                "kind": item.kind,
                "external_id": item.external_id,
                "name": item.name,
                "sector_code": item.sector_code,
                "group": item.group,
                "changes": "; ".join(f"{c.field}: {c.old_value} -> {c.new_value}" for c in item.changes),
            }
        )
    return rows


def render_csv(rows: Sequence[Mapping[str, object]]) -> bytes:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(rows[0].keys()) if rows else [])
    if rows:
        writer.writeheader()
        writer.writerows(rows)
    return buffer.getvalue().encode("utf-8")


def render_html(rows: Sequence[Mapping[str, object]], empty_message: str = "Nothing to report.") -> str:
    if not rows:
        return f"<p>{escape(empty_message)}</p>"
    header = "".join(f"<th>{escape(str(col))}</th>" for col in rows[0].keys())
    body_parts = []
    for row in rows:
        body_parts.append("<tr>" + "".join(f"<td>{escape(str(value))}</td>" for value in row.values()) + "</tr>")
    body_html = "".join(body_parts)
    return f"<table><thead><tr>{header}</tr></thead><tbody>{body_html}</tbody></table>"


def render_xlsx(result: AggregationResult, period_label: str) -> bytes:
    buffer = io.BytesIO()
    summary = pd.DataFrame(aggregates_to_rows(result))
    daily = pd.DataFrame(daily_entries_to_rows(result))
    for frame in (summary, daily):
        for column in frame.columns:
            if frame[column].map(lambda value: isinstance(value, Decimal)).any():
                frame[column] = frame[column].astype(float)
    period = pd.DataFrame(
        [
            {
                "period": period_label,
                "total_distance": float(money(result.total_distance)),
                "grand_total": float(money(result.grand_total)),
            }
        ]
    )
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        period.to_excel(writer, sheet_name="Period", index=False)
        summary.to_excel(writer, sheet_name="Summary", index=False)
        daily.to_excel(writer, sheet_name="Daily", index=False)
    return buffer.getvalue()
