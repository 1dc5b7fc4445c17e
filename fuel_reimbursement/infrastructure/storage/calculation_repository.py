"""SQLite-backed storage for saved reimbursement calculations."""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Mapping, Sequence

from fuel_reimbursement.domain.errors import ConflictError
from fuel_reimbursement.domain.models import CalculationDetail, CalculationHeader
from fuel_reimbursement.infrastructure.storage.db import Database

logger = logging.getLogger(__name__)


def _filters(
    start: date | None, end: date | None, external_id: int | None, group: str | None
) -> tuple[str, list[object]]:
    clauses: list[str] = []
    params: list[object] = []
    if start is not None:
        clauses.append("date(h.created_at) >= ?")
        params.append(start.isoformat())
    if end is not None:
        clauses.append("date(h.created_at) <= ?")
        params.append(end.isoformat())
    if external_id is not None:
        clauses.append("d.external_id = ?")
        params.append(external_id)
    if group:
        clauses.append("d.group_label = ?")
        params.append(group)
    where = " WHERE " + " AND ".join(clauses) if clauses else ""
    return where, params


def _with_decimals(row: Mapping[str, object], columns: Sequence[str]) -> dict[str, object]:
    data = dict(row)
    for column in columns:
        if data.get(column) is not None:
            data[column] = Decimal(str(data[column]))
    return data


class SqliteCalculationRepository:
    def __init__(self, database: Database) -> None:
        self._db = database

    def period_exists(self, period_label: str) -> bool:
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS c FROM calculation_headers WHERE period_label = ?", (period_label,)
            ).fetchone()
        return row["c"] > 0

    def save_calculation(
        self,
        header: CalculationHeader,
        details: Sequence[CalculationDetail],
        replace_existing: bool = False,
    ) -> int:
        """Insert the header/detail/daily hierarchy in a single transaction.

        With ``replace_existing`` every header already stored for the period
        (and, by cascade, its details and daily entries) is deleted first.
        """
        with self._db.connect() as conn:
            with conn:
                existing = conn.execute(
                    "SELECT id FROM calculation_headers WHERE period_label = ?", (header.period_label,)
                ).fetchall()
                if existing and not replace_existing:
                    raise ConflictError(f"a calculation for period {header.period_label!r} already exists")
                if existing:
                    conn.execute("DELETE FROM calculation_headers WHERE period_label = ?", (header.period_label,))
                    logger.info("Deleted %d previous calculations for %s", len(existing), header.period_label)

                header_id = conn.execute(
                    "INSERT INTO calculation_headers (period_label, generated_by, grand_total, item_count, "
                    "overwrite_reason) VALUES (?, ?, ?, ?, ?)",
                    (
                        header.period_label,
                        header.generated_by,
                        str(header.grand_total),
                        header.item_count,
                        header.overwrite_reason,
                    ),
                ).lastrowid
                for detail in details:
                    detail_id = conn.execute(
                        "INSERT INTO calculation_details (header_id, collaborator_id, external_id, name, "
                        "group_label, vehicle_class, total_distance, liters, value, unit_price, efficiency) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        (
                            header_id,
                            detail.collaborator_id,
                            detail.external_id,
                            detail.name,
                            detail.group,
                            detail.vehicle_class.value,
                            str(detail.total_distance),
                            str(detail.liters),
                            str(detail.value),
                            str(detail.unit_price),
                            str(detail.efficiency),
                        ),
                    ).lastrowid
                    conn.executemany(
                        "INSERT INTO calculation_daily_entries (detail_id, occurrence_date, distance, value, "
                        "observation) VALUES (?, ?, ?, ?, ?)",
                        [
                            (
                                detail_id,
                                entry.occurrence_date.isoformat() if entry.occurrence_date else None,
                                str(entry.distance),
                                str(entry.value),
                                entry.observation or "",
                            )
                            for entry in detail.entries
                        ],
                    )
        return header_id

    def zero_daily_entries(self, entry_ids: Sequence[int], marker: str) -> int:
        if not entry_ids:
            return 0
        placeholders = ", ".join("?" for _ in entry_ids)
        with self._db.connect() as conn:
            with conn:
                cursor = conn.execute(
                    "UPDATE calculation_daily_entries SET distance = '0', value = '0', "
                    "observation = CASE WHEN observation = '' THEN ? ELSE observation || ' ' || ? END "
                    f"WHERE id IN ({placeholders})",
                    (marker, marker, *entry_ids),
                )
        return cursor.rowcount

    def list_headers(self) -> Sequence[dict[str, object]]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT id, period_label, generated_by, grand_total, item_count, overwrite_reason, created_at "
                "FROM calculation_headers ORDER BY created_at DESC, id DESC"
            ).fetchall()
        return [_with_decimals(row, ("grand_total",)) for row in rows]

    def list_details(
        self,
        start: date | None = None,
        end: date | None = None,
        external_id: int | None = None,
        group: str | None = None,
    ) -> Sequence[dict[str, object]]:
        where, params = _filters(start, end, external_id, group)
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT d.id AS detail_id, d.external_id, d.collaborator_id, d.name, d.group_label, "
                "d.vehicle_class, d.total_distance, d.liters, d.value, d.unit_price, d.efficiency, "
                "h.period_label, h.created_at "
                "FROM calculation_details d JOIN calculation_headers h ON d.header_id = h.id"
                f"{where} ORDER BY h.created_at DESC, d.name",
                params,
            ).fetchall()
        return [
            _with_decimals(row, ("total_distance", "liters", "value", "unit_price", "efficiency")) for row in rows
        ]

    def list_daily_entries(
        self,
        start: date | None = None,
        end: date | None = None,
        external_id: int | None = None,
        group: str | None = None,
    ) -> Sequence[dict[str, object]]:
        where, params = _filters(start, end, external_id, group)
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT e.id AS entry_id, e.occurrence_date, e.distance, e.value, e.observation, "
                "d.external_id, d.collaborator_id, d.name, d.group_label, d.vehicle_class, "
                "h.period_label, h.created_at "
                "FROM calculation_daily_entries e "
                "JOIN calculation_details d ON e.detail_id = d.id "
                "JOIN calculation_headers h ON d.header_id = h.id"
                f"{where} ORDER BY e.occurrence_date, e.id",
                params,
            ).fetchall()
        entries = []
        for row in rows:
            data = _with_decimals(row, ("distance", "value"))
            if data["occurrence_date"]:
                data["occurrence_date"] = date.fromisoformat(data["occurrence_date"])
            entries.append(data)
        return entries
