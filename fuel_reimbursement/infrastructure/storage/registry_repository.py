"""SQLite-backed registry of collaborators, absences and payout history."""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from typing import Generator, Sequence

from fuel_reimbursement.domain.dates import parse_flexible_date
from fuel_reimbursement.domain.errors import ConflictError, NotFoundError, StorageError, ValidationError
from fuel_reimbursement.domain.models import (
    AbsencePeriod,
    CollaboratorRecord,
    HistoryEntry,
    VehicleClass,
)
from fuel_reimbursement.infrastructure.storage.db import Database

logger = logging.getLogger(__name__)

_COLLABORATOR_COLUMNS = (
    "id, external_id, sector_code, name, group_label, vehicle_class, active, "
    "last_editor, last_reason, last_changed_at"
)


def _timestamp(value: object) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(str(value))


def _to_collaborator(row: sqlite3.Row) -> CollaboratorRecord:
    return CollaboratorRecord(
        collaborator_id=row["id"],
        external_id=row["external_id"],
        sector_code=row["sector_code"],
        name=row["name"],
        group=row["group_label"],
        vehicle_class=VehicleClass(row["vehicle_class"]),
        active=bool(row["active"]),
        last_editor=row["last_editor"],
        last_reason=row["last_reason"],
        last_changed_at=_timestamp(row["last_changed_at"]),
    )


def _to_absence(row: sqlite3.Row) -> AbsencePeriod:
    return AbsencePeriod(
        absence_id=row["id"],
        collaborator_id=row["collaborator_id"],
        start=date.fromisoformat(row["start_date"]),
        end=date.fromisoformat(row["end_date"]),
        reason=row["reason"],
    )


def _require_reason(reason: str) -> str:
    if not reason or not reason.strip():
        raise ValidationError("a change reason is required")
    return reason.strip()


class SqliteRegistryRepository:
    def __init__(self, database: Database) -> None:
        self._db = database

    def list_collaborators(self, include_inactive: bool = False) -> Sequence[CollaboratorRecord]:
        query = f"SELECT {_COLLABORATOR_COLUMNS} FROM collaborators"
        if not include_inactive:
            query += " WHERE active = 1"
        query += " ORDER BY name, id"
        with self._db.connect() as conn:
            return [_to_collaborator(row) for row in conn.execute(query).fetchall()]

    def get_collaborator(self, collaborator_id: int) -> CollaboratorRecord:
        with self._db.connect() as conn:
            row = conn.execute(
                f"SELECT {_COLLABORATOR_COLUMNS} FROM collaborators WHERE id = ?", (collaborator_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"collaborator {collaborator_id} does not exist")
        return _to_collaborator(row)

    def list_groups(self) -> Sequence[str]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT DISTINCT group_label FROM collaborators WHERE active = 1 ORDER BY group_label"
            ).fetchall()
        return [row["group_label"] for row in rows]

    @contextmanager
    def _write(
        self, conflict_message: str = "registry constraint violated"
    ) -> Generator[sqlite3.Connection, None, None]:
        """Open a transaction whose failures surface as domain errors."""
        try:
            with self._db.connect() as conn:
                with conn:
                    yield conn
        except sqlite3.IntegrityError as exc:
            raise ConflictError(conflict_message) from exc
        except sqlite3.Error as exc:
            logger.error("Registry write failed: %s", exc)
            raise StorageError(f"registry write failed: {exc}") from exc

    def add_collaborator(self, record: CollaboratorRecord, actor: str, reason: str = "Created") -> CollaboratorRecord:
        if not record.name.strip():
            raise ValidationError("collaborator name is required")
        with self._write(f"external id {record.external_id} is already registered") as conn:
            cursor = conn.execute(
                "INSERT INTO collaborators (external_id, sector_code, name, group_label, vehicle_class, "
                "active, created_by, last_editor, last_reason, last_changed_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)",
                (
                    record.external_id,
                    record.sector_code,
                    record.name.strip(),
                    record.group,
                    record.vehicle_class.value,
                    int(record.active),
                    actor,
                    actor,
                    reason,
                ),
            )
            new_id = cursor.lastrowid
        return self.get_collaborator(new_id)

    def update_collaborator(self, record: CollaboratorRecord, actor: str, reason: str) -> CollaboratorRecord:
        reason = _require_reason(reason)
        with self._write(f"external id {record.external_id} is already registered") as conn:
            cursor = conn.execute(
                "UPDATE collaborators SET external_id = ?, sector_code = ?, name = ?, group_label = ?, "
                "vehicle_class = ?, active = ?, last_editor = ?, last_reason = ?, "
                "last_changed_at = CURRENT_TIMESTAMP WHERE id = ?",
                (
                    record.external_id,
                    record.sector_code,
                    record.name.strip(),
                    record.group,
                    record.vehicle_class.value,
                    int(record.active),
                    actor,
                    reason,
                    record.collaborator_id,
                ),
            )
        if cursor.rowcount == 0:
            raise NotFoundError(f"collaborator {record.collaborator_id} does not exist")
        return self.get_collaborator(record.collaborator_id)

    def update_name_and_sector(
        self, collaborator_id: int, name: str, sector_code: int, actor: str, reason: str
    ) -> None:
        reason = _require_reason(reason)
        with self._write() as conn:
            cursor = conn.execute(
                "UPDATE collaborators SET name = ?, sector_code = ?, last_editor = ?, last_reason = ?, "
                "last_changed_at = CURRENT_TIMESTAMP WHERE id = ?",
                (name, sector_code, actor, reason, collaborator_id),
            )
        if cursor.rowcount == 0:
            raise NotFoundError(f"collaborator {collaborator_id} does not exist")

    def relink_external_id(self, collaborator_id: int, external_id: int, actor: str, reason: str) -> None:
        """Point an existing collaborator at a new external id, leaving everything else alone."""
        reason = _require_reason(reason)
        with self._write(f"external id {external_id} is already registered") as conn:
            cursor = conn.execute(
                "UPDATE collaborators SET external_id = ?, last_editor = ?, last_reason = ?, "
                "last_changed_at = CURRENT_TIMESTAMP WHERE id = ?",
                (external_id, actor, reason, collaborator_id),
            )
        if cursor.rowcount == 0:
            raise NotFoundError(f"collaborator {collaborator_id} does not exist")
        logger.info("Collaborator %s relinked to external id %s", collaborator_id, external_id)

    def deactivate(self, collaborator_id: int, actor: str, reason: str) -> None:
        reason = _require_reason(reason)
        with self._write() as conn:
            cursor = conn.execute(
                "UPDATE collaborators SET active = 0, last_editor = ?, last_reason = ?, "
                "last_changed_at = CURRENT_TIMESTAMP WHERE id = ?",
                (actor, reason, collaborator_id),
            )
        if cursor.rowcount == 0:
            raise NotFoundError(f"collaborator {collaborator_id} does not exist")

    def list_absences(self) -> Sequence[AbsencePeriod]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT id, collaborator_id, start_date, end_date, reason FROM absences ORDER BY id"
            ).fetchall()
        return [_to_absence(row) for row in rows]

    def add_absence(self, collaborator_id: int, start: object, end: object, reason: str, actor: str) -> AbsencePeriod:
        start_key = parse_flexible_date(start)
        end_key = parse_flexible_date(end)
        if start_key is None or end_key is None:
            raise ValidationError("absence start and end must be valid dates")
        if start_key > end_key:
            raise ValidationError("absence start must not be after its end")
        if not reason or not reason.strip():
            raise ValidationError("an absence reason is required")
        self.get_collaborator(collaborator_id)
        with self._write(f"absence for collaborator {collaborator_id} was rejected") as conn:
            cursor = conn.execute(
                "INSERT INTO absences (collaborator_id, start_date, end_date, reason, registered_by) "
                "VALUES (?, ?, ?, ?, ?)",
                (collaborator_id, start_key.isoformat(), end_key.isoformat(), reason.strip(), actor),
            )
        return AbsencePeriod(
            absence_id=cursor.lastrowid,
            collaborator_id=collaborator_id,
            start=start_key,
            end=end_key,
            reason=reason.strip(),
        )

    def delete_absence(self, absence_id: int) -> None:
        with self._write() as conn:
            cursor = conn.execute("DELETE FROM absences WHERE id = ?", (absence_id,))
        if cursor.rowcount == 0:
            raise NotFoundError(f"absence {absence_id} does not exist")

    def get_latest_history_by_external_id(self, external_id: int) -> HistoryEntry | None:
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT d.name, d.group_label FROM calculation_details d "
                "JOIN calculation_headers h ON d.header_id = h.id "
                "WHERE d.external_id = ? ORDER BY h.created_at DESC, h.id DESC, d.id DESC LIMIT 1",
                (external_id,),
            ).fetchone()
        if row is None:
            return None
        return HistoryEntry(external_id=external_id, name=row["name"], group=row["group_label"])
