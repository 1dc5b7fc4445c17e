"""Audit log table writer."""
from __future__ import annotations

import sqlite3
from typing import Sequence

from fuel_reimbursement.domain.errors import AuditError
from fuel_reimbursement.infrastructure.storage.db import Database


class SqliteAuditLog:
    def __init__(self, database: Database) -> None:
        self._db = database

    def record(self, actor: str, action: str, details: str) -> None:
        try:
            with self._db.connect() as conn:
                with conn:
                    conn.execute(
                        "INSERT INTO audit_log (actor, action, details) VALUES (?, ?, ?)",
                        (actor, action, details),
                    )
        except sqlite3.Error as exc:
            raise AuditError(f"could not write audit entry {action}: {exc}") from exc

    def list_entries(self, action: str | None = None, limit: int = 100) -> Sequence[dict[str, object]]:
        query = "SELECT id, created_at, actor, action, details FROM audit_log"
        params: list[object] = []
        if action:
            query += " WHERE action = ?"
            params.append(action)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)
        with self._db.connect() as conn:
            return [dict(row) for row in conn.execute(query, params).fetchall()]
