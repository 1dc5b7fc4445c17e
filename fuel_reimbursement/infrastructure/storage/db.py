"""SQLite foundation for the registry, calculation history and audit log."""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

SCHEMA = """
CREATE TABLE IF NOT EXISTS collaborators (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id INTEGER NOT NULL UNIQUE,
    sector_code INTEGER NOT NULL DEFAULT 0,
    name TEXT NOT NULL,
    group_label TEXT NOT NULL,
    vehicle_class TEXT NOT NULL DEFAULT 'Car',
    active INTEGER NOT NULL DEFAULT 1,
    created_by TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    last_editor TEXT,
    last_reason TEXT,
    last_changed_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS absences (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    collaborator_id INTEGER NOT NULL REFERENCES collaborators(id) ON DELETE CASCADE,
    start_date TEXT NOT NULL,
    end_date TEXT NOT NULL,
    reason TEXT NOT NULL,
    registered_by TEXT,
    registered_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    CHECK (start_date <= end_date)
);

CREATE TABLE IF NOT EXISTS calculation_headers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    period_label TEXT NOT NULL,
    generated_by TEXT NOT NULL,
    grand_total TEXT NOT NULL,
    item_count INTEGER NOT NULL,
    overwrite_reason TEXT NOT NULL DEFAULT '',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS calculation_details (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    header_id INTEGER NOT NULL REFERENCES calculation_headers(id) ON DELETE CASCADE,
    collaborator_id INTEGER,
    external_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    group_label TEXT NOT NULL,
    vehicle_class TEXT NOT NULL,
    total_distance TEXT NOT NULL,
    liters TEXT NOT NULL,
    value TEXT NOT NULL,
    unit_price TEXT NOT NULL,
    efficiency TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS calculation_daily_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    detail_id INTEGER NOT NULL REFERENCES calculation_details(id) ON DELETE CASCADE,
    occurrence_date TEXT,
    distance TEXT NOT NULL,
    value TEXT NOT NULL,
    observation TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    actor TEXT NOT NULL,
    action TEXT NOT NULL,
    details TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS fuel_parameters (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    unit_price TEXT NOT NULL,
    car_efficiency TEXT NOT NULL,
    motorcycle_efficiency TEXT NOT NULL,
    last_editor TEXT,
    last_reason TEXT,
    last_changed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_headers_period ON calculation_headers(period_label);
CREATE INDEX IF NOT EXISTS idx_details_external_id ON calculation_details(external_id);
CREATE INDEX IF NOT EXISTS idx_absences_collaborator ON absences(collaborator_id);
"""


class Database:
    """Connection factory bound to one SQLite file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    @contextmanager
    def connect(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    def init_schema(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as conn:
            conn.executescript(SCHEMA)
            conn.commit()

    def health_check(self) -> bool:
        required = {
            "collaborators",
            "absences",
            "calculation_headers",
            "calculation_details",
            "calculation_daily_entries",
            "audit_log",
            "fuel_parameters",
        }
        try:
            with self.connect() as conn:
                rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        except sqlite3.Error:
            return False
        return required.issubset({row["name"] for row in rows})
