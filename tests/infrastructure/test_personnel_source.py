import sqlite3
from pathlib import Path

import pytest

from fuel_reimbursement.domain.errors import ConnectivityError, ValidationError
from fuel_reimbursement.infrastructure.external.personnel_source import SqlPersonnelSource

QUERY = "SELECT id_pulsus, nome, codigo_setor, grupo FROM personnel ORDER BY id_pulsus"


@pytest.fixture
def personnel_db(tmp_path: Path) -> Path:
    path = tmp_path / "personnel.db"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE personnel (id_pulsus INTEGER, nome TEXT, codigo_setor INTEGER, grupo TEXT)")
    conn.executemany(
        "INSERT INTO personnel VALUES (?, ?, ?, ?)",
        [(101, "Ana", 10, "Vendedor"), (102, "Bruno", None, None)],
    )
    conn.commit()
    conn.close()
    return path


def test_query_returns_plain_rows(personnel_db: Path):
    source = SqlPersonnelSource(f"sqlite:///{personnel_db}", QUERY)

    rows = source.query_external_personnel()

    assert rows[0] == {"id_pulsus": 101, "nome": "Ana", "codigo_setor": 10, "grupo": "Vendedor"}
    assert rows[1]["grupo"] is None
    assert rows[1]["codigo_setor"] is None
    assert source.test_connection()


def test_unreachable_source_raises_connectivity_error(tmp_path: Path):
    source = SqlPersonnelSource(f"sqlite:///{tmp_path / 'missing' / 'nowhere.db'}", QUERY)

    with pytest.raises(ConnectivityError):
        source.query_external_personnel()
    assert not source.test_connection()


def test_bad_query_raises_connectivity_error(personnel_db: Path):
    source = SqlPersonnelSource(f"sqlite:///{personnel_db}", "SELECT * FROM no_such_table")

    with pytest.raises(ConnectivityError):
        source.query_external_personnel()


def test_url_and_query_are_required():
    with pytest.raises(ValidationError):
        SqlPersonnelSource(None, QUERY)
    with pytest.raises(ValidationError):
        SqlPersonnelSource("sqlite://", "")
