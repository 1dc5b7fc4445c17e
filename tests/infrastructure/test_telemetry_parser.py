from io import BytesIO
from pathlib import Path

import pandas as pd
import pytest

from fuel_reimbursement.domain.errors import UnreadableInputError
from fuel_reimbursement.infrastructure.parsing.telemetry import parse_telemetry
from fuel_reimbursement.infrastructure.parsing.utils import compute_file_hash, normalize_header

CSV_EXPORT = (
    "ID Pulsus;Nome;Data;Estimativa de distância percorrida (KM)\n"
    "101;Ana Souza;01/01/2024;50,5\n"
    ";;;\n"
    "102;Bruno;02/01/2024;30\n"
).encode("utf-8")


def test_semicolon_export_is_read_with_line_numbers():
    rows = parse_telemetry(CSV_EXPORT)

    assert [(r.line_number, r.external_id, r.name, r.raw_date, r.distance) for r in rows] == [
        (2, "101", "Ana Souza", "01/01/2024", "50,5"),
        (4, "102", "Bruno", "02/01/2024", "30"),
    ]


def test_path_source_and_bom(tmp_path: Path):
    target = tmp_path / "telemetry.csv"
    target.write_bytes("\ufeff".encode("utf-8") + CSV_EXPORT)

    rows = parse_telemetry(target)

    assert len(rows) == 2
    assert rows[0].external_id == "101"


def test_english_headers_and_custom_delimiter():
    data = b"external_id,name,date,distance_km\n7,Eva,2024-01-05,12.5\n"

    rows = parse_telemetry(BytesIO(data), delimiter=",")

    assert rows[0].external_id == "7"
    assert rows[0].distance == "12.5"


def test_xlsx_export():
    buffer = BytesIO()
    pd.DataFrame(
        [{"ID Pulsus": "101", "Nome": "Ana", "Data": "2024-01-01", "Estimativa de distância percorrida (KM)": "15"}]
    ).to_excel(buffer, index=False, engine="openpyxl")

    rows = parse_telemetry(buffer.getvalue())

    assert [(r.external_id, r.raw_date, r.distance) for r in rows] == [("101", "2024-01-01", "15")]


def test_missing_required_column():
    with pytest.raises(UnreadableInputError, match="distance"):
        parse_telemetry(b"ID Pulsus;Nome;Data\n101;Ana;01/01/2024\n")


def test_empty_and_missing_inputs():
    with pytest.raises(UnreadableInputError):
        parse_telemetry(b"   ")
    with pytest.raises(UnreadableInputError):
        parse_telemetry(Path("/nonexistent/telemetry.csv"))


def test_header_normalization_and_hash():
    assert normalize_header("  Estimativa de Distância  Percorrida (KM) ") == "estimativa de distancia percorrida (km)"
    assert compute_file_hash(b"abc") == compute_file_hash(b"abc")
    assert len(compute_file_hash(b"abc")) == 64


def test_line_with_extra_delimiter_is_kept_as_malformed_row():
    data = (
        "ID Pulsus;Nome;Data;Estimativa de distância percorrida (KM)\n"
        "101;Ana;01/01/2024;5\n"
        "102;Bob;Junior;02/01/2024;7\n"
        "103;Caio;03/01/2024;9;\n"
    ).encode("utf-8")

    rows = parse_telemetry(data)

    assert [(r.line_number, r.external_id, r.error) for r in rows] == [
        (2, "101", ""),
        (3, "", "expected 4 fields, found 5"),
        (4, "103", ""),
    ]
    assert rows[2].distance == "9"


def test_short_line_is_padded():
    rows = parse_telemetry(b"ID Pulsus;Nome;Data;distance\n101;Ana;01/01/2024\n")

    assert [(r.external_id, r.distance, r.error) for r in rows] == [("101", "", "")]


def test_cp1252_export_is_decoded():
    data = "ID Pulsus;Nome;Data;Estimativa de distância percorrida (KM)\n101;João;01/01/2024;12\n".encode("cp1252")

    rows = parse_telemetry(data)

    assert [(r.external_id, r.name, r.distance) for r in rows] == [("101", "João", "12")]


def test_xlsx_rows_are_numbered_from_the_first_data_line():
    buffer = BytesIO()
    pd.DataFrame(
        [
            {"ID Pulsus": "101", "Data": "2024-01-01", "distance": "15"},
            {"ID Pulsus": "102", "Data": "2024-01-02", "distance": "8"},
        ]
    ).to_excel(buffer, index=False, engine="openpyxl")

    rows = parse_telemetry(buffer.getvalue())

    assert [(r.line_number, r.external_id) for r in rows] == [(2, "101"), (3, "102")]


def test_corrupt_workbook_is_unreadable():
    with pytest.raises(UnreadableInputError):
        parse_telemetry(b"PK\x03\x04 not really a workbook")
