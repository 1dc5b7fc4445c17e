"""Telemetry export parser producing raw per-day distance rows.

Accepts the device platform's delimited export (``;`` by default) as well as
spreadsheets saved from it (``.xlsx`` via openpyxl, legacy ``.xls`` via xlrd).
"""
from __future__ import annotations

import csv
import logging
import zipfile
from io import BytesIO, StringIO
from pathlib import Path
from typing import Sequence

import pandas as pd

from fuel_reimbursement.domain.errors import UnreadableInputError
from fuel_reimbursement.domain.models import RawTelemetryRow
from fuel_reimbursement.infrastructure.parsing.utils import cell_text, ensure_bytes, pick_column

logger = logging.getLogger(__name__)

EXTERNAL_ID_COLUMNS = ("ID Pulsus", "external_id", "external id", "id")
NAME_COLUMNS = ("Nome", "name")
DATE_COLUMNS = ("Data", "date")
DISTANCE_COLUMNS = (
    "Estimativa de distância percorrida (KM)",
    "distance_km",
    "distance",
    "km",
)

XLSX_MAGIC = b"PK\x03\x04"
XLS_MAGIC = b"\xd0\xcf\x11\xe0"
# the platform exports UTF-8, but files re-saved by Excel on Windows arrive as cp1252
TEXT_ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")


def decode_text(data: bytes) -> str:
    for encoding in TEXT_ENCODINGS:
        try:
            text = data.decode(encoding)
        except UnicodeDecodeError:
            continue
        if encoding != TEXT_ENCODINGS[0]:
            logger.info("Telemetry input is not UTF-8, decoded as %s", encoding)
        return text
    raise UnreadableInputError(f"telemetry input is not text in any of: {', '.join(TEXT_ENCODINGS)}")


def read_delimited(text: str, delimiter: str = ";") -> tuple[pd.DataFrame, list[RawTelemetryRow]]:
    """Split delimited text into a frame of well-formed lines and the malformed ones.

    The frame is indexed by source line number. A line carrying more non-empty
    fields than the header is returned as a malformed row instead of failing
    the whole input; short lines are padded with empty values.
    """
    reader = csv.reader(StringIO(text, newline=""), delimiter=delimiter, quoting=csv.QUOTE_MINIMAL)
    header: list[str] | None = None
    records: dict[int, list[str]] = {}
    malformed: list[RawTelemetryRow] = []
    try:
        for fields in reader:
            if not any(field.strip() for field in fields):
                continue
            if header is None:
                header = [field.strip() for field in fields]
                continue
            while len(fields) > len(header) and not fields[-1].strip():
                fields = fields[:-1]
            if len(fields) > len(header):
                malformed.append(
                    RawTelemetryRow(
                        line_number=reader.line_num,
                        external_id="",
                        name="",
                        raw_date="",
                        distance="",
                        error=f"expected {len(header)} fields, found {len(fields)}",
                    )
                )
                continue
            records[reader.line_num] = fields + [""] * (len(header) - len(fields))
    except csv.Error as exc:
        raise UnreadableInputError(f"telemetry input could not be read: {exc}", reader.line_num) from exc
    if header is None:
        raise UnreadableInputError("telemetry input has no header row")
    if malformed:
        logger.warning("%d telemetry lines have more fields than the header", len(malformed))
    frame = pd.DataFrame(list(records.values()), index=list(records.keys()), columns=header, dtype=str)
    return frame, malformed


def read_telemetry_frame(data: bytes, delimiter: str = ";") -> tuple[pd.DataFrame, list[RawTelemetryRow]]:
    if not data.startswith((XLSX_MAGIC, XLS_MAGIC)):
        return read_delimited(decode_text(data), delimiter)
    engine = "openpyxl" if data.startswith(XLSX_MAGIC) else "xlrd"
    try:
        frame = pd.read_excel(BytesIO(data), engine=engine, dtype=str, keep_default_na=False)
    except (ValueError, zipfile.BadZipFile, pd.errors.ParserError) as exc:
        raise UnreadableInputError(f"telemetry input could not be read: {exc}") from exc
    # header is line 1
    frame.index = range(2, len(frame) + 2)
    return frame, []


def frame_to_rows(df: pd.DataFrame) -> Sequence[RawTelemetryRow]:
    id_column = pick_column(df, EXTERNAL_ID_COLUMNS)
    date_column = pick_column(df, DATE_COLUMNS)
    distance_column = pick_column(df, DISTANCE_COLUMNS)
    name_column = pick_column(df, NAME_COLUMNS)
    missing = [
        label
        for label, column in (("external id", id_column), ("date", date_column), ("distance", distance_column))
        if column is None
    ]
    if missing:
        raise UnreadableInputError(f"telemetry input is missing required columns: {', '.join(missing)}")

    rows: list[RawTelemetryRow] = []
    for line_number, record in zip(df.index, df.to_dict("records")):
        values = [cell_text(value) for value in record.values()]
        if not any(values):
            continue
        rows.append(
            RawTelemetryRow(
                line_number=int(line_number),
                external_id=cell_text(record.get(id_column)),
                name=cell_text(record.get(name_column)) if name_column else "",
                raw_date=cell_text(record.get(date_column)),
                distance=cell_text(record.get(distance_column)),
            )
        )
    return rows


def parse_telemetry(source: BytesIO | Path | bytes | str, delimiter: str = ";") -> Sequence[RawTelemetryRow]:
    try:
        data = ensure_bytes(source)
    except OSError as exc:
        raise UnreadableInputError(f"telemetry input could not be opened: {exc}") from exc
    if not data.strip():
        raise UnreadableInputError("telemetry input is empty")
    frame, malformed = read_telemetry_frame(data, delimiter)
    rows = sorted([*frame_to_rows(frame), *malformed], key=lambda row: row.line_number)
    logger.info("Read %d telemetry rows (%d malformed)", len(rows), len(malformed))
    return rows
