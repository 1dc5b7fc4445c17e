"""Shared helpers for reading uploaded telemetry files."""
from __future__ import annotations

import hashlib
import unicodedata
from io import BytesIO
from pathlib import Path

import pandas as pd


def ensure_bytes(source: BytesIO | Path | bytes | str) -> bytes:
    if isinstance(source, bytes):
        return source
    if isinstance(source, BytesIO):
        return source.getvalue()
    if isinstance(source, (Path, str)):
        return Path(source).read_bytes()
    raise TypeError(f"Unsupported source type: {type(source)!r}")


def compute_file_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def normalize_header(name: object) -> str:
    """Lowercase, accent-free, single-spaced column name used for matching."""
    text = unicodedata.normalize("NFKD", str(name or ""))
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return " ".join(text.replace("\ufeff", "").strip().lower().split())


def pick_column(df: pd.DataFrame, candidates: tuple[str, ...]) -> str | None:
    lookup = {normalize_header(column): column for column in df.columns}
    for candidate in candidates:
        column = lookup.get(normalize_header(candidate))
        if column is not None:
            return column
    return None


def cell_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and pd.isna(value):
        return ""
    if isinstance(value, pd.Timestamp):
        return value.date().isoformat()
    return str(value).strip()
