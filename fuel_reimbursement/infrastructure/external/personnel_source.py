"""External personnel system of record read through SQLAlchemy."""
from __future__ import annotations

import logging
from typing import Mapping, Sequence

import pandas as pd
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from fuel_reimbursement.domain.errors import ConnectivityError, ValidationError

logger = logging.getLogger(__name__)


class SqlPersonnelSource:
    """Runs the configured personnel query against the external database."""

    def __init__(self, url: str | None, query: str | None, connect_timeout: int = 5) -> None:
        if not url or not query:
            raise ValidationError("external source needs both a connection URL and a query")
        self._url = url
        self._query = query
        self._connect_timeout = connect_timeout

    def _engine(self):
        connect_args = {"timeout": self._connect_timeout} if self._url.startswith("sqlite") else {
            "connect_timeout": self._connect_timeout
        }
        return create_engine(self._url, connect_args=connect_args)

    def query_external_personnel(self) -> Sequence[Mapping[str, object]]:
        try:
            engine = self._engine()
            try:
                with engine.connect() as conn:
                    frame = pd.read_sql_query(text(self._query), conn)
            finally:
                engine.dispose()
        except (SQLAlchemyError, OSError, ImportError) as exc:
            raise ConnectivityError(f"external personnel source unavailable: {exc}") from exc
        frame = frame.astype(object).where(pd.notna(frame), None)
        rows = frame.to_dict("records")
        logger.info("Fetched %d rows from external personnel source", len(rows))
        return rows

    def test_connection(self) -> bool:
        try:
            engine = self._engine()
            try:
                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
            finally:
                engine.dispose()
        except (SQLAlchemyError, OSError, ImportError) as exc:
            logger.warning("External source connection test failed: %s", exc)
            return False
        return True
