"""Persisted fuel price and vehicle efficiency parameters."""
from __future__ import annotations

from decimal import Decimal

from fuel_reimbursement.domain.errors import ValidationError
from fuel_reimbursement.domain.models import FuelParameters
from fuel_reimbursement.infrastructure.storage.db import Database


class SqliteFuelParametersRepository:
    def __init__(self, database: Database, defaults: FuelParameters) -> None:
        self._db = database
        self._defaults = defaults

    def get(self) -> FuelParameters:
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT unit_price, car_efficiency, motorcycle_efficiency FROM fuel_parameters WHERE id = 1"
            ).fetchone()
        if row is None:
            return self._defaults
        return FuelParameters(
            unit_price=Decimal(row["unit_price"]),
            car_efficiency=Decimal(row["car_efficiency"]),
            motorcycle_efficiency=Decimal(row["motorcycle_efficiency"]),
        )

    def update(self, parameters: FuelParameters, actor: str, reason: str) -> None:
        problems = parameters.problems()
        if problems:
            raise ValidationError("; ".join(problems))
        with self._db.connect() as conn:
            with conn:
                conn.execute(
                    "INSERT INTO fuel_parameters (id, unit_price, car_efficiency, motorcycle_efficiency, "
                    "last_editor, last_reason, last_changed_at) VALUES (1, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP) "
                    "ON CONFLICT(id) DO UPDATE SET unit_price = excluded.unit_price, "
                    "car_efficiency = excluded.car_efficiency, "
                    "motorcycle_efficiency = excluded.motorcycle_efficiency, "
                    "last_editor = excluded.last_editor, last_reason = excluded.last_reason, "
                    "last_changed_at = excluded.last_changed_at",
                    (
                        str(parameters.unit_price),
                        str(parameters.car_efficiency),
                        str(parameters.motorcycle_efficiency),
                        actor,
                        reason,
                    ),
                )
