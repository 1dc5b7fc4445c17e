"""Central configuration for the fuel reimbursement package.

Settings are read once at the composition root (CLI or Streamlit app) and
passed down explicitly.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

from fuel_reimbursement.domain.absences import AbsenceTieBreak
from fuel_reimbursement.domain.errors import ValidationError
from fuel_reimbursement.domain.models import FuelParameters, VehicleClass

BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_DB_PATH = BASE_DIR / "data" / "fuel.db"

CATCH_ALL_GROUP = "Outros"
DEFAULT_GROUPS = ("Vendedor", "Promotor")


@dataclass(slots=True, frozen=True)
class Settings:
    database_path: Path
    catch_all_group: str
    default_groups: tuple[str, ...]
    default_vehicle_class: VehicleClass
    telemetry_delimiter: str
    absence_tie_break: AbsenceTieBreak
    low_distance_threshold: Decimal
    default_fuel: FuelParameters
    external_db_url: str | None = None
    external_query: str | None = None
    actor: str = "system"


def _decimal(env: Mapping[str, str], name: str, default: str, problems: list[str]) -> Decimal:
    raw = env.get(name, default)
    try:
        value = Decimal(str(raw).replace(",", "."))
    except InvalidOperation:
        value = None
    if value is None or not value.is_finite():
        problems.append(f"{name} must be a number, got {raw!r}")
        return Decimal(default)
    return value


def load_settings(environ: Mapping[str, str] | None = None, dotenv_path: Path | None = None) -> Settings:
    """Build settings from ``environ`` (defaults to ``os.environ`` plus ``.env``)."""
    if environ is None:
        load_dotenv(dotenv_path)
        environ = os.environ
    env = environ
    problems: list[str] = []

    try:
        vehicle = VehicleClass.parse(env.get("FUEL_DEFAULT_VEHICLE", VehicleClass.CAR.value))
    except ValueError as exc:
        problems.append(str(exc))
        vehicle = VehicleClass.CAR

    try:
        tie_break = AbsenceTieBreak(env.get("FUEL_ABSENCE_TIE_BREAK", AbsenceTieBreak.FIRST_FOUND.value).strip().lower())
    except ValueError:
        problems.append(f"FUEL_ABSENCE_TIE_BREAK must be one of {[t.value for t in AbsenceTieBreak]}")
        tie_break = AbsenceTieBreak.FIRST_FOUND

    groups_raw = env.get("FUEL_DEFAULT_GROUPS")
    default_groups = (
        tuple(part.strip() for part in groups_raw.split(",") if part.strip()) if groups_raw else DEFAULT_GROUPS
    )

    fuel = FuelParameters(
        unit_price=_decimal(env, "FUEL_UNIT_PRICE", "5.00", problems),
        car_efficiency=_decimal(env, "FUEL_KML_CAR", "10", problems),
        motorcycle_efficiency=_decimal(env, "FUEL_KML_MOTORCYCLE", "30", problems),
    )

    settings = Settings(
        database_path=Path(env.get("FUEL_DB_PATH", str(DEFAULT_DB_PATH))),
        catch_all_group=env.get("FUEL_CATCH_ALL_GROUP", CATCH_ALL_GROUP).strip(),
        default_groups=default_groups,
        default_vehicle_class=vehicle,
        telemetry_delimiter=env.get("FUEL_TELEMETRY_DELIMITER", ";"),
        absence_tie_break=tie_break,
        low_distance_threshold=_decimal(env, "FUEL_LOW_DISTANCE_THRESHOLD", "1", problems),
        default_fuel=fuel,
        external_db_url=env.get("FUEL_EXTERNAL_DB_URL") or None,
        external_query=env.get("FUEL_EXTERNAL_QUERY") or None,
        actor=env.get("FUEL_ACTOR", "system"),
    )
    problems.extend(validate_settings(settings))
    if problems:
        raise ValidationError("Invalid configuration: " + "; ".join(problems))
    return settings


def validate_settings(settings: Settings) -> list[str]:
    issues = list(settings.default_fuel.problems())
    if not settings.catch_all_group:
        issues.append("FUEL_CATCH_ALL_GROUP must not be empty")
    if len(settings.telemetry_delimiter) != 1:
        issues.append("FUEL_TELEMETRY_DELIMITER must be a single character")
    if settings.low_distance_threshold < 0:
        issues.append("FUEL_LOW_DISTANCE_THRESHOLD must be >= 0")
    if settings.external_db_url and not settings.external_query:
        issues.append("FUEL_EXTERNAL_QUERY is required when FUEL_EXTERNAL_DB_URL is set")
    return issues
