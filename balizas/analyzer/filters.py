"""Balizas V16 — Shared Filter-Predicate Builder.

Every analytics entry point accepts the same filter set. This module turns it
into a list of SQLAlchemy clauses (parameters are bound by the expression
layer) so no query hand-assembles WHERE strings.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel
from sqlmodel import col

from balizas.core.exceptions import InvalidParameterError
from balizas.core.time_utils import parse_timestamp
from balizas.models.beacon_models import Baliza, BalizaHistory, BeaconStatus

# Dashboard value meaning "no filter"
ALL = "todas"


class Granularity(str, Enum):
    """Time-bucket truncation (PostgreSQL DATE_TRUNC semantics, weeks start Monday)."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    def truncate(self, dt: datetime) -> datetime:
        if self is Granularity.HOUR:
            return dt.replace(minute=0, second=0, microsecond=0)
        day = dt.replace(hour=0, minute=0, second=0, microsecond=0)
        if self is Granularity.DAY:
            return day
        if self is Granularity.WEEK:
            return day - timedelta(days=day.weekday())
        return day.replace(day=1)


def parse_enum(enum_cls: type, value: Any, parameter: str):
    """Convert a query value to an enum member or raise InvalidParameterError."""
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidParameterError(
            parameter, value, tuple(m.value for m in enum_cls)
        ) from None


def _selected(value: Optional[str]) -> bool:
    return value is not None and value.strip() != "" and value != ALL


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class BalizaFilters(BaseModel):
    """Conjunctive filter set. ``None`` / ``"todas"`` / blank mean "any"."""

    provincia: Optional[str] = None
    comunidad: Optional[str] = None
    carretera: Optional[str] = None
    status: Optional[str] = None
    fecha_inicio: Optional[datetime] = None
    fecha_fin: Optional[datetime] = None

    @classmethod
    def from_params(
        cls,
        provincia: Optional[str] = None,
        comunidad: Optional[str] = None,
        carretera: Optional[str] = None,
        status: Optional[str] = None,
        fecha_inicio: Optional[str] = None,
        fecha_fin: Optional[str] = None,
    ) -> "BalizaFilters":
        """Build from raw query-string values, validating enums and dates."""
        if _selected(status):
            parse_enum(BeaconStatus, status, "status")
        return cls(
            provincia=provincia,
            comunidad=comunidad,
            carretera=carretera,
            status=status,
            fecha_inicio=_parse_date(fecha_inicio, "fecha_inicio"),
            fecha_fin=_parse_date(fecha_fin, "fecha_fin"),
        )


def _parse_date(value: Optional[str], parameter: str) -> Optional[datetime]:
    if value is None or value == "":
        return None
    parsed = parse_timestamp(value)
    if parsed is None:
        raise InvalidParameterError(parameter, value)
    return parsed


def dimension_predicates(model: Any, filters: BalizaFilters) -> List[Any]:
    """provincia / comunidad / carretera / status clauses for a table."""
    clauses: List[Any] = []
    if _selected(filters.provincia):
        clauses.append(col(model.provincia) == filters.provincia)
    if _selected(filters.comunidad):
        clauses.append(col(model.comunidad) == filters.comunidad)
    if filters.carretera and filters.carretera.strip():
        pattern = f"%{_escape_like(filters.carretera.strip())}%"
        clauses.append(col(model.carretera).ilike(pattern, escape="\\"))
    if _selected(filters.status):
        clauses.append(col(model.status) == filters.status)
    return clauses


def time_predicates(
    column: Any,
    start: Optional[datetime],
    end: Optional[datetime],
) -> List[Any]:
    clauses: List[Any] = []
    if start is not None:
        clauses.append(col(column) >= start)
    if end is not None:
        clauses.append(col(column) <= end)
    return clauses


def current_state_predicates(filters: BalizaFilters) -> List[Any]:
    """Filters on ``balizas``; the date range applies to last_seen."""
    return dimension_predicates(Baliza, filters) + time_predicates(
        Baliza.last_seen, filters.fecha_inicio, filters.fecha_fin
    )


def history_predicates(
    filters: BalizaFilters,
    default_start: Optional[datetime] = None,
) -> List[Any]:
    """Filters on ``baliza_history``; the date range applies to changed_at."""
    return dimension_predicates(BalizaHistory, filters) + time_predicates(
        BalizaHistory.changed_at,
        filters.fecha_inicio or default_start,
        filters.fecha_fin,
    )
