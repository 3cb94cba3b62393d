"""Balizas V16 — Analytics Output Schemas.

Field names follow the dashboard contract (Spanish keys). Every schema has
all-zero / empty defaults so the API can return a well-shaped empty value
when storage is unavailable.
"""

from datetime import datetime
from typing import Any, List, Optional
from pydantic import BaseModel


# ─────────────────────────────────────────────
# CURRENT-STATE AGGREGATES
# ─────────────────────────────────────────────


class GeneralStats(BaseModel):
    """Counts over the current-state table."""

    total: int = 0
    activas: int = 0
    perdidas: int = 0
    provincias: int = 0
    comunidades: int = 0
    carreteras: int = 0


class ProvinciaStat(BaseModel):
    provincia: Optional[str] = None
    total: int = 0
    activas: int = 0
    perdidas: int = 0


class ComunidadStat(BaseModel):
    comunidad: Optional[str] = None
    total: int = 0
    activas: int = 0
    perdidas: int = 0


class LocationStats(BaseModel):
    """Counts grouped independently by provincia and by comunidad."""

    byProvincia: List[ProvinciaStat] = []
    byComunidad: List[ComunidadStat] = []


class RawDataPage(BaseModel):
    """A page of current-state rows."""

    data: List[dict] = []
    total: int = 0
    limit: int = 1000
    offset: int = 0


# ─────────────────────────────────────────────
# HISTORY AGGREGATES
# ─────────────────────────────────────────────


class TimeSeriesPoint(BaseModel):
    """One truncated time bucket of history entries."""

    periodo: datetime
    total: int = 0
    nuevas: int = 0
    activas: int = 0
    perdidas: int = 0


class AccumulatedPoint(TimeSeriesPoint):
    """Time bucket plus running sums over all buckets up to and including it."""

    acumulado_total: int = 0
    acumulado_activas: int = 0
    acumulado_perdidas: int = 0
    acumulado_nuevas: int = 0


class TimePatterns(BaseModel):
    """Dense histogram — always 7 (day-of-week) or 24 (hour-of-day) slots."""

    labels: List[str] = []
    data: List[int] = []


class ComparisonPoint(BaseModel):
    periodo: datetime
    total: int = 0


class ComparisonResult(BaseModel):
    """Current window and comparison window, bucketed independently."""

    current: List[ComparisonPoint] = []
    comparison: List[ComparisonPoint] = []


class TrendMetric(BaseModel):
    """First vs last daily bucket of a window."""

    first: int = 0
    last: int = 0
    change: int = 0


class TrendStats(BaseModel):
    total: TrendMetric = TrendMetric()
    activas: TrendMetric = TrendMetric()
    perdidas: TrendMetric = TrendMetric()
    nuevas: TrendMetric = TrendMetric()


class LocationSeries(BaseModel):
    """Time series alongside per-location totals."""

    agrupacion: str
    tipo: str
    series: List[TimeSeriesPoint] = []
    locations: List[Any] = []
