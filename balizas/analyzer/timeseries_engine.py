"""Balizas V16 — History Time-Series Engine.

Buckets ``baliza_history`` entries by time: plain series, running totals,
day/hour histograms, period comparison and first-vs-last trends.
Bucketing is done in Python over the filtered rows so the same code runs on
PostgreSQL and SQLite.
"""

import math
from collections import defaultdict
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlmodel import Session, select

from balizas.analyzer.filters import (
    BalizaFilters,
    Granularity,
    dimension_predicates,
    history_predicates,
    parse_enum,
    time_predicates,
)
from balizas.core.exceptions import storage_guard
from balizas.core.logging import get_logger
from balizas.core.time_utils import utcnow
from balizas.models.analytics_models import (
    AccumulatedPoint,
    ComparisonPoint,
    ComparisonResult,
    TimePatterns,
    TimeSeriesPoint,
    TrendMetric,
    TrendStats,
)
from balizas.models.beacon_models import BalizaHistory, BeaconStatus, ChangeType

logger = get_logger("analyzer.timeseries")

SERIES_WINDOW = timedelta(days=7)
ACCUMULATED_WINDOW = timedelta(days=30)
PATTERN_WINDOW = timedelta(days=30)
COMPARISON_WINDOW = timedelta(days=7)
TREND_WINDOW = timedelta(days=7)

# Index 0 = Sunday, matching PostgreSQL EXTRACT(DOW)
DAY_LABELS = ["Domingo", "Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado"]
HOUR_LABELS = [f"{h}:00" for h in range(24)]

COUNT_KEYS = ("total", "nuevas", "activas", "perdidas")


class PatternType(str, Enum):
    DAY_OF_WEEK = "day-of-week"
    HOUR_OF_DAY = "hour-of-day"


class ComparisonType(str, Enum):
    PREVIOUS = "previous"
    LAST_YEAR = "last-year"


HistoryRow = Tuple[datetime, Optional[str], Optional[str]]


# ─────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────


def _fetch_rows(session: Session, clauses: List[Any], operation: str) -> List[HistoryRow]:
    """(changed_at, status, change_type) for every history entry matching clauses."""
    stmt = select(
        BalizaHistory.changed_at, BalizaHistory.status, BalizaHistory.change_type
    ).where(*clauses)
    with storage_guard(operation):
        return [tuple(r) for r in session.exec(stmt).all()]


def _bucket(rows: Iterable[HistoryRow], granularity: Granularity) -> Dict[datetime, Dict[str, int]]:
    """Count total / new / active / lost per truncated bucket, in time order."""
    buckets: Dict[datetime, Dict[str, int]] = defaultdict(lambda: dict.fromkeys(COUNT_KEYS, 0))
    for changed_at, status, change_type in rows:
        counts = buckets[granularity.truncate(changed_at)]
        counts["total"] += 1
        if change_type == ChangeType.NEW.value:
            counts["nuevas"] += 1
        if status == BeaconStatus.ACTIVE.value:
            counts["activas"] += 1
        elif status == BeaconStatus.LOST.value:
            counts["perdidas"] += 1
    return dict(sorted(buckets.items()))


def _shift_years(dt: datetime, years: int) -> datetime:
    try:
        return dt.replace(year=dt.year + years)
    except ValueError:
        # 29 February → 28 February
        return dt.replace(year=dt.year + years, day=28)


def percent_change(old: int, new: int) -> int:
    """Signed % change; 0→0 is 0, 0→n is 100, halves round up."""
    if not old:
        return 100 if new > 0 else 0
    return math.floor((new - old) / old * 100 + 0.5)


# ─────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────


def get_time_series(
    session: Session,
    filters: Optional[BalizaFilters] = None,
    agrupacion: str = "hour",
    now: Optional[datetime] = None,
) -> List[TimeSeriesPoint]:
    """History counts per bucket. Defaults to the last 7 days."""
    granularity = parse_enum(Granularity, agrupacion, "agrupacion")
    filters = filters or BalizaFilters()
    now = now or utcnow()

    rows = _fetch_rows(
        session, history_predicates(filters, now - SERIES_WINDOW), "time_series"
    )
    return [
        TimeSeriesPoint(periodo=periodo, **counts)
        for periodo, counts in _bucket(rows, granularity).items()
    ]


def get_accumulated_stats(
    session: Session,
    filters: Optional[BalizaFilters] = None,
    agrupacion: str = "day",
    now: Optional[datetime] = None,
) -> List[AccumulatedPoint]:
    """Time series plus running sums. Defaults to the last 30 days."""
    granularity = parse_enum(Granularity, agrupacion, "agrupacion")
    filters = filters or BalizaFilters()
    now = now or utcnow()

    rows = _fetch_rows(
        session, history_predicates(filters, now - ACCUMULATED_WINDOW), "accumulated_stats"
    )

    running = dict.fromkeys(COUNT_KEYS, 0)
    points: List[AccumulatedPoint] = []
    for periodo, counts in _bucket(rows, granularity).items():
        for key in COUNT_KEYS:
            running[key] += counts[key]
        points.append(
            AccumulatedPoint(
                periodo=periodo,
                **counts,
                acumulado_total=running["total"],
                acumulado_activas=running["activas"],
                acumulado_perdidas=running["perdidas"],
                acumulado_nuevas=running["nuevas"],
            )
        )
    return points


def get_time_patterns(
    session: Session,
    filters: Optional[BalizaFilters] = None,
    tipo: str = "day-of-week",
    now: Optional[datetime] = None,
) -> TimePatterns:
    """Dense day-of-week (7) or hour-of-day (24) histogram of history entries."""
    pattern = parse_enum(PatternType, tipo, "tipo")
    filters = filters or BalizaFilters()
    now = now or utcnow()

    rows = _fetch_rows(
        session, history_predicates(filters, now - PATTERN_WINDOW), "time_patterns"
    )

    if pattern is PatternType.DAY_OF_WEEK:
        labels = DAY_LABELS
        # weekday() has Monday=0; shift so Sunday=0
        slots = [(changed_at.weekday() + 1) % 7 for changed_at, _, _ in rows]
    else:
        labels = HOUR_LABELS
        slots = [changed_at.hour for changed_at, _, _ in rows]

    data = [0] * len(labels)
    for slot in slots:
        data[slot] += 1
    return TimePatterns(labels=list(labels), data=data)


def comparison_window(
    start: datetime, end: datetime, comparison_type: ComparisonType
) -> Tuple[datetime, datetime]:
    """The window the current [start, end] is compared against."""
    if comparison_type is ComparisonType.PREVIOUS:
        comparison_end = start - timedelta(milliseconds=1)
        return comparison_end - (end - start), comparison_end
    return _shift_years(start, -1), _shift_years(end, -1)


def get_comparison_data(
    session: Session,
    filters: Optional[BalizaFilters] = None,
    agrupacion: str = "day",
    comparison_type: str = "previous",
    now: Optional[datetime] = None,
) -> ComparisonResult:
    """Current window vs previous period (or same window last year)."""
    granularity = parse_enum(Granularity, agrupacion, "agrupacion")
    kind = parse_enum(ComparisonType, comparison_type, "comparison_type")
    filters = filters or BalizaFilters()
    now = now or utcnow()

    end = filters.fecha_fin or now
    start = filters.fecha_inicio or (now - COMPARISON_WINDOW)
    comparison_start, comparison_end = comparison_window(start, end, kind)
    dimensions = dimension_predicates(BalizaHistory, filters)

    def _series(window_start: datetime, window_end: datetime) -> List[ComparisonPoint]:
        clauses = dimensions + time_predicates(
            BalizaHistory.changed_at, window_start, window_end
        )
        rows = _fetch_rows(session, clauses, "comparison_data")
        return [
            ComparisonPoint(periodo=periodo, total=counts["total"])
            for periodo, counts in _bucket(rows, granularity).items()
        ]

    return ComparisonResult(
        current=_series(start, end),
        comparison=_series(comparison_start, comparison_end),
    )


def get_trend_stats(
    session: Session,
    filters: Optional[BalizaFilters] = None,
    now: Optional[datetime] = None,
) -> TrendStats:
    """Compare the first and last daily bucket of the window (not every bucket)."""
    filters = filters or BalizaFilters()
    now = now or utcnow()

    rows = _fetch_rows(
        session, history_predicates(filters, now - TREND_WINDOW), "trend_stats"
    )
    buckets = list(_bucket(rows, Granularity.DAY).values())
    if not buckets:
        return TrendStats()

    first, last = buckets[0], buckets[-1]
    return TrendStats(
        **{
            key: TrendMetric(
                first=first[key],
                last=last[key],
                change=percent_change(first[key], last[key]),
            )
            for key in COUNT_KEYS
        }
    )
