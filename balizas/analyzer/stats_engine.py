"""Balizas V16 — Current-State Statistics.

Counts and listings over the ``balizas`` table. NULL aggregates are read
as zero.
"""

from typing import Any, List, Optional

from sqlalchemy import case, distinct, func
from sqlmodel import Session, col, select

from balizas.analyzer.filters import BalizaFilters, current_state_predicates
from balizas.core.exceptions import storage_guard
from balizas.core.logging import get_logger
from balizas.models.analytics_models import (
    ComunidadStat,
    GeneralStats,
    LocationStats,
    ProvinciaStat,
    RawDataPage,
)
from balizas.models.beacon_models import (
    NOT_AVAILABLE,
    Baliza,
    BalizaHistory,
    BeaconStatus,
)

logger = get_logger("analyzer.stats")

EXPORT_LIMIT = 10000


def _count_status(status: BeaconStatus):
    return func.coalesce(
        func.sum(case((col(Baliza.status) == status.value, 1), else_=0)), 0
    )


def _int(value: Any) -> int:
    return int(value or 0)


def get_general_stats(
    session: Session, filters: Optional[BalizaFilters] = None
) -> GeneralStats:
    """Totals, active/lost split and distinct location counts."""
    filters = filters or BalizaFilters()
    stmt = (
        select(
            func.count(),
            _count_status(BeaconStatus.ACTIVE),
            _count_status(BeaconStatus.LOST),
            func.count(distinct(Baliza.provincia)),
            func.count(distinct(Baliza.comunidad)),
            func.count(distinct(Baliza.carretera)),
        )
        .select_from(Baliza)
        .where(*current_state_predicates(filters))
    )
    with storage_guard("general_stats"):
        row = session.exec(stmt).one()

    total, activas, perdidas, provincias, comunidades, carreteras = row
    return GeneralStats(
        total=_int(total),
        activas=_int(activas),
        perdidas=_int(perdidas),
        provincias=_int(provincias),
        comunidades=_int(comunidades),
        carreteras=_int(carreteras),
    )


def _grouped_counts(session: Session, column: Any, filters: BalizaFilters) -> list:
    total = func.count()
    stmt = (
        select(
            column,
            total,
            _count_status(BeaconStatus.ACTIVE),
            _count_status(BeaconStatus.LOST),
        )
        .select_from(Baliza)
        .where(*current_state_predicates(filters))
        .group_by(column)
        .order_by(total.desc(), column)
    )
    return list(session.exec(stmt).all())


def get_stats_by_location(
    session: Session, filters: Optional[BalizaFilters] = None
) -> LocationStats:
    """Counts grouped by provincia and by comunidad, largest first."""
    filters = filters or BalizaFilters()
    with storage_guard("stats_by_location"):
        by_provincia = _grouped_counts(session, col(Baliza.provincia), filters)
        by_comunidad = _grouped_counts(session, col(Baliza.comunidad), filters)

    return LocationStats(
        byProvincia=[
            ProvinciaStat(provincia=name, total=_int(t), activas=_int(a), perdidas=_int(p))
            for name, t, a, p in by_provincia
        ],
        byComunidad=[
            ComunidadStat(comunidad=name, total=_int(t), activas=_int(a), perdidas=_int(p))
            for name, t, a, p in by_comunidad
        ],
    )


def get_raw_data(
    session: Session,
    filters: Optional[BalizaFilters] = None,
    limit: int = 1000,
    offset: int = 0,
) -> RawDataPage:
    """Page of current-state rows, most recently seen first."""
    filters = filters or BalizaFilters()
    clauses = current_state_predicates(filters)
    stmt = (
        select(Baliza)
        .where(*clauses)
        .order_by(col(Baliza.last_seen).desc(), col(Baliza.id))
        .offset(offset)
        .limit(limit)
    )
    count_stmt = select(func.count()).select_from(Baliza).where(*clauses)

    with storage_guard("raw_data"):
        rows = session.exec(stmt).all()
        total = session.exec(count_stmt).one()

    return RawDataPage(
        data=[r.model_dump() for r in rows],
        total=_int(total),
        limit=limit,
        offset=offset,
    )


def get_baliza_history(
    session: Session, baliza_id: str, limit: int = 100
) -> List[BalizaHistory]:
    """History entries for one beacon, newest first."""
    stmt = (
        select(BalizaHistory)
        .where(BalizaHistory.baliza_id == baliza_id)
        .order_by(col(BalizaHistory.changed_at).desc(), col(BalizaHistory.seq).desc())
        .limit(limit)
    )
    with storage_guard("baliza_history"):
        return list(session.exec(stmt).all())


def _distinct_names(session: Session, column: Any, filters: BalizaFilters) -> List[str]:
    stmt = (
        select(column)
        .distinct()
        .where(column.is_not(None), column != NOT_AVAILABLE)
        .where(*current_state_predicates(filters))
        .order_by(column)
    )
    return [name for name in session.exec(stmt).all()]


def get_provincias_list(
    session: Session, filters: Optional[BalizaFilters] = None
) -> List[str]:
    """Distinct known provinces (optionally within a comunidad / date range)."""
    filters = filters or BalizaFilters()
    scoped = BalizaFilters(
        comunidad=filters.comunidad,
        fecha_inicio=filters.fecha_inicio,
        fecha_fin=filters.fecha_fin,
    )
    with storage_guard("provincias_list"):
        return _distinct_names(session, col(Baliza.provincia), scoped)


def get_comunidades_list(
    session: Session, filters: Optional[BalizaFilters] = None
) -> List[str]:
    """Distinct known autonomous communities (optionally within a date range)."""
    filters = filters or BalizaFilters()
    scoped = BalizaFilters(fecha_inicio=filters.fecha_inicio, fecha_fin=filters.fecha_fin)
    with storage_guard("comunidades_list"):
        return _distinct_names(session, col(Baliza.comunidad), scoped)
