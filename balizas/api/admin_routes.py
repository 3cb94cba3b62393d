"""Balizas V16 — Admin & Analytics Routes.

When the database is unreachable or its schema is missing, every analytics
endpoint answers with its empty shape instead of an error; genuine query
errors still return 500.
"""

import time
from typing import Any, Callable

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlmodel import Session

from balizas.analyzer.filters import BalizaFilters
from balizas.analyzer.stats_engine import (
    EXPORT_LIMIT,
    get_baliza_history,
    get_comunidades_list,
    get_general_stats,
    get_provincias_list,
    get_raw_data,
    get_stats_by_location,
)
from balizas.analyzer.timeseries_engine import (
    get_accumulated_stats,
    get_comparison_data,
    get_time_patterns,
    get_time_series,
    get_trend_stats,
)
from balizas.api.deps import filter_params, get_dgt_client
from balizas.connectors.dgt.client import DGTClient
from balizas.core.exceptions import InvalidParameterError, StorageUnavailableError
from balizas.core.logging import get_logger
from balizas.database import get_session
from balizas.ingest.pipeline import ingest_feed
from balizas.models.analytics_models import (
    ComparisonResult,
    GeneralStats,
    LocationSeries,
    LocationStats,
    RawDataPage,
    TimePatterns,
    TrendStats,
)

logger = get_logger("api.admin")

router = APIRouter(prefix="/api/admin", tags=["Admin"])

LOCATION_TYPES = ("provincia", "comunidad")


def _query(what: str, empty: Any, run: Callable[[], Any]) -> Any:
    """Run an analytics query, degrading storage outages to ``empty``."""
    try:
        return run()
    except StorageUnavailableError as e:
        logger.warning(
            f"Database unavailable for {what}, returning empty result: {e}",
            extra={"endpoint": what},
        )
        return empty
    except InvalidParameterError:
        raise
    except Exception as e:
        logger.error(f"Error getting {what}: {e}", extra={"endpoint": what})
        return JSONResponse(
            status_code=500,
            content={"error": f"Error al obtener {what}", "message": str(e) or "Error desconocido"},
        )


# ── Ingestion ──


@router.post("/save")
async def save_now(
    session: Session = Depends(get_session),
    client: DGTClient = Depends(get_dgt_client),
):
    """Fetch the feed and persist it immediately."""
    try:
        _, result = await ingest_feed(session, client)
    except Exception as e:
        logger.error(f"Error saving data: {e}")
        return JSONResponse(
            status_code=500,
            content={"error": "Error al guardar datos", "message": str(e)},
        )
    return {
        "success": True,
        "message": "Datos guardados exitosamente",
        **result.model_dump(),
    }


# ── Current-state statistics ──


@router.get("/stats/general")
def stats_general(
    filters: BalizaFilters = Depends(filter_params),
    session: Session = Depends(get_session),
):
    return _query(
        "estadísticas", GeneralStats(), lambda: get_general_stats(session, filters)
    )


@router.get("/stats/by-location")
def stats_by_location(
    filters: BalizaFilters = Depends(filter_params),
    session: Session = Depends(get_session),
):
    return _query(
        "estadísticas por ubicación",
        LocationStats(),
        lambda: get_stats_by_location(session, filters),
    )


@router.get("/stats/accumulated")
def stats_accumulated(
    agrupacion: str = Query("day", description="hour | day | week | month"),
    filters: BalizaFilters = Depends(filter_params),
    session: Session = Depends(get_session),
):
    """Per-bucket counts with running totals (default: last 30 days)."""
    return _query(
        "estadísticas acumuladas",
        {"agrupacion": agrupacion, "data": []},
        lambda: {
            "agrupacion": agrupacion,
            "data": get_accumulated_stats(session, filters, agrupacion),
        },
    )


# ── History time series ──


@router.get("/timeseries/counts")
def timeseries_counts(
    agrupacion: str = Query("hour", description="hour | day | week | month"),
    filters: BalizaFilters = Depends(filter_params),
    session: Session = Depends(get_session),
):
    """History counts per bucket (default: last 7 days)."""
    return _query(
        "series temporales",
        {"agrupacion": agrupacion, "data": []},
        lambda: {
            "agrupacion": agrupacion,
            "data": get_time_series(session, filters, agrupacion),
        },
    )


@router.get("/timeseries/locations")
def timeseries_locations(
    agrupacion: str = Query("day"),
    tipo: str = Query("provincia", description="provincia | comunidad"),
    filters: BalizaFilters = Depends(filter_params),
    session: Session = Depends(get_session),
):
    """Time series alongside per-location totals."""
    if tipo not in LOCATION_TYPES:
        raise InvalidParameterError("tipo", tipo, LOCATION_TYPES)

    def _run() -> LocationSeries:
        series = get_time_series(session, filters, agrupacion)
        stats = get_stats_by_location(session, filters)
        return LocationSeries(
            agrupacion=agrupacion,
            tipo=tipo,
            series=series,
            locations=stats.byProvincia if tipo == "provincia" else stats.byComunidad,
        )

    return _query(
        "series por ubicación",
        LocationSeries(agrupacion=agrupacion, tipo=tipo),
        _run,
    )


@router.get("/timeseries/patterns")
def timeseries_patterns(
    tipo: str = Query("day-of-week", description="day-of-week | hour-of-day"),
    filters: BalizaFilters = Depends(filter_params),
    session: Session = Depends(get_session),
):
    return _query(
        "patrones temporales",
        TimePatterns(),
        lambda: get_time_patterns(session, filters, tipo),
    )


@router.get("/timeseries/comparison")
def timeseries_comparison(
    agrupacion: str = Query("day"),
    comparison_type: str = Query("previous", description="previous | last-year"),
    filters: BalizaFilters = Depends(filter_params),
    session: Session = Depends(get_session),
):
    return _query(
        "datos de comparación",
        ComparisonResult(),
        lambda: get_comparison_data(session, filters, agrupacion, comparison_type),
    )


@router.get("/timeseries/trends")
def timeseries_trends(
    filters: BalizaFilters = Depends(filter_params),
    session: Session = Depends(get_session),
):
    return _query(
        "estadísticas de tendencia",
        TrendStats(),
        lambda: get_trend_stats(session, filters),
    )


# ── Raw data, history, locations ──


@router.get("/data/raw")
def data_raw(
    limit: int = Query(1000, ge=1, le=EXPORT_LIMIT),
    offset: int = Query(0, ge=0),
    filters: BalizaFilters = Depends(filter_params),
    session: Session = Depends(get_session),
):
    return _query(
        "datos",
        RawDataPage(limit=limit, offset=offset),
        lambda: get_raw_data(session, filters, limit, offset),
    )


@router.get("/history/{baliza_id}")
def baliza_history(
    baliza_id: str,
    limit: int = Query(100, ge=1, le=EXPORT_LIMIT),
    session: Session = Depends(get_session),
):
    return _query(
        "historial",
        {"balizaId": baliza_id, "history": []},
        lambda: {
            "balizaId": baliza_id,
            "history": get_baliza_history(session, baliza_id, limit),
        },
    )


@router.get("/locations/provincias")
def locations_provincias(
    filters: BalizaFilters = Depends(filter_params),
    session: Session = Depends(get_session),
):
    return _query("provincias", [], lambda: get_provincias_list(session, filters))


@router.get("/locations/comunidades")
def locations_comunidades(
    filters: BalizaFilters = Depends(filter_params),
    session: Session = Depends(get_session),
):
    return _query("comunidades", [], lambda: get_comunidades_list(session, filters))


@router.get("/export")
def export_data(
    filters: BalizaFilters = Depends(filter_params),
    session: Session = Depends(get_session),
):
    """Filtered current-state rows as a downloadable JSON file."""

    def _run() -> JSONResponse:
        page = get_raw_data(session, filters, EXPORT_LIMIT, 0)
        return JSONResponse(
            content=page.model_dump(mode="json")["data"],
            headers={
                "Content-Disposition": (
                    f'attachment; filename="balizas-{int(time.time() * 1000)}.json"'
                )
            },
        )

    return _query("exportación", [], _run)
