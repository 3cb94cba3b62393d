"""Balizas V16 — Live Feed Routes."""

from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlmodel import Session

from balizas.api.deps import get_dgt_client, get_feed_cache
from balizas.connectors.dgt.client import DGTClient
from balizas.core.cache import FeedCache
from balizas.core.logging import get_logger
from balizas.database import get_session
from balizas.ingest.pipeline import fetch_reports
from balizas.ingest.reconciliation import save_balizas
from balizas.models.report_models import BeaconReport

logger = get_logger("api.balizas")

router = APIRouter(prefix="/api/v16", tags=["Balizas"])


def _snapshot(reports: List[BeaconReport]) -> dict:
    return {"balizas": [r.model_dump(mode="json", by_alias=True) for r in reports]}


def _persist(session: Session, reports: List[BeaconReport]) -> None:
    """Persist a fetched snapshot; serving the feed doesn't depend on it."""
    try:
        result = save_balizas(session, reports)
        logger.info(
            f"Stored in DB: {result.saved} new, {result.updated} updated, {result.errors} errors"
        )
    except Exception as e:
        logger.warning(f"Could not store beacons in DB: {e}")


@router.get("")
async def get_balizas(
    session: Session = Depends(get_session),
    client: DGTClient = Depends(get_dgt_client),
    cache: FeedCache = Depends(get_feed_cache),
):
    """Current beacon snapshot, served from cache while fresh."""
    cached = cache.get()
    if cached is not None:
        logger.info("Serving from cache", extra={"endpoint": "/api/v16"})
        return cached

    try:
        reports = await fetch_reports(client)
    except Exception as e:
        logger.error(f"Error fetching beacons: {e}")
        return JSONResponse(
            status_code=500,
            content={"error": "Error al obtener datos de balizas", "message": str(e)},
        )

    _persist(session, reports)
    data = _snapshot(reports)
    cache.set(data)
    return data


@router.post("/refresh")
async def refresh_balizas(
    session: Session = Depends(get_session),
    client: DGTClient = Depends(get_dgt_client),
    cache: FeedCache = Depends(get_feed_cache),
):
    """Bypass the cache: re-fetch, re-persist and re-cache."""
    cache.clear()
    try:
        reports = await fetch_reports(client)
    except Exception as e:
        logger.error(f"Refresh failed: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})

    _persist(session, reports)
    cache.set(_snapshot(reports))
    return {"success": True, "message": "Cache actualizado", "count": len(reports)}
