"""Balizas V16 — Shared FastAPI dependencies."""

from typing import AsyncIterator, Optional

from fastapi import Query, Request

from balizas.analyzer.filters import BalizaFilters
from balizas.connectors.dgt.client import DGTClient
from balizas.core.cache import FeedCache


def get_feed_cache(request: Request) -> FeedCache:
    """The app-owned cache of the last normalized feed result."""
    return request.app.state.feed_cache


async def get_dgt_client() -> AsyncIterator[DGTClient]:
    client = DGTClient()
    try:
        yield client
    finally:
        await client.close()


def filter_params(
    provincia: Optional[str] = Query(None, description="Exact provincia, or 'todas'"),
    comunidad: Optional[str] = Query(None, description="Exact comunidad, or 'todas'"),
    carretera: Optional[str] = Query(None, description="Case-insensitive road substring"),
    status: Optional[str] = Query(None, description="active | lost | todas"),
    fecha_inicio: Optional[str] = Query(None, description="ISO 8601 start"),
    fecha_fin: Optional[str] = Query(None, description="ISO 8601 end"),
) -> BalizaFilters:
    """Query-string filter set shared by all analytics endpoints."""
    return BalizaFilters.from_params(
        provincia=provincia,
        comunidad=comunidad,
        carretera=carretera,
        status=status,
        fecha_inicio=fecha_inicio,
        fecha_fin=fecha_fin,
    )
