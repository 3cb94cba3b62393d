"""Balizas V16 — Feed Ingestion Pipeline.

Runs the data flow:
  fetch → normalize → (fallback to example beacons) → upsert with history

The example fallback keeps the cache and dashboard populated while the feed
is down or empty; it is a degraded mode, not an error path.
"""

from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlmodel import Session

from balizas.config import settings
from balizas.connectors.dgt.client import DGTClient
from balizas.connectors.dgt.payloads import SourceKind
from balizas.connectors.dgt.transformer import normalize
from balizas.core.exceptions import FeedConfigurationError, FeedSourceError
from balizas.core.logging import get_logger
from balizas.core.time_utils import utcnow
from balizas.ingest.reconciliation import save_balizas
from balizas.models.report_models import BeaconReport, SaveResult

logger = get_logger("ingest.pipeline")


def example_reports(now: Optional[datetime] = None) -> List[BeaconReport]:
    """Fixed sample beacons served when the feed is unavailable."""
    now = now or utcnow()
    return [
        BeaconReport(
            id="1",
            lat=40.4168,
            lon=-3.7038,
            status="active",
            carretera="A-1",
            pk="12.5",
            sentido="Madrid",
            orientacion="Norte",
            first_seen=now,
            last_seen=now,
            comunidad="Comunidad de Madrid",
            provincia="Madrid",
            municipio="Madrid",
        ),
        BeaconReport(
            id="2",
            lat=41.3851,
            lon=2.1734,
            status="lost",
            carretera="AP-7",
            pk="45.2",
            sentido="Barcelona",
            orientacion="Este",
            first_seen=now - timedelta(hours=1),
            last_seen=now - timedelta(minutes=5),
            comunidad="Cataluña",
            provincia="Barcelona",
            municipio="Barcelona",
        ),
    ]


async def _fetch_raw(client: DGTClient, source: SourceKind):
    if source == SourceKind.REST:
        return await client.fetch_rest()
    return await client.fetch_datex2()


async def fetch_reports(
    client: DGTClient,
    source: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[BeaconReport]:
    """Fetch and normalize the configured feed.

    Falls back to ``example_reports`` when the source errors or yields
    nothing. A missing REST configuration is raised, not masked.
    """
    kind = SourceKind(source or settings.feed_source)
    now = now or utcnow()

    try:
        raw = await _fetch_raw(client, kind)
        reports = normalize(raw, kind, now=now)
        if reports:
            return reports
        logger.warning(
            "Feed returned no usable beacons, serving example data",
            extra={"source": kind.value},
        )
    except FeedConfigurationError:
        raise
    except FeedSourceError as e:
        logger.warning(
            f"Could not fetch {kind.value} feed, serving example data: {e}",
            extra={"source": kind.value, "status_code": e.status_code or None},
        )

    return example_reports(now)


async def ingest_feed(
    session: Session,
    client: DGTClient,
    source: Optional[str] = None,
) -> Tuple[List[BeaconReport], SaveResult]:
    """Fetch + normalize + persist. Returns the reports and the save counts."""
    started = utcnow()
    reports = await fetch_reports(client, source)
    result = save_balizas(session, reports)
    duration_ms = int((utcnow() - started).total_seconds() * 1000)
    logger.info(
        f"Ingested {result.total} beacons",
        extra={"duration_ms": duration_ms},
    )
    return reports, result
