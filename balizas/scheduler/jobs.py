"""Balizas V16 — Scheduler Jobs.

APScheduler interval job that pulls the DGT feed and persists it with history
every ``poll_interval_minutes``.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from balizas.config import settings
from balizas.connectors.dgt.client import DGTClient
from balizas.database import get_session
from balizas.ingest.pipeline import ingest_feed
from balizas.core.logging import get_logger

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def poll_feed_job():
    """Fetch, normalize and store the current beacon snapshot."""
    logger.info("Scheduled feed ingestion starting...")
    client = DGTClient()
    sessions = get_session()
    try:
        session = next(sessions)
        _, result = await ingest_feed(session, client)
        logger.info(
            f"Scheduled ingestion complete: {result.saved} new, "
            f"{result.updated} updated, {result.errors} errors"
        )
    except Exception as e:
        logger.error(f"Scheduled ingestion failed: {e}")
    finally:
        sessions.close()
        await client.close()


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        poll_feed_job,
        "interval",
        minutes=settings.poll_interval_minutes,
        id="poll_feed",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started. Feed ingestion every {settings.poll_interval_minutes} min"
    )


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
