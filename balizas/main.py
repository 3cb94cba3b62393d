"""Balizas V16 — FastAPI Application Entry Point.

Live V16 beacon feed from the DGT plus historical analytics.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from balizas.config import settings
from balizas.database import init_db, test_connection
from balizas.scheduler.jobs import start_scheduler, stop_scheduler
from balizas.api.balizas_routes import router as balizas_router
from balizas.api.admin_routes import router as admin_router
from balizas.core.cache import FeedCache
from balizas.core.exceptions import InvalidParameterError
from balizas.core.logging import get_logger
from balizas.core.time_utils import isoformat, utcnow

logger = get_logger("main")


IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 Balizas V16 starting up...")
    logger.info(f"🌍 Environment: {'SERVERLESS' if IS_SERVERLESS else 'LOCAL'}")
    db_ok = test_connection()
    if db_ok:
        try:
            init_db()
        except Exception as e:
            logger.error(f"❌ Table creation failed: {e}")
    else:
        logger.error("❌ Database NOT connected — analytics will return empty results")
    if not IS_SERVERLESS:
        start_scheduler()
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    logger.info("Balizas V16 shut down")


app = FastAPI(
    title="Balizas V16",
    description="Live V16 emergency beacons from the DGT feed, with change history and analytics.",
    version="1.0.0",
    lifespan=lifespan,
)
app.state.feed_cache = FeedCache(settings.cache_ttl_seconds)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(balizas_router)
app.include_router(admin_router)


@app.exception_handler(InvalidParameterError)
async def invalid_parameter_handler(request: Request, exc: InvalidParameterError):
    return JSONResponse(
        status_code=400,
        content={"error": "Parámetro inválido", "message": str(exc)},
    )


@app.get("/health", tags=["System"])
async def health_check(request: Request):
    """Health check endpoint; cacheAge is in milliseconds (null when empty)."""
    age = request.app.state.feed_cache.age()
    return {
        "status": "ok",
        "timestamp": isoformat(utcnow()),
        "cacheAge": int(age * 1000) if age is not None else None,
    }
