"""
Health and Monitoring Router.

Public, unauthenticated endpoints for liveness probes and operational
visibility of the JukeBoxd API.

Endpoints Provided:
- `/health`: Lightweight liveness check.
- `/monitoring/ping`: Connectivity test.
- `/monitoring/detailed`: Component status for the database, the cache and
  the music catalog (live provider or demo mode), plus a one-minute request
  summary. A failing non-critical component reports the service as
  "degraded" rather than down.
- `/monitoring/metrics`: Request timings, instrumented operation timings,
  counters and host statistics over a time window.

These routes are not rate limited, so probes never compete with API traffic.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Query

from core.cache import get_cache
from core.database import health_check as database_health_check
from core.logging_config import get_logger
from core.metrics import get_metrics_collector
from services.music_service import get_music_service

logger = get_logger(__name__)

SERVICE_NAME = "JukeBoxd API"
SERVICE_VERSION = "1.0.0"

health_router = APIRouter(tags=["Health & Monitoring"])
monitoring_router = APIRouter(prefix="/monitoring", tags=["Health & Monitoring"])


@health_router.get("/health")
async def health() -> Dict[str, Any]:
    """Basic health check endpoint (no authentication required)"""
    logger.debug("Health check requested")
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": SERVICE_VERSION,
        "service": SERVICE_NAME,
    }


@monitoring_router.get("/ping")
async def ping() -> Dict[str, str]:
    """Simple ping endpoint for connectivity testing"""
    return {
        "message": "pong",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": SERVICE_VERSION,
    }


@monitoring_router.get("/detailed")
async def detailed_health_check() -> Dict[str, Any]:
    """Detailed health check with component status"""
    logger.info("Detailed health check requested")

    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": SERVICE_VERSION,
        "service": SERVICE_NAME,
        "components": {},
    }

    # The database is the only critical component
    db_health = await database_health_check()
    health_status["components"]["database"] = db_health
    if db_health.get("status") != "healthy":
        health_status["status"] = "unhealthy"

    try:
        cache_health = await get_cache().health_check()
        health_status["components"]["cache"] = cache_health
        if cache_health.get("status") != "healthy" and health_status["status"] == "healthy":
            health_status["status"] = "degraded"
    except Exception as e:
        logger.warning(f"Cache health check failed (non-critical): {e}")
        health_status["components"]["cache"] = {"status": "unavailable", "error": str(e)}
        if health_status["status"] == "healthy":
            health_status["status"] = "degraded"

    try:
        catalog = get_music_service().status()
        health_status["components"]["music_catalog"] = {"status": "healthy", **catalog}
    except Exception as e:
        logger.warning(f"Music catalog status failed (non-critical): {e}")
        health_status["components"]["music_catalog"] = {
            "status": "unavailable",
            "error": str(e),
        }

    try:
        stats = get_metrics_collector().get_stats(time_window_minutes=1)
        health_status["components"]["metrics"] = {
            "status": "healthy",
            "stats": {
                "requests_last_minute": stats["requests"]["total"],
                "avg_response_time_ms": stats["requests"]["avg_duration_ms"],
                "system_cpu_percent": stats["system"].get("cpu", {}).get("percent", 0),
                "system_memory_percent": stats["system"]
                .get("memory", {})
                .get("percent", 0),
            },
        }
    except Exception as e:
        logger.warning(f"Metrics health check failed (non-critical): {e}")
        health_status["components"]["metrics"] = {"status": "unavailable", "error": str(e)}

    return health_status


@monitoring_router.get("/metrics")
async def get_metrics(time_window: int = Query(5, ge=1, le=1440)) -> Dict[str, Any]:
    """Get performance metrics (no authentication required for monitoring)"""
    logger.info(f"Metrics requested with time_window={time_window}")
    stats = get_metrics_collector().get_stats(time_window_minutes=time_window)
    return {"metrics": stats, "timestamp": datetime.now(timezone.utc).isoformat()}
