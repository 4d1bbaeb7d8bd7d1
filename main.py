"""
JukeBoxd API - Main Application Entry Point.

JukeBoxd is a social music cataloguing service: users rate and review albums
found through an external music catalog, follow each other, and read a feed
of what the people they follow have been listening to.

Key Responsibilities:
- Configure and launch the FastAPI application.
- Initialise core services (database, cache, metrics, rate limiting,
  authentication, music catalog) during the lifespan startup.
- Install the middleware stack for correlation ids, performance tracking,
  security headers and request validation.
- Register the exception handlers that render every domain error in the
  standard error envelope.
- Mount the API routers.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.album_endpoints import router as album_router
from api.auth_endpoints import router as auth_router
from api.feed_endpoints import router as feed_router
from api.health_router import health_router, monitoring_router
from api.rating_endpoints import router as rating_router
from api.review_endpoints import router as review_router
from api.social_endpoints import router as social_router
from core.auth import init_auth_service
from core.cache import init_cache
from core.database import create_db_and_tables
from core.logging_config import get_logger, setup_logging
from core.metrics import init_metrics_collector
from core.middleware import (
    CorrelationMiddleware,
    PerformanceMiddleware,
    RequestValidationMiddleware,
    SecurityHeadersMiddleware,
    register_exception_handlers,
)
from core.rate_limiter import init_rate_limiter
from services.music_service import init_music_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    logger = get_logger("api.startup")

    await create_db_and_tables()
    logger.info("Database initialized successfully")

    cache = init_cache()
    logger.info("Cache system initialized")

    metrics_collector = init_metrics_collector()
    metrics_collector.start_system_metrics()
    logger.info("Performance monitoring initialized")

    init_rate_limiter()
    logger.info("Rate limiter initialized")

    init_auth_service()
    logger.info("Authentication service initialized")

    music_service = init_music_service()
    catalog = music_service.status()
    if catalog["demo_mode"]:
        logger.warning("Music catalog running in demo mode with built-in albums")
    else:
        logger.info(f"Music catalog using {catalog['provider']}")

    logger.info("JukeBoxd startup completed")
    yield

    # Cleanup on shutdown
    logger.info("Shutting down JukeBoxd API")
    metrics_collector.cleanup()
    await music_service.close()
    await cache.close()
    logger.info("Cleanup completed")


app = FastAPI(
    title="JukeBoxd API",
    description="Social music cataloguing: album ratings, reviews and a followee activity feed",
    version="1.0.0",
    lifespan=lifespan,
)

# Starlette wraps each added middleware around the previous ones, so the
# last one added runs first.
app.add_middleware(RequestValidationMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(PerformanceMiddleware)
app.add_middleware(CorrelationMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID", "X-Process-Time", "Retry-After"],
)

register_exception_handlers(app)

# Health routers first (no authentication or rate limiting)
app.include_router(health_router)
app.include_router(monitoring_router)

app.include_router(auth_router)
app.include_router(album_router)
app.include_router(rating_router)
app.include_router(review_router)
app.include_router(social_router)
app.include_router(feed_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3001")),
        reload=os.getenv("ENVIRONMENT", "development") == "development",
        log_level="info",
    )
