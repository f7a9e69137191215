"""Main FastAPI application for the PomoQuest progression service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog
from prometheus_fastapi_instrumentator import Instrumentator

from pomoquest.core.config import settings
from pomoquest.core.logging import setup_logging
from pomoquest.core.dependencies import close_resources, get_local_store
from pomoquest.routers import progression, sessions
from pomoquest.routers import settings as settings_router

# Setup structured logging
setup_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle manager."""
    logger.info("Starting PomoQuest progression service", version=settings.APP_VERSION)

    app.state.local_store = await get_local_store()

    logger.info("Progression service initialized successfully")

    yield

    logger.info("Shutting down PomoQuest progression service")
    await close_resources()


app = FastAPI(
    title=settings.APP_NAME,
    description="XP, streaks, achievements and character evolution for focus sessions",
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Prometheus metrics
if settings.ENABLE_METRICS:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")

app.include_router(sessions.router, prefix="/api/sessions", tags=["sessions"])
app.include_router(progression.router, prefix="/api/progression", tags=["progression"])
app.include_router(settings_router.router, prefix="/api/settings", tags=["settings"])


@app.get("/", tags=["root"])
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "status": "operational"
    }


@app.get("/health", tags=["health"])
async def health_check(request: Request):
    """Health check endpoint."""
    health_status = {
        "status": "healthy",
        "service": settings.SERVICE_NAME,
        "version": settings.APP_VERSION,
        "checks": {}
    }

    try:
        store = getattr(request.app.state, "local_store", None) or await get_local_store()
        await store.get("health_check")
        health_status["checks"]["cache"] = "healthy"
    except Exception as e:
        health_status["checks"]["cache"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(content=health_status, status_code=status_code)


@app.get("/config", tags=["debug"])
async def get_config():
    """Get current gamification configuration (development only)."""
    if settings.ENVIRONMENT == "production":
        return JSONResponse(
            content={"error": "Not available in production"},
            status_code=403
        )

    return {
        "environment": settings.ENVIRONMENT,
        "xp": {
            "base_session": settings.XP_BASE_SESSION,
            "minutes_step": settings.XP_MINUTES_STEP,
            "per_step": settings.XP_PER_STEP,
            "focus_multiplier": settings.FOCUS_XP_MULTIPLIER
        },
        "streak_protection": {
            "grace_hours": settings.STREAK_PROTECTION_GRACE_HOURS,
            "cooldown_days": settings.STREAK_PROTECTION_COOLDOWN_DAYS
        },
        "character_exp_divisor": settings.CHARACTER_EXP_DIVISOR,
        "sync_interval_seconds": settings.SYNC_INTERVAL_SECONDS,
        "idempotency_ttl": settings.IDEMPOTENCY_TTL
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "pomoquest.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
        reload=settings.ENVIRONMENT == "development",
        log_config=None  # Use structlog instead
    )
