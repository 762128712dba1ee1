"""CampusFix FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from campusfix.config import get_settings
from campusfix.database import close_db, init_db
from campusfix.logging_config import clear_request_context, configure_from_settings, get_logger
from campusfix.redis import close_redis, init_redis

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: init DB + Redis on startup, cleanup on shutdown."""
    settings = get_settings()
    configure_from_settings(settings)

    # Init database
    logger.info("starting_database_init")
    await init_db()

    # Init Redis (only the redis change feed needs it)
    if settings.feed_backend == "redis":
        await init_redis(settings.redis_url)

    logger.info("application_started", version=settings.service_version)
    yield

    # Shutdown
    logger.info("shutting_down")
    await close_redis()
    await close_db()
    logger.info("shutdown_complete")


settings = get_settings()

app = FastAPI(
    title="CampusFix",
    description="Facility issue reporting: lifecycle, dual-confirmation resolution and notifications",
    version=settings.service_version,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_log_context(request: Request, call_next):
    """Drop the previous request's actor binding before handling this one."""
    clear_request_context()
    try:
        return await call_next(request)
    finally:
        clear_request_context()


# --- Routers ---
from campusfix.routes.issues import router as issues_router  # noqa: E402
from campusfix.routes.notifications import router as notifications_router  # noqa: E402

app.include_router(issues_router)
app.include_router(notifications_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": settings.service_name}
