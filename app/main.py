"""
Storefront POS Sync: FastAPI application entry point.

Main application module with lifespan management, middleware configuration,
and router registration. Startup verifies the database tables and starts the
sync scheduler in the background so the port opens immediately.
"""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.utils.config import settings
from app.utils.structured_logging import configure_logging
from app.routers import health, records, scheduler, storefront, webhooks
from app.middleware.request_logging import RequestLoggingMiddleware
from app.scheduler.cron_tasks import configure_scheduler, start_scheduler, shutdown_scheduler
from app.services.auto_migration import run_auto_migration

logger = logging.getLogger(__name__)

# -------------------------------------------------
# Rate Limiting
# -------------------------------------------------

def get_rate_limit_key(request: Request) -> str:
    """Rate limit key based on client IP."""
    return get_remote_address(request)

limiter = Limiter(key_func=get_rate_limit_key)


# -------------------------------------------------
# Lifespan
# -------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifecycle.
    Startup work runs in a background task; /health answers 503 until it is done.
    """
    configure_logging()

    app.state.is_ready = False
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} ({settings.ENVIRONMENT})")

    async def background_startup():
        try:
            await run_auto_migration()
            logger.info("Database tables verified")
        except Exception as e:
            logger.warning(f"Auto-migration failed: {e}")

        if settings.SCHEDULER_ENABLED:
            try:
                configure_scheduler()
                start_scheduler()
                logger.info("Scheduler started")
            except Exception as e:
                logger.warning(f"Scheduler failed: {e}")
        else:
            logger.info("Scheduler disabled by configuration")

        app.state.is_ready = True
        logger.info("Application is READY to accept traffic")

    startup_task = asyncio.create_task(background_startup())

    yield

    logger.info("Shutting down application")
    if not startup_task.done():
        startup_task.cancel()

    if settings.SCHEDULER_ENABLED:
        try:
            shutdown_scheduler()
        except Exception as e:
            logger.warning(f"Scheduler shutdown error: {e}")

    logger.info(f"Shut down {settings.APP_NAME}")


# -------------------------------------------------
# FastAPI App
# -------------------------------------------------

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# -------------------------------------------------
# Middleware
# -------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# -------------------------------------------------
# Routers
# -------------------------------------------------

app.include_router(health.router, tags=["Health"])
app.include_router(webhooks.router, prefix="/webhook", tags=["Webhooks"])
app.include_router(scheduler.router, tags=["Scheduler"])
app.include_router(records.router, tags=["Records"])
app.include_router(storefront.router, prefix="/storefront", tags=["Storefront"])


# -------------------------------------------------
# Root
# -------------------------------------------------

@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"{settings.APP_NAME} v{settings.APP_VERSION} is running",
        "docs": "/docs",
    }
