from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from slowapi.errors import RateLimitExceeded

from app.core.limits import limiter, rate_limit_handler
from app.core.init_db import init_database
from app.core.error_handlers import setup_exception_handlers
from app.core.database import db_manager
from app.core.middleware import setup_middleware
from app.core.realtime import PresenceBroadcaster
from app.core.logging_utils import (
    setup_logging,
    get_logger,
    log_business_event,
    error_tracker,
)
from app.core.config import (
    validate_config,
    APP_NAME,
    APP_VERSION,
    BROADCAST_QUEUE_SIZE,
    CORS_ORIGINS,
    DEBUG,
    ENVIRONMENT,
    LOG_LEVEL,
    LOG_FORMAT,
)

from app.staff.routers import sessions as staff_sessions
from app.staff.routers import analytics as staff_analytics
from app.staff.routers import realtime
from app.students.routers import attendance as student_attendance

setup_logging(LOG_LEVEL, LOG_FORMAT)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown"""

    # Startup
    logger.info(f"Starting {APP_NAME} v{APP_VERSION}")

    try:
        validate_config()
        logger.info("✅ Configuration validated")

        await init_database()
        logger.info("✅ Database initialized")

        log_business_event(
            "application_started",
            "system",
            0,
            {"version": APP_VERSION, "environment": ENVIRONMENT},
        )

        logger.info("🚀 Application startup completed")

    except Exception as e:
        logger.error(f"❌ Application startup failed: {str(e)}")
        error_tracker.track_error(
            "STARTUP_ERROR",
            str(e),
            {"component": "application_startup", "version": APP_VERSION},
        )
        raise

    yield

    # Shutdown
    logger.info("🛑 Shutting down application...")

    try:
        await db_manager.close_connections()
        logger.info("✅ Database connections closed")

    except Exception as e:
        logger.error(f"❌ Error during shutdown: {str(e)}")

    logger.info("👋 Application shutdown completed")


def create_app() -> FastAPI:
    app = FastAPI(
        title=APP_NAME,
        description="Geofenced class attendance with live presence",
        version=APP_VERSION,
        lifespan=lifespan,
        debug=DEBUG,
    )

    app.state.broadcaster = PresenceBroadcaster(BROADCAST_QUEUE_SIZE)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)

    setup_middleware(
        app,
        {
            "slow_request_threshold": 5.0,
            "exclude_paths": [
                "/health",
                "/docs",
                "/openapi.json",
                "/redoc",
                "/favicon.ico",
            ],
        },
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

    app.include_router(staff_sessions.router, prefix="/api/v1")
    app.include_router(staff_analytics.router, prefix="/api/v1")
    app.include_router(student_attendance.router, prefix="/api/v1")
    app.include_router(realtime.router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health():
        tracked = error_tracker.get_stats()
        return {
            "status": "ok",
            "version": APP_VERSION,
            "errors": {
                "total": tracked["total_errors"],
                "by_type": tracked["error_counts"],
            },
        }

    return app


app = create_app()
