"""
app/main.py

Purpose: Application entry point

- Initializes FastAPI app
- Loads configuration and logging
- Registers API routes (webhook, member resolution, operator endpoints)
- Builds the flow context and starts the stale registration sweep
- No business logic should be written here
"""

import asyncio
import time
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings, validate_settings
from app.core.errors import add_exception_handlers
from app.core.logging import setup_logging, get_logger
from app.db.mongo import connect_to_mongo, close_mongo_connection, check_database_health
from app.db.indexes import create_indexes
from app.flow.context import FlowContext, FlowOptions
from app.services.artifact_service import CloudinaryArtifactService
from app.services.line_service import LineMessagingService
from app.services.member_service import MongoMemberStore
from app.services.sweep_service import stale_sweeper
from app.api import members, webhook

APP_VERSION = "1.0.0"

# Initialize logging first
setup_logging()
logger = get_logger(__name__)


def build_flow_context() -> FlowContext:
    return FlowContext(
        store=MongoMemberStore(),
        gateway=LineMessagingService(),
        artifacts=CloudinaryArtifactService(),
        options=FlowOptions.from_settings(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info("🚀 Starting MemberPass application...")

    try:
        # Validate configuration
        logger.info("Validating configuration...")
        validate_settings()
        logger.info("✅ Configuration validated")

        # Connect to MongoDB
        logger.info("Connecting to MongoDB...")
        await connect_to_mongo()
        logger.info("✅ MongoDB connected")

        # Create database indexes
        await create_indexes()

        if not settings.cloudinary_configured:
            logger.warning("⚠️ Cloudinary is not configured; photo and QR uploads will fail")

        app.state.flow_context = build_flow_context()
        app.state.sweeper = asyncio.create_task(stale_sweeper(app.state.flow_context))

        logger.info("🎉 MemberPass application started successfully!")
        logger.info(f"Environment: {settings.ENVIRONMENT}")
        logger.info(f"Debug Mode: {settings.DEBUG}")

    except Exception as e:
        logger.critical(f"Failed to start application: {str(e)}", exc_info=True)
        raise

    yield  # Application runs here

    # Shutdown
    logger.info("🛑 Shutting down MemberPass application...")

    try:
        app.state.sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await app.state.sweeper
        logger.info("✅ Stale sweep stopped")

        # Close MongoDB connection
        await close_mongo_connection()
        logger.info("✅ MongoDB connection closed")

        logger.info("👋 MemberPass application shut down successfully")

    except Exception as e:
        logger.error(f"Error during shutdown: {str(e)}", exc_info=True)


# Create FastAPI app with lifespan
app = FastAPI(
    title="MemberPass - LINE Member Onboarding",
    description="LINE bot that registers members and issues QR code member passes",
    version=APP_VERSION,
    lifespan=lifespan,
    debug=settings.DEBUG,
    docs_url="/docs" if settings.is_development else None,  # Disable docs in production
    redoc_url="/redoc" if settings.is_development else None,
)

add_exception_handlers(app)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add processing time header to all responses."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)

    # LINE retries webhooks that take too long to acknowledge
    if process_time > 1.0:
        logger.warning(f"Slow request detected: {request.method} {request.url.path} ({process_time:.2f}s)")

    return response


# Register API routes
app.include_router(webhook.router, prefix=settings.API_PREFIX, tags=["Webhook"])
app.include_router(members.admin_router, prefix=settings.API_PREFIX, tags=["Admin"])
app.include_router(members.router, tags=["Members"])


@app.get("/", tags=["Health"])
async def root():
    return {
        "name": "MemberPass API",
        "version": APP_VERSION,
        "status": "running",
        "environment": settings.ENVIRONMENT
    }


def _sweeper_status(request: Request) -> str:
    sweeper = getattr(request.app.state, "sweeper", None)
    if sweeper is None:
        return "not_started"
    return "stopped" if sweeper.done() else "running"


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Database connectivity plus the state of the collaborators the
    onboarding flow depends on. Only the database decides the status code.
    """
    checks = {
        "messaging": "configured" if settings.LINE_CHANNEL_ACCESS_TOKEN else "not_configured",
        "storage": "configured" if settings.cloudinary_configured else "not_configured",
        "stale_sweep": _sweeper_status(request),
    }

    try:
        db_healthy = await check_database_health()
    except Exception as e:
        logger.error(f"Database health check failed: {str(e)}")
        db_healthy = False
    checks["database"] = "healthy" if db_healthy else "unhealthy"

    return JSONResponse(
        status_code=200 if db_healthy else 503,
        content={
            "status": "healthy" if db_healthy else "unhealthy",
            "timestamp": time.time(),
            "version": APP_VERSION,
            "checks": checks,
        },
    )


@app.get("/ready", tags=["Health"])
async def readiness_check(request: Request):
    """Ready once the flow context is built and MongoDB answers."""
    if getattr(request.app.state, "flow_context", None) is None:
        return JSONResponse(status_code=503, content={"status": "not_ready", "reason": "starting"})
    if not await check_database_health():
        return JSONResponse(status_code=503, content={"status": "not_ready", "reason": "database_unavailable"})
    return {"status": "ready"}


@app.get("/live", tags=["Health"])
async def liveness_check():
    return {"status": "alive"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower()
    )
