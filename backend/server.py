from fastapi import FastAPI, APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
import time
import uuid
from pathlib import Path
from contextlib import asynccontextmanager
from datetime import datetime, timezone

# Load environment variables first
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

from config import get_settings
from logging_config import setup_logging, get_logger, set_request_context, clear_request_context
from sentry_integration import init_sentry
from database import init_db, get_engine
from reconciliation.endpoints.reconciliation_api import router as reconciliation_router

settings = get_settings()

setup_logging(
    level=settings.LOG_LEVEL,
    json_format=settings.LOG_JSON,
)
logger = get_logger(__name__)

init_sentry(
    dsn=settings.SENTRY_DSN,
    environment=settings.ENVIRONMENT,
    release=settings.API_VERSION,
    traces_sample_rate=0.1 if settings.is_production else 0.0,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    logger.info("Starting Statement Reconciliation API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    for error in settings.validate_production_config():
        logger.warning(f"Configuration Warning: {error}")

    try:
        await init_db()
        logger.info("Database connection established")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    yield

    logger.info("Shutting down Statement Reconciliation API...")
    await get_engine().dispose()


app = FastAPI(
    title=settings.API_TITLE,
    description="""
    Links bank and card statement lines to the invoices and receipts that
    corroborate them, and keeps a compliance score per statement folder.

    ### Reconciliation (/api/reconciliation)
    - Run matching for a folder
    - Manual link / unlink overrides
    - Candidate previews and folder statistics
    """,
    version=settings.API_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug_enabled else None,
    redoc_url="/api/redoc" if settings.debug_enabled else None,
)

api_router = APIRouter(prefix="/api")


# ==================== HEALTH CHECK ENDPOINTS ====================

@api_router.get("/health", tags=["Health"])
async def health_check():
    """
    Health check for load balancers and uptime monitors.

    Returns 503 when the database is unreachable.
    """
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.API_VERSION,
        "environment": settings.ENVIRONMENT,
        "checks": {}
    }

    try:
        from sqlalchemy import text

        async with get_engine().begin() as conn:
            await conn.execute(text("SELECT 1"))

        health_status["checks"]["database"] = {"status": "connected"}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = {"status": "disconnected"}

    if health_status["status"] == "unhealthy":
        raise HTTPException(status_code=503, detail=health_status)

    return health_status


@api_router.get("/health/live", tags=["Health"])
async def liveness_check():
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}


api_router.include_router(reconciliation_router)
app.include_router(api_router)

# ==================== MIDDLEWARE ====================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Internal-Api-Key", "X-User-Id", "X-Request-ID"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Tag log lines with a request ID and log failed requests with timing"""
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID") or f"req-{uuid.uuid4().hex[:12]}"
    set_request_context(request_id)

    try:
        response = await call_next(request)
        process_time = time.time() - start_time

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))

        if settings.debug_enabled or response.status_code >= 400:
            logger.info(f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} ({process_time:.3f}s)")

        return response
    finally:
        clear_request_context()


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions"""
    logger.exception(f"Unhandled exception: {exc}")

    if settings.is_production:
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return JSONResponse(
        status_code=500,
        content={"detail": str(exc), "type": type(exc).__name__}
    )
