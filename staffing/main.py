"""Event Staffing API."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.exc import OperationalError

from staffing.core.config import settings
from staffing.core.database import create_db_and_tables
from staffing.core.errors import StaffingError
from staffing.core.scheduler import shutdown_scheduler, start_scheduler
from staffing.core.timeutil import isoformat, utc_now
from staffing.routes import auth, events, users

# Configure logging
settings.log_dir.mkdir(parents=True, exist_ok=True)
log_file = settings.log_dir / "latest.log"

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    filename=str(log_file),
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    # Startup
    logger.info("Starting Event Staffing application")
    create_db_and_tables()
    start_scheduler()
    yield
    # Shutdown
    shutdown_scheduler()
    logger.info("Event Staffing application shut down")


app = FastAPI(
    title=settings.app_name,
    description="Staff-facing API for event responses, attendance and profiles",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS for the mobile client and any web tooling
origins = (
    ["*"]
    if settings.allowed_origins == "*"
    else [o.strip() for o in settings.allowed_origins.split(",")]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StaffingError)
async def staffing_error_handler(request: Request, exc: StaffingError):
    """Render domain errors with their own status code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_content())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed ids and bodies are client errors (400)."""
    return JSONResponse(
        status_code=400,
        content={
            "detail": "Validation failed",
            "retryable": False,
            "errors": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(OperationalError)
async def database_error_handler(request: Request, exc: OperationalError):
    """Locked or unreachable database; the client may retry."""
    logger.error(f"Database unavailable during {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "Database unavailable", "retryable": True},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions without leaking internals."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred", "retryable": False},
    )


# Include routers, unprefixed and under /api for deployments that prefix routes
for router in (auth.router, events.router, users.router):
    app.include_router(router)
    app.include_router(router, prefix="/api", include_in_schema=False)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name, "timestamp": isoformat(utc_now())}


@app.get("/healthz", response_class=PlainTextResponse)
async def healthz():
    """Plain liveness probe for orchestrators and proxies."""
    return "OK"
