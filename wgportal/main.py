"""
Main FastAPI application entry point.
"""
import json
import logging
import os
import uuid
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import text

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from wgportal.core.config import settings
from wgportal.core.database import engine, Base, SessionLocal
from wgportal.core.exceptions import PortalError
from wgportal.core.logging_config import setup_logging
from wgportal.api.v1.router import api_router
from wgportal.middleware.request_logging import RequestLoggingMiddleware
from wgportal.services.config_service import ensure_config_seeded
from wgportal.services.domain_service import AcceptedDomainCache, sync_accepted_domains
from wgportal.services.user_service import ensure_roles_seeded

# Import all models so they register with Base.metadata before create_all()
from wgportal.models import (  # noqa: F401
    AcceptedDomain,
    APIKey,
    AuditEvent,
    ConfigEntry,
    ImportBatch,
    Peer,
    RoleDefinition,
    User,
    UserLimitHistory,
)

setup_logging()
logger = logging.getLogger(__name__)


def _seed_reference_data(app: FastAPI) -> None:
    """Roles, config defaults and accepted domains. Each step is idempotent."""
    db = SessionLocal()
    try:
        ensure_roles_seeded(db)
        ensure_config_seeded(db, settings)
        sync_accepted_domains(db, settings.accepted_domain_list(), cache=app.state.domain_cache)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    logger.info("Starting up WireGuard Peer Portal API...")

    # Run Alembic migrations when a deployment database is configured
    if os.getenv("DATABASE_URL"):
        try:
            from alembic.config import Config
            from alembic import command

            logger.info("[MIGRATION] DATABASE_URL detected, running Alembic migrations (idempotent)...")
            alembic_cfg = Config("alembic.ini")
            command.upgrade(alembic_cfg, "head")
            logger.info("[MIGRATION] Alembic migrations completed successfully (or already up-to-date)")
        except Exception as e:
            trace_id = str(uuid.uuid4())
            logger.warning(
                f"[MIGRATION] [{trace_id}] Alembic migration check failed: {e}. "
                "This is OK if migrations already ran or database is not ready yet."
            )
            logger.debug(f"[MIGRATION] [{trace_id}] Migration error details:", exc_info=True)
    else:
        logger.info("[MIGRATION] DATABASE_URL not set, skipping migrations (local dev mode)")

    # Fallback for local dev without Alembic
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created/verified successfully")
    except Exception as e:
        logger.error(f"Failed to create database tables: {e}", exc_info=True)

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
            db.commit()
            logger.info("Database connectivity verified")
        finally:
            db.close()
    except Exception as e:
        trace_id = str(uuid.uuid4())
        logger.error(f"[{trace_id}] Database connectivity test failed: {e}", exc_info=True)

    try:
        _seed_reference_data(app)
    except Exception as e:
        logger.warning(f"Failed to seed reference data: {e}. Continuing without seed data.")

    if not settings.is_encryption_configured():
        logger.warning("ENCRYPTION_KEY not configured: peer downloads and imports will fail")

    yield
    logger.info("Shutting down WireGuard Peer Portal API...")


app = FastAPI(
    title="WireGuard Peer Portal API",
    description="Self-service allocation of pre-generated WireGuard peer configurations",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    redirect_slashes=False,
)

app.state.domain_cache = AcceptedDomainCache(ttl_seconds=settings.ACCEPTED_DOMAINS_CACHE_TTL)

# CORS origins from ALLOWED_ORIGINS / CORS_ORIGINS env var, falling back to settings
allowed_origins = os.getenv("ALLOWED_ORIGINS") or os.getenv("CORS_ORIGINS")
if allowed_origins:
    if allowed_origins.startswith("["):
        try:
            allowed_origins = json.loads(allowed_origins)
        except json.JSONDecodeError:
            allowed_origins = [origin.strip() for origin in allowed_origins.split(",")]
    else:
        allowed_origins = [origin.strip() for origin in allowed_origins.split(",") if origin.strip()]
else:
    allowed_origins = settings.CORS_ORIGINS

app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    """Translate typed domain errors into their HTTP status and error code."""
    trace_id = getattr(request.state, "trace_id", str(uuid.uuid4()))

    if exc.status_code >= 500:
        # Internal details stay in the log; callers only see the error code
        logger.error(f"[{trace_id}] {type(exc).__name__}: {exc.message}")
        message = "Internal error"
    else:
        logger.info(f"[{trace_id}] {exc.error_code}: {exc.message}")
        message = exc.message

    content = {
        "error": exc.error_code,
        "message": message,
        "detail": message,
        "trace_id": trace_id,
    }
    if exc.details and exc.status_code < 500:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed input is a 400 ValidationError, not FastAPI's default 422."""
    trace_id = getattr(request.state, "trace_id", str(uuid.uuid4()))
    errors = [
        {"loc": [str(p) for p in err.get("loc", [])], "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "error": "ValidationError",
            "message": "Invalid request",
            "detail": errors,
            "trace_id": trace_id,
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors with trace_id."""
    trace_id = getattr(request.state, "trace_id", str(uuid.uuid4()))

    logger.error(
        f"[{trace_id}] Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=True
    )

    if isinstance(exc, SQLAlchemyError):
        error_detail = "Database error: check DATABASE_URL / migrations"
        error_type = "DatabaseError"
    elif isinstance(exc, HTTPException):
        raise
    else:
        error_detail = str(exc) if settings.DEBUG else "Internal Server Error"
        error_type = type(exc).__name__

    return JSONResponse(
        status_code=500,
        content={
            "detail": error_detail,
            "trace_id": trace_id,
            "error": error_type,
            "message": str(exc) if settings.DEBUG else "An unexpected error occurred",
        },
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "WireGuard Peer Portal API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """
    Liveness probe for the load balancer. No DB checks.

    Use /api/v1/health for database readiness.
    """
    return {"status": "ok"}
