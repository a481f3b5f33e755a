"""
FastAPI application for qbank-sync.

Provides the webservice endpoints used to keep a question bank in sync with
files on disk:
- Question listing, export, import and deletion
- Quiz structure export and import
- File upload for question imports
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config import get_settings
from qbank_sync import __version__
from qbank_sync.core.errors import QbankSyncError, SchemaError
from qbank_sync.db.database import get_engine, init_db
from qbank_sync.external import FUNCTIONS
from qbank_sync.logging_setup import configure_logging

settings = get_settings()


def _check_database_health() -> tuple[str, str | None]:
    """
    Check database connectivity.

    Returns:
        Tuple of (status, error_message). Status is "ok" or "error".
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return "ok", None
    except SQLAlchemyError as e:
        return "error", str(e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    configure_logging(settings.log_level, settings.log_file)
    logger.info("Starting qbank-sync service...")
    init_db()
    logger.info(f"Service started on {settings.api_host}:{settings.api_port}")

    yield

    logger.info("Shutting down qbank-sync service...")


app = FastAPI(
    title="qbank-sync",
    description="""
    Webservice for synchronising question banks and quizzes with files.

    ## Functions

    - **qbank_sync_get_question_list**: questions in a category tree
    - **qbank_sync_export_question** / **qbank_sync_import_question**: Moodle XML round trip
    - **qbank_sync_delete_question**: remove a question with all its versions
    - **qbank_sync_export_quiz_data** / **qbank_sync_import_quiz_data**: quiz structure
    """,
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========================================
# Error Handlers
# ========================================


@app.exception_handler(QbankSyncError)
async def qbank_sync_error_handler(request: Request, exc: QbankSyncError) -> JSONResponse:
    """Render taxonomy errors as the webservice error payload."""
    if exc.status_code >= 500:
        logger.error(f"{request.url.path}: {exc.errorcode}: {exc.message}")
    else:
        logger.info(f"{request.url.path}: {exc.errorcode}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies fail the same way as bad parameters."""
    fields = [".".join(str(p) for p in error["loc"] if p != "body") or "<root>" for error in exc.errors()]
    error = SchemaError(fields)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# ========================================
# Health & Status Endpoints
# ========================================


@app.get("/", tags=["Health"])
def root() -> dict[str, str]:
    """Root endpoint returning service info."""
    return {
        "service": "qbank-sync",
        "version": __version__,
        "status": "ok",
    }


@app.get("/health", tags=["Health"])
def health_check() -> dict[str, Any]:
    """Health check with an actual database round trip."""
    db_status, db_error = _check_database_health()

    result: dict[str, Any] = {
        "status": "healthy" if db_status == "ok" else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            "database": db_status,
            "functions": len(FUNCTIONS),
        },
    }
    if db_error:
        result["errors"] = {"database": db_error}
    return result


# ========================================
# Import and mount routers
# ========================================

from qbank_sync.api.routers import webservice_router  # noqa: E402

app.include_router(webservice_router.router, prefix="/webservice", tags=["Webservice"])
