"""FastAPI application entry point."""

import logging
import os
import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.engine import make_url
from starlette.middleware.base import BaseHTTPMiddleware

from florist_ledger import models  # noqa: F401 - registers tables on Base.metadata
from florist_ledger.api.errors import http_error
from florist_ledger.api.routes import api_router
from florist_ledger.core.config import settings
from florist_ledger.core.exceptions import LedgerError
from florist_ledger.core.rate_limit import limiter
from florist_ledger.db.base import Base
from florist_ledger.db.session import SessionLocal, engine, is_sqlite
from florist_ledger.services.notification_service import close_notifier

# Configure logging
root_logger = logging.getLogger()
root_logger.setLevel(getattr(logging, settings.log_level))
root_logger.handlers.clear()

if settings.debug:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
else:
    import json as _json

    class JSONFormatter(logging.Formatter):
        def format(self, record):
            return _json.dumps({
                "ts": self.formatTime(record, self.datefmt),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "module": record.module,
                "line": record.lineno,
            })

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())

root_logger.addHandler(handler)
logger = logging.getLogger(__name__)
request_logger = logging.getLogger("requests")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging all HTTP requests and responses."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path in ["/health", "/docs", "/openapi.json"]:
            return await call_next(request)

        start_time = time.time()
        operator = request.headers.get("X-Operator-Email") or request.headers.get("X-Operator-Id") or "-"

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            request_logger.error(
                f"Error: {request.method} {request.url.path} - "
                f"Exception: {e} - Time: {process_time:.3f}s - Operator: {operator}"
            )
            raise

        process_time = time.time() - start_time
        log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
        request_logger.log(
            log_level,
            f"Response: {request.method} {request.url.path} - "
            f"Status: {response.status_code} - Time: {process_time:.3f}s - Operator: {operator}"
        )
        return response


def _ensure_sqlite_directory(database_url: str) -> None:
    url = make_url(database_url)
    if url.database and url.database != ":memory:":
        directory = os.path.dirname(os.path.abspath(url.database))
        os.makedirs(directory, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting Florist Ledger")

    # Create tables if they don't exist (for SQLite dev)
    if is_sqlite(settings.database_url):
        _ensure_sqlite_directory(settings.database_url)
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created (SQLite mode)")

    yield

    close_notifier()
    logger.info("Shutting down Florist Ledger")


app = FastAPI(
    title="Florist Ledger",
    description="Inventory ledger and revenue reconciliation for a florist chain",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Rate limiting setup
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    """Errors that escape a route unmapped still get their structured body."""
    error = http_error(exc)
    return JSONResponse(status_code=error.status_code, content={"detail": error.detail})


app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/health")
def health_check():
    """Liveness check with a database round trip."""
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        database = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        database = "unhealthy"
    finally:
        db.close()
    return {"status": "healthy" if database == "healthy" else "degraded", "database": database, "version": "1.0.0"}
