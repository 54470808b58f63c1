"""Lending Back-Office Payments API - FastAPI Entry Point."""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.config import settings
from app.dependencies import get_ledger
from app.middleware.error_capture import ErrorCaptureMiddleware
from app.rate_limit import limiter
from app.services.ledger_api.adapter import LedgerClient
from app.api import (
    payroll,
    payments,
    refinancing,
    error_logs,
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Report which ledger backend the service talks to."""
    ledger = get_ledger()
    logger.info(
        "Starting payments API (environment=%s, ledger=%s)",
        settings.environment, ledger.provider_name,
    )
    yield


app = FastAPI(
    title="Lending Back-Office Payments API",
    description="Payment distribution and reconciliation for the consumer lending back office",
    version="0.1.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# ── Security headers middleware ──────────────────────────────────
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to every response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if settings.environment != "development":
            response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"
        return response


# Error capture middleware
app.add_middleware(ErrorCaptureMiddleware)

# Security headers
app.add_middleware(SecurityHeadersMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With"],
)

# Routers
app.include_router(payroll.router, prefix="/api/payroll", tags=["Payroll Batches"])
app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])
app.include_router(refinancing.router, prefix="/api/refinancing", tags=["Refinancing"])
app.include_router(error_logs.router, prefix="/api/error-logs", tags=["Error Monitoring"])


@app.get("/api/health")
async def health_check(ledger: LedgerClient = Depends(get_ledger)):
    return {
        "status": "healthy",
        "service": "backoffice-payments-api",
        "version": "0.1.0",
        "ledger": ledger.provider_name,
        "ledger_reachable": await ledger.check_health(),
    }
