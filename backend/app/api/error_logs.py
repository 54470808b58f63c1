"""Error Logs API — endpoints for monitoring captured application errors."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from app.schemas import ErrorLogResponse
from app.services.error_logger import ErrorSeverity, clear_errors, recent_errors

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def list_error_logs(
    severity: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
):
    """List the most recent captured errors, newest first."""
    level = None
    if severity:
        try:
            level = ErrorSeverity(severity)
        except ValueError:
            raise HTTPException(status_code=422, detail=f"Unknown severity {severity!r}")

    logs = recent_errors(limit=limit, severity=level)
    return {
        "total": len(logs),
        "limit": limit,
        "items": [ErrorLogResponse(**log.to_dict()) for log in logs],
    }


@router.delete("", status_code=204)
async def clear_error_logs():
    clear_errors()
    logger.info("Error log buffer cleared")
