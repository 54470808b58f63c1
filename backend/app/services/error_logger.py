"""Centralised error logging — captures exceptions to the Python logger and
a bounded in-memory buffer that admins can read through /api/error-logs.

Usage:
    # 1. As a function call in any try/except:
    from app.services.error_logger import log_error
    try:
        ...
    except Exception as e:
        log_error(e, module="my_module", function_name="my_func")

    # 2. Middleware captures unhandled request errors automatically.
"""

from __future__ import annotations

import enum
import itertools
import logging
import threading
import traceback as tb_module
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional

from app.config import settings

logger = logging.getLogger("backoffice.errors")


class ErrorSeverity(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class ErrorLog:
    id: int
    severity: ErrorSeverity
    error_type: str
    message: str
    traceback: Optional[str] = None
    module: Optional[str] = None
    function_name: Optional[str] = None
    line_number: Optional[int] = None
    request_method: Optional[str] = None
    request_path: Optional[str] = None
    status_code: Optional[int] = None
    response_time_ms: Optional[float] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        data = asdict(self)
        data["severity"] = self.severity.value
        data["created_at"] = self.created_at.isoformat()
        return data


_buffer: deque[ErrorLog] = deque(maxlen=settings.error_log_buffer_size)
_ids = itertools.count(1)
_lock = threading.Lock()


def _sanitize_text(value: object, *, max_len: Optional[int] = None) -> str:
    """Normalize control characters before storing/serializing text."""
    text = str(value)
    # Keep common whitespace but strip other control chars.
    text = "".join(ch if (ch >= " " or ch in "\n\r\t") else " " for ch in text)
    if max_len is not None:
        return text[:max_len]
    return text


def log_error(
    exc: Exception,
    *,
    severity: ErrorSeverity = ErrorSeverity.ERROR,
    module: Optional[str] = None,
    function_name: Optional[str] = None,
    line_number: Optional[int] = None,
    request_method: Optional[str] = None,
    request_path: Optional[str] = None,
    status_code: Optional[int] = None,
    response_time_ms: Optional[float] = None,
) -> ErrorLog:
    """Log an exception to the Python logger and keep it in the buffer."""

    error_type = type(exc).__name__
    message = _sanitize_text(exc, max_len=2000)
    traceback_str = _sanitize_text(
        "".join(tb_module.format_exception(type(exc), exc, exc.__traceback__)),
        max_len=10000,
    )

    # Auto-detect module/function/line from traceback if not provided
    if exc.__traceback__ and not module:
        frame = exc.__traceback__
        while frame.tb_next:
            frame = frame.tb_next
        module = module or frame.tb_frame.f_code.co_filename
        function_name = function_name or frame.tb_frame.f_code.co_name
        line_number = line_number or frame.tb_lineno

    log_msg = f"[{severity.value.upper()}] {error_type}: {message}"
    if request_path:
        log_msg = f"{request_method or '?'} {request_path} -> {log_msg}"
    logger.error(log_msg, exc_info=exc)

    with _lock:
        entry = ErrorLog(
            id=next(_ids),
            severity=severity,
            error_type=error_type,
            message=message,
            traceback=traceback_str,
            module=_sanitize_text(module, max_len=300) if module else None,
            function_name=_sanitize_text(function_name, max_len=200) if function_name else None,
            line_number=line_number,
            request_method=request_method,
            request_path=_sanitize_text(request_path, max_len=500) if request_path else None,
            status_code=status_code,
            response_time_ms=response_time_ms,
        )
        _buffer.append(entry)
    return entry


def recent_errors(limit: int = 50, severity: Optional[ErrorSeverity] = None) -> list[ErrorLog]:
    """Newest first."""
    with _lock:
        entries = list(_buffer)
    if severity is not None:
        entries = [e for e in entries if e.severity == severity]
    return list(reversed(entries))[:limit]


def clear_errors() -> None:
    with _lock:
        _buffer.clear()
