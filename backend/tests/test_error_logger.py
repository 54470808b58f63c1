"""Tests for the in-memory error log buffer."""

import pytest

from app.services.error_logger import (
    ErrorSeverity,
    clear_errors,
    log_error,
    recent_errors,
)


@pytest.fixture(autouse=True)
def _empty_buffer():
    clear_errors()
    yield
    clear_errors()


def _raise_and_log(**kwargs):
    try:
        raise ValueError("bad\x00value")
    except ValueError as e:
        return log_error(e, **kwargs)


class TestLogError:

    def test_entry_fields(self):
        entry = _raise_and_log(module="api.payroll", function_name="consult_loans")
        assert entry.error_type == "ValueError"
        assert entry.message == "bad value"
        assert entry.module == "api.payroll"
        assert entry.severity == ErrorSeverity.ERROR
        assert "Traceback" in entry.traceback

    def test_location_detected_from_traceback(self):
        entry = _raise_and_log()
        assert entry.function_name == "_raise_and_log"
        assert entry.module.endswith("test_error_logger.py")
        assert entry.line_number is not None

    def test_exception_without_traceback(self):
        entry = log_error(RuntimeError("HTTP 502"), status_code=502, request_path="/api/x")
        assert entry.module is None
        assert entry.status_code == 502

    def test_ids_increase(self):
        first = _raise_and_log()
        second = _raise_and_log()
        assert second.id > first.id

    def test_to_dict_serialisable(self):
        data = _raise_and_log(severity=ErrorSeverity.WARNING).to_dict()
        assert data["severity"] == "warning"
        assert isinstance(data["created_at"], str)


class TestRecentErrors:

    def test_newest_first(self):
        first = _raise_and_log()
        second = _raise_and_log()
        assert [e.id for e in recent_errors()] == [second.id, first.id]

    def test_filter_and_limit(self):
        _raise_and_log(severity=ErrorSeverity.WARNING)
        _raise_and_log()
        _raise_and_log()
        assert len(recent_errors(severity=ErrorSeverity.WARNING)) == 1
        assert len(recent_errors(limit=1)) == 1

    def test_clear(self):
        _raise_and_log()
        clear_errors()
        assert recent_errors() == []
