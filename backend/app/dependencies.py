"""FastAPI dependencies shared by the routers."""

from functools import lru_cache

from app.services.distribution.payroll_session import PayrollSessionStore, session_store
from app.services.ledger_api.adapter import LedgerClient, get_ledger_client


@lru_cache(maxsize=1)
def _ledger_client() -> LedgerClient:
    return get_ledger_client()


def get_ledger() -> LedgerClient:
    return _ledger_client()


def get_session_store() -> PayrollSessionStore:
    return session_store
