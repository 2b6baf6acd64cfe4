"""
Ledger persistence.

SQLAlchemy models and repository for ledger tables.
These tables are OWNED by the ledger engine - no collaborator modifies them directly.
"""

from sqlalchemy.engine import Engine

from surety_engine.persistence.models import (
    LedgerBase,
    LedgerState,
    AuthorizedCaller,
    Airline,
    AirlineApproval,
    AirlineState,
    Flight,
    InsurancePosition,
    Credit,
    ProcessedEvent,
    OutboxMessage,
)
from surety_engine.persistence.repo import LedgerRepository


def init_db(engine: Engine) -> None:
    """Create all ledger tables (idempotent)."""
    LedgerBase.metadata.create_all(bind=engine)


__all__ = [
    "LedgerBase",
    "LedgerState",
    "AuthorizedCaller",
    "Airline",
    "AirlineApproval",
    "AirlineState",
    "Flight",
    "InsurancePosition",
    "Credit",
    "ProcessedEvent",
    "OutboxMessage",
    "LedgerRepository",
    "init_db",
]
