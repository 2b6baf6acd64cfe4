"""
Ledger Database Models

Tables owned by the ledger engine. Nothing outside surety_engine writes to them.

Tables:
- ledger_state: single row with owner, operational flag and global counters
- ledger_authorized_callers: principals allowed on protected paths
- ledger_airlines: airline registry and lifecycle state
- ledger_airline_approvals: one row per (airline, approver)
- ledger_flights: flight records keyed by the derived flight key
- ledger_insurance_positions: one row per (flight key, insuree)
- ledger_credits: amount owed per principal
- ledger_processed_events: idempotency for consumed oracle events
- ledger_outbox: events and transfer instructions awaiting the relay

Amounts are integers in wei and can exceed 64 bits, so they are stored as
decimal strings and converted by the repository.

Rows that other processes may update concurrently (ledger_state,
ledger_credits) carry a version counter: SQLAlchemy adds it to the WHERE
clause of every UPDATE and raises StaleDataError when another transaction
got there first. Identifiers supplied by callers (addresses, names, flight
ids) are unbounded Text.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

LedgerBase = declarative_base()

LEDGER_STATE_ID = 1


class AirlineState(str, Enum):
    """Airline lifecycle. Transitions only move forward."""

    REGISTERING = "registering"
    REGISTERED = "registered"
    ACTIVED = "actived"


class LedgerModelMixin:
    """Common timestamp fields for ledger models."""

    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class LedgerState(LedgerBase, LedgerModelMixin):
    """Global ledger state. Exactly one row, created at deploy time."""

    __tablename__ = "ledger_state"

    id = Column(Integer, primary_key=True, default=LEDGER_STATE_ID)
    owner = Column(Text, nullable=False)
    operational = Column(Boolean, nullable=False, default=True)
    total_actived_airlines = Column(Integer, nullable=False, default=0)
    custody_balance = Column(String(80), nullable=False, default="0")
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class AuthorizedCaller(LedgerBase, LedgerModelMixin):
    __tablename__ = "ledger_authorized_callers"

    address = Column(Text, primary_key=True)


class Airline(LedgerBase, LedgerModelMixin):
    """
    A participant airline.

    Created once per address in REGISTERING state (or REGISTERED for the
    first airline at deploy time) and never deleted.
    """

    __tablename__ = "ledger_airlines"

    address = Column(Text, primary_key=True)
    name = Column(Text, nullable=False)
    state = Column(String(20), nullable=False, default=AirlineState.REGISTERING.value)
    staked_fund = Column(String(80), nullable=False, default="0")

    __table_args__ = (Index("idx_ledger_airlines_state", "state"),)


class AirlineApproval(LedgerBase, LedgerModelMixin):
    __tablename__ = "ledger_airline_approvals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    airline_address = Column(Text, ForeignKey("ledger_airlines.address"), nullable=False)
    approver_address = Column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("airline_address", "approver_address", name="uq_ledger_approvals_airline_approver"),
        Index("idx_ledger_approvals_airline", "airline_address"),
    )


class Flight(LedgerBase, LedgerModelMixin):
    """
    A flight instance, looked up only by its derived key.

    `processed` is terminal: once true, no status change or crediting happens.
    """

    __tablename__ = "ledger_flights"

    flight_key = Column(String(66), primary_key=True)
    flight_id = Column(Text, nullable=False)
    airline_address = Column(Text, nullable=False)
    timestamp = Column(BigInteger, nullable=False)
    registered = Column(Boolean, nullable=False, default=False)
    status_code = Column(Integer, nullable=False, default=0)
    processed = Column(Boolean, nullable=False, default=False)


class InsurancePosition(LedgerBase, LedgerModelMixin):
    """
    Flat (flight key, insuree) -> amount ledger.

    `position` keeps insurees in purchase order.
    """

    __tablename__ = "ledger_insurance_positions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    flight_key = Column(String(66), ForeignKey("ledger_flights.flight_key"), nullable=False)
    insuree_address = Column(Text, nullable=False)
    position = Column(Integer, nullable=False)
    amount = Column(String(80), nullable=False)

    __table_args__ = (
        UniqueConstraint("flight_key", "insuree_address", name="uq_ledger_positions_flight_insuree"),
        Index("idx_ledger_positions_flight_position", "flight_key", "position"),
    )


class Credit(LedgerBase, LedgerModelMixin):
    __tablename__ = "ledger_credits"

    address = Column(Text, primary_key=True)
    amount = Column(String(80), nullable=False, default="0")
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class ProcessedEvent(LedgerBase):
    """Inbound events already applied to the ledger (consumer idempotency)."""

    __tablename__ = "ledger_processed_events"

    event_id = Column(String(36), primary_key=True)
    event_type = Column(String(64), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    result = Column(JSON, nullable=True)


class OutboxMessage(LedgerBase):
    """
    Transactional outbox.

    Ledger events and outward transfer instructions are written here in the
    same transaction as the state change that produced them. The outbox
    relay publishes unpublished rows to their Redis stream.
    """

    __tablename__ = "ledger_outbox"

    id = Column(Integer, primary_key=True, autoincrement=True)
    message_id = Column(String(36), nullable=False, unique=True)
    stream = Column(String(128), nullable=False)
    kind = Column(String(20), nullable=False)
    data = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    published_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_ledger_outbox_unpublished", "published_at", "id"),)
