"""
Pytest fixtures for ledger tests.

Every test gets a fresh in-memory SQLite ledger deployed with OWNER and a
REGISTERED first airline.
"""

import pytest
from sqlalchemy.orm import sessionmaker

from suretycore.db import build_engine
from suretycore.settings import WEI_PER_UNIT
from surety_engine.ledger import FlightSuretyLedger
from surety_engine.notifications import InMemoryNotifier
from surety_engine.payments import RecordingPaymentGateway
from surety_engine.persistence import init_db

OWNER = "0x0000000000000000000000000000000000000001"
FIRST_AIRLINE = "0x00000000000000000000000000000000000000a1"
ORCHESTRATOR = "0x0000000000000000000000000000000000000a11"
PASSENGER = "0x00000000000000000000000000000000000000b1"

UNIT = WEI_PER_UNIT
MIN_FUND = 10 * UNIT
MAX_INSURANCE = 1 * UNIT

FLIGHT = "ND1309"
TIMESTAMP = 1700000000


@pytest.fixture
def db_session():
    """Fresh in-memory database session."""
    engine = build_engine("sqlite://")
    init_db(engine)
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = Session()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def notifier():
    return InMemoryNotifier()


@pytest.fixture
def gateway():
    return RecordingPaymentGateway()


@pytest.fixture
def ledger(db_session, notifier, gateway):
    """Deployed ledger with a REGISTERED first airline."""
    return FlightSuretyLedger.deploy(
        db_session,
        OWNER,
        FIRST_AIRLINE,
        "First Air",
        notifier=notifier,
        gateway=gateway,
        min_fund=MIN_FUND,
        max_insurance=MAX_INSURANCE,
    )


def airline_address(n: int) -> str:
    return f"0x{n:040x}"


def activate_airlines(ledger: FlightSuretyLedger, count: int) -> list[str]:
    """
    Bring the ledger to `count` active airlines.

    New airlines are sponsored by the first airline and approved by the
    others until consensus is reached, then funded.
    """
    ledger.submit_fund(FIRST_AIRLINE, MIN_FUND)
    addresses = [FIRST_AIRLINE]

    while len(addresses) < count:
        new_address = airline_address(0xA00 + len(addresses) + 1)
        ledger.register_airline(FIRST_AIRLINE, new_address, f"Airline {len(addresses) + 1}")
        for approver in addresses[1:]:
            if ledger.get_airline(new_address)["state"] == "registered":
                break
            ledger.approve_registration(approver, new_address)
        ledger.submit_fund(new_address, MIN_FUND)
        addresses.append(new_address)

    return addresses


@pytest.fixture
def actived_ledger(ledger):
    """Ledger with an ACTIVED first airline and an authorized orchestrator."""
    ledger.submit_fund(FIRST_AIRLINE, MIN_FUND)
    ledger.authorize_caller(OWNER, ORCHESTRATOR)
    return ledger
