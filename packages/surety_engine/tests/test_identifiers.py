"""
Tests for caller-supplied identifiers (addresses, airline names, flight ids).
"""

import pytest
from sqlalchemy import Text

from conftest import FIRST_AIRLINE, ORCHESTRATOR, PASSENGER, TIMESTAMP
from surety_engine.persistence.models import (
    Airline,
    AirlineApproval,
    AuthorizedCaller,
    Credit,
    Flight,
    InsurancePosition,
    LedgerState,
)

LONG_NAME = "Transcontinental " * 20
LONG_FLIGHT_ID = "CHARTER-" + "9" * 200
LONG_ADDRESS = "did:web:airlines.example.com:" + "a" * 200


class TestIdentifierColumns:
    @pytest.mark.parametrize(
        "column",
        [
            LedgerState.owner,
            AuthorizedCaller.address,
            Airline.address,
            Airline.name,
            AirlineApproval.airline_address,
            AirlineApproval.approver_address,
            Flight.flight_id,
            Flight.airline_address,
            InsurancePosition.insuree_address,
            Credit.address,
        ],
    )
    def test_unbounded_text(self, column):
        assert isinstance(column.property.columns[0].type, Text)


class TestLongIdentifiers:
    def test_long_airline_name_and_address(self, actived_ledger):
        actived_ledger.register_airline(FIRST_AIRLINE, LONG_ADDRESS, LONG_NAME)

        airline = actived_ledger.get_airline(LONG_ADDRESS)
        assert len(LONG_NAME) > 255
        assert airline["name"] == LONG_NAME
        assert airline["state"] == "registered"

    def test_long_flight_id_settles(self, actived_ledger):
        actived_ledger.register_flight(FIRST_AIRLINE, LONG_FLIGHT_ID, TIMESTAMP)
        actived_ledger.buy_insurance(PASSENGER, FIRST_AIRLINE, LONG_FLIGHT_ID, TIMESTAMP, 100)

        actived_ledger.process_flight_status(ORCHESTRATOR, FIRST_AIRLINE, LONG_FLIGHT_ID, TIMESTAMP, 20, True)

        assert actived_ledger.get_flight(FIRST_AIRLINE, LONG_FLIGHT_ID, TIMESTAMP)["flight_id"] == LONG_FLIGHT_ID
        assert actived_ledger.get_credit(PASSENGER) == 150
