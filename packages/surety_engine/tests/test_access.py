"""
Tests for the access & circuit-breaker layer.
"""

import pytest

from conftest import FIRST_AIRLINE, MIN_FUND, ORCHESTRATOR, OWNER, PASSENGER
from surety_engine.errors import DuplicateEntity, NotOperational, NotOwner
from surety_engine.ledger import FlightSuretyLedger


class TestDeploy:
    """Tests for ledger initialization."""

    def test_deploy_sets_owner_and_operational(self, ledger):
        """Test a fresh ledger is operational and owned by the deployer."""
        assert ledger.owner() == OWNER
        assert ledger.is_operational() is True
        assert ledger.total_actived_airlines() == 0

    def test_first_airline_is_registered(self, ledger):
        """Test the first airline starts REGISTERED, not ACTIVED."""
        airline = ledger.get_airline(FIRST_AIRLINE)
        assert airline["state"] == "registered"
        assert airline["staked_fund"] == 0
        assert ledger.is_airline(FIRST_AIRLINE) is True
        assert ledger.is_actived_airline(FIRST_AIRLINE) is False

    def test_deploy_twice_rejected(self, ledger, db_session):
        """Test deploying over an existing ledger is rejected."""
        with pytest.raises(DuplicateEntity):
            FlightSuretyLedger.deploy(db_session, OWNER, "0xother", "Other Air")


class TestOperationalStatus:
    """Tests for the circuit breaker."""

    def test_owner_can_toggle(self, ledger):
        """Test the owner switches the flag off and back on."""
        ledger.set_operational_status(OWNER, False)
        assert ledger.is_operational() is False

        ledger.set_operational_status(OWNER, True)
        assert ledger.is_operational() is True

    def test_non_owner_rejected(self, ledger):
        """Test only the owner may toggle the flag."""
        with pytest.raises(NotOwner):
            ledger.set_operational_status(PASSENGER, False)
        assert ledger.is_operational() is True

    def test_mutations_fail_when_not_operational(self, ledger):
        """Test every mutating entry point fails fast while paused."""
        ledger.set_operational_status(OWNER, False)

        with pytest.raises(NotOperational):
            ledger.submit_fund(FIRST_AIRLINE, MIN_FUND)
        with pytest.raises(NotOperational):
            ledger.register_airline(FIRST_AIRLINE, "0xnew", "New Air")
        with pytest.raises(NotOperational):
            ledger.approve_registration(FIRST_AIRLINE, "0xnew")
        with pytest.raises(NotOperational):
            ledger.register_flight(FIRST_AIRLINE, "ND1309", 1)
        with pytest.raises(NotOperational):
            ledger.buy_insurance(PASSENGER, FIRST_AIRLINE, "ND1309", 1, 100)
        with pytest.raises(NotOperational):
            ledger.process_flight_status(ORCHESTRATOR, FIRST_AIRLINE, "ND1309", 1, 20, True)
        with pytest.raises(NotOperational):
            ledger.withdraw(PASSENGER)
        with pytest.raises(NotOperational):
            ledger.authorize_caller(OWNER, ORCHESTRATOR)

        assert ledger.get_airline(FIRST_AIRLINE)["state"] == "registered"
        assert ledger.total_actived_airlines() == 0

    def test_not_operational_checked_before_caller_role(self, ledger):
        """Test the operational flag is the first precondition."""
        ledger.set_operational_status(OWNER, False)

        with pytest.raises(NotOperational):
            ledger.register_airline(PASSENGER, "0xnew", "New Air")


class TestAuthorizedCallers:
    """Tests for the authorized-caller allow-list."""

    def test_authorize_and_deauthorize(self, ledger):
        """Test adding and removing an authorized caller."""
        assert ledger.authorize_caller(OWNER, ORCHESTRATOR) is True
        assert ledger.is_authorized_caller(ORCHESTRATOR) is True

        assert ledger.deauthorize_caller(OWNER, ORCHESTRATOR) is True
        assert ledger.is_authorized_caller(ORCHESTRATOR) is False

    def test_idempotent(self, ledger):
        """Test repeating authorize/deauthorize is harmless."""
        ledger.authorize_caller(OWNER, ORCHESTRATOR)
        assert ledger.authorize_caller(OWNER, ORCHESTRATOR) is False
        assert ledger.is_authorized_caller(ORCHESTRATOR) is True

        ledger.deauthorize_caller(OWNER, ORCHESTRATOR)
        assert ledger.deauthorize_caller(OWNER, ORCHESTRATOR) is False
        assert ledger.is_authorized_caller(ORCHESTRATOR) is False

    def test_non_owner_cannot_authorize(self, ledger):
        """Test only the owner manages the allow-list."""
        with pytest.raises(NotOwner):
            ledger.authorize_caller(PASSENGER, PASSENGER)
        assert ledger.is_authorized_caller(PASSENGER) is False

        ledger.authorize_caller(OWNER, ORCHESTRATOR)
        with pytest.raises(NotOwner):
            ledger.deauthorize_caller(ORCHESTRATOR, ORCHESTRATOR)
        assert ledger.is_authorized_caller(ORCHESTRATOR) is True
