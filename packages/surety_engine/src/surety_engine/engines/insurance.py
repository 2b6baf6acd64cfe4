"""
Insurance & Settlement Engine

- Underwriting: passengers buy insurance on a flight key, capped per purchase
- Settlement: an authorized caller reports the flight status once; on
  airline fault every insuree is credited 1.5x the premium (floor)
- Payout: insurees withdraw their credit
"""

import logging
from typing import Any

from surety_engine.contracts.types import EventType
from surety_engine.errors import (
    AlreadyPurchased,
    ExcessPayment,
    FlightAlreadyProcessed,
    InsufficientCustody,
    InvalidPayment,
    NoPositiveCredit,
)
from surety_engine.guards import AccessControl
from surety_engine.keys import flight_key
from surety_engine.notifications import EventBuffer
from surety_engine.payments import PaymentGateway
from surety_engine.persistence.repo import LedgerRepository

logger = logging.getLogger(__name__)

PAYOUT_NUMERATOR = 3
PAYOUT_DENOMINATOR = 2


def payout_for(premium: int) -> int:
    """Credit owed for a premium when the airline is at fault (truncating)."""
    return premium * PAYOUT_NUMERATOR // PAYOUT_DENOMINATOR


class InsuranceEngine:
    def __init__(
        self,
        repo: LedgerRepository,
        access: AccessControl,
        events: EventBuffer,
        gateway: PaymentGateway,
        max_insurance: int,
    ):
        self.repo = repo
        self.access = access
        self.events = events
        self.gateway = gateway
        self.max_insurance = max_insurance

    def buy_insurance(
        self,
        caller: str,
        airline: str,
        flight_id: str,
        timestamp: int,
        value: int,
    ) -> dict[str, Any]:
        """Insure the caller on a flight for `value` wei."""
        self.access.require_operational()
        if value <= 0:
            raise InvalidPayment("Insurance payment must be positive", value=str(value))
        if value > self.max_insurance:
            raise ExcessPayment(
                "Insurance payment exceeds the per-purchase cap",
                value=str(value),
                cap=str(self.max_insurance),
            )

        key = flight_key(airline, flight_id, timestamp)
        if self.repo.get_position(key, caller) is not None:
            raise AlreadyPurchased("Caller already insured on this flight", caller=caller, flight_key=key)
        flight = self.repo.get_flight(key)
        if flight is not None and flight.processed:
            raise FlightAlreadyProcessed("Flight already processed", flight_key=key)

        self.repo.get_or_create_flight(key, airline, flight_id, timestamp)
        self.repo.add_position(key, caller, value)
        self.repo.adjust_custody(value)

        payload = {"flight_key": key, "insuree": caller, "amount": str(value)}
        self.events.emit(EventType.INSURANCE_BOUGHT, payload)

        return {"flight_key": key, "insuree": caller, "amount": value}

    def process_flight_status(
        self,
        caller: str,
        airline: str,
        flight_id: str,
        timestamp: int,
        status_code: int,
        is_airline_fault: bool,
    ) -> dict[str, Any]:
        """
        Record the final status of a flight; credit insurees on airline fault.

        Runs at most once per flight key.
        """
        self.access.require_operational()
        self.access.require_authorized_caller(caller)

        key = flight_key(airline, flight_id, timestamp)
        flight = self.repo.get_flight(key)
        if flight is not None and flight.processed:
            raise FlightAlreadyProcessed("Flight already processed", flight_key=key)

        flight = self.repo.get_or_create_flight(key, airline, flight_id, timestamp)
        if not self.repo.claim_flight_processing(flight, status_code):
            # Another connection processed it after our read
            raise FlightAlreadyProcessed("Flight already processed", flight_key=key)

        self.events.emit(
            EventType.FLIGHT_PROCESSED,
            {
                "flight_key": key,
                "airline": airline,
                "flight_id": flight_id,
                "timestamp": timestamp,
                "status_code": status_code,
                "is_airline_fault": is_airline_fault,
            },
        )

        credited: dict[str, int] = {}
        if is_airline_fault:
            credited = self._credit_insurees(key)

        logger.info(
            f"Flight {flight_id} processed",
            extra={
                "flight_key": key,
                "status_code": status_code,
                "is_airline_fault": is_airline_fault,
                "insurees_credited": len(credited),
            },
        )

        return {
            "flight_key": key,
            "status_code": status_code,
            "is_airline_fault": is_airline_fault,
            "credited": credited,
        }

    def _credit_insurees(self, key: str) -> dict[str, int]:
        credited = {}
        for position in self.repo.list_positions(key):
            amount = payout_for(int(position.amount))
            balance = self.repo.add_credit(position.insuree_address, amount)
            credited[position.insuree_address] = amount

            self.events.emit(
                EventType.INSUREE_CREDITED,
                {
                    "flight_key": key,
                    "insuree": position.insuree_address,
                    "amount": str(amount),
                    "balance": str(balance),
                },
            )
        return credited

    def withdraw(self, caller: str) -> dict[str, Any]:
        """
        Pay out the caller's whole credit.

        The credit is zeroed before the transfer is issued, so anything the
        recipient does during the transfer already sees a zero balance.
        """
        self.access.require_operational()
        amount = self.repo.get_credit(caller)
        if amount <= 0:
            raise NoPositiveCredit("Caller has no credit to withdraw", caller=caller)
        custody = self.repo.get_custody_balance()
        if custody < amount:
            raise InsufficientCustody(
                "Ledger custody cannot cover the payout",
                amount=str(amount),
                custody=str(custody),
            )

        self.repo.zero_credit(caller)
        self.repo.adjust_custody(-amount)

        self.gateway.transfer(caller, amount, reason="credit_payout")

        self.events.emit(EventType.CREDIT_PAYOUT, {"insuree": caller, "amount": str(amount)})

        return {"insuree": caller, "amount": amount}
