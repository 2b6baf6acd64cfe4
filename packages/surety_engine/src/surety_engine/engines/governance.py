"""
Governance Engine

Airline onboarding by consensus of active airlines.

An airline is created in REGISTERING state with its sponsor as first
approver. After every approval the assessment runs against the *current*
number of active airlines: while that number is at most
BOOTSTRAP_AIRLINES any single approval suffices, afterwards at least half
of the active airlines must approve.
"""

import logging
from typing import Any

from surety_engine.contracts.types import EventType
from surety_engine.errors import AlreadyApproved, DuplicateEntity, InvalidAirlineState, UnknownAirline
from surety_engine.guards import AccessControl
from surety_engine.notifications import EventBuffer
from surety_engine.persistence.models import Airline, AirlineState
from surety_engine.persistence.repo import LedgerRepository

logger = logging.getLogger(__name__)


def consensus_reached(approvals: int, actived_airlines: int, bootstrap: int) -> bool:
    """Majority-of-active-airlines rule with a bootstrap exemption."""
    return actived_airlines <= bootstrap or approvals * 2 >= actived_airlines


class GovernanceEngine:
    """Registration requests, approval voting and consensus assessment."""

    BOOTSTRAP_AIRLINES = 4

    def __init__(self, repo: LedgerRepository, access: AccessControl, events: EventBuffer):
        self.repo = repo
        self.access = access
        self.events = events

    def register_airline(self, caller: str, new_address: str, name: str) -> dict[str, Any]:
        """
        Request registration of a new airline, sponsored by an active airline.

        The sponsor's request counts as the first approval.

        Returns:
            Assessment result summary
        """
        self.access.require_operational()
        self.access.require_actived_airline(caller)
        if self.repo.get_airline(new_address) is not None:
            raise DuplicateEntity("Airline address already used", address=new_address)

        airline = self.repo.create_airline(new_address, name, AirlineState.REGISTERING)
        approvals = self.repo.add_approval(new_address, caller)

        return self._assess(airline, approvals)

    def approve_registration(self, caller: str, airline_address: str) -> dict[str, Any]:
        """
        Vote for a pending airline.

        Returns:
            Assessment result summary
        """
        self.access.require_operational()
        self.access.require_actived_airline(caller)

        airline = self.repo.get_airline(airline_address)
        if airline is None:
            raise UnknownAirline("No airline registered at address", address=airline_address)
        if self.repo.has_approved(airline_address, caller):
            raise AlreadyApproved("Caller already approved this airline", caller=caller, address=airline_address)
        if airline.state != AirlineState.REGISTERING.value:
            raise InvalidAirlineState(
                "Only airlines pending registration can be approved",
                address=airline_address,
                state=airline.state,
            )

        approvals = self.repo.add_approval(airline_address, caller)

        return self._assess(airline, approvals)

    def _assess(self, airline: Airline, approvals: int) -> dict[str, Any]:
        actived = self.repo.get_state().total_actived_airlines
        payload = {
            "address": airline.address,
            "name": airline.name,
            "approvals": approvals,
            "actived_airlines": actived,
        }

        if consensus_reached(approvals, actived, self.BOOTSTRAP_AIRLINES):
            self.repo.set_airline_state(airline, AirlineState.REGISTERED)
            self.events.emit(EventType.AIRLINE_REGISTERED, payload)
        else:
            self.events.emit(EventType.AIRLINE_REGISTERING, payload)

        logger.debug(
            f"Assessed airline {airline.address}: {airline.state}",
            extra={"state": airline.state, **payload},
        )

        return {**payload, "state": airline.state}
