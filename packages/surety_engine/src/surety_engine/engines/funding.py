"""
Funding & Activation Engine

A REGISTERED airline stakes the minimum fund to become ACTIVED.
Anything paid above the minimum is refunded to the airline.
"""

import logging
from typing import Any

from surety_engine.contracts.types import EventType
from surety_engine.errors import InsufficientStake
from surety_engine.guards import AccessControl
from surety_engine.notifications import EventBuffer
from surety_engine.payments import PaymentGateway
from surety_engine.persistence.models import AirlineState
from surety_engine.persistence.repo import LedgerRepository

logger = logging.getLogger(__name__)


class FundingEngine:
    def __init__(
        self,
        repo: LedgerRepository,
        access: AccessControl,
        events: EventBuffer,
        gateway: PaymentGateway,
        min_fund: int,
    ):
        self.repo = repo
        self.access = access
        self.events = events
        self.gateway = gateway
        self.min_fund = min_fund

    def submit_fund(self, caller: str, value: int) -> dict[str, Any]:
        """
        Stake `value` wei and activate the calling airline.

        Bookkeeping (stake, state, active count, custody) is written before
        the refund leaves the ledger.
        """
        self.access.require_operational()
        airline = self.access.require_registered_airline(caller)
        if value < self.min_fund:
            raise InsufficientStake(
                "Payment is below the minimum airline fund",
                value=str(value),
                minimum=str(self.min_fund),
            )

        refund = value - self.min_fund

        self.repo.set_staked_fund(airline, self.min_fund)
        self.repo.set_airline_state(airline, AirlineState.ACTIVED)
        actived = self.repo.increment_actived_airlines()
        self.repo.adjust_custody(self.min_fund)

        if refund > 0:
            self.gateway.transfer(caller, refund, reason="stake_refund")

        self.events.emit(
            EventType.AIRLINE_ACTIVED,
            {
                "address": caller,
                "staked_fund": str(self.min_fund),
                "refund": str(refund),
                "actived_airlines": actived,
            },
        )

        return {"address": caller, "staked_fund": self.min_fund, "refund": refund, "actived_airlines": actived}
