"""
Event Types - notifications emitted by the ledger, plus the inbound
oracle event consumed at the orchestration boundary.
"""

from enum import Enum


class EventType(str, Enum):
    """
    Known event types.

    Format: subject_action (e.g., airline_registered, credit_payout)
    """

    # Governance
    AIRLINE_REGISTERING = "airline_registering"
    AIRLINE_REGISTERED = "airline_registered"

    # Funding
    AIRLINE_ACTIVED = "airline_actived"

    # Flight registry
    FLIGHT_REGISTERED = "flight_registered"

    # Insurance & settlement
    INSURANCE_BOUGHT = "insurance_bought"
    FLIGHT_PROCESSED = "flight_processed"
    INSUREE_CREDITED = "insuree_credited"
    CREDIT_PAYOUT = "credit_payout"

    # Inbound (published by the oracle service after it reached quorum)
    FLIGHT_STATUS_CONFIRMED = "flight_status_confirmed"

    def __str__(self) -> str:
        return self.value
