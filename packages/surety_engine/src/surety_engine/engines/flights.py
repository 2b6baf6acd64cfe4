"""
Flight Registry

Active airlines register flight instances under the key derived from
(airline, flight id, timestamp).
"""

from typing import Any

from surety_engine.contracts.types import EventType
from surety_engine.guards import AccessControl
from surety_engine.keys import flight_key
from surety_engine.notifications import EventBuffer
from surety_engine.persistence.repo import LedgerRepository


class FlightRegistry:
    def __init__(self, repo: LedgerRepository, access: AccessControl, events: EventBuffer):
        self.repo = repo
        self.access = access
        self.events = events

    def register_flight(self, caller: str, flight_id: str, timestamp: int) -> dict[str, Any]:
        """
        Register (or re-register) a flight of the calling airline.

        Re-registering the same tuple overwrites the record at that key.
        A processed flight stays processed, and existing insurance
        positions are kept.
        """
        self.access.require_operational()
        self.access.require_actived_airline(caller)

        key = flight_key(caller, flight_id, timestamp)
        flight = self.repo.upsert_flight(key, caller, flight_id, timestamp)

        payload = {
            "flight_key": key,
            "airline": caller,
            "flight_id": flight_id,
            "timestamp": timestamp,
        }
        self.events.emit(EventType.FLIGHT_REGISTERED, payload)

        return {**payload, "processed": flight.processed}
