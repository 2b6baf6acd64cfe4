"""Event contracts - envelope, types and payloads for ledger events."""

from surety_engine.contracts.envelope import EventEnvelope
from surety_engine.contracts.payloads import FlightStatusConfirmedPayload
from surety_engine.contracts.types import EventType

__all__ = ["EventEnvelope", "EventType", "FlightStatusConfirmedPayload"]
