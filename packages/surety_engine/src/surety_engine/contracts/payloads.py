"""
Payload Models

Pydantic models for payloads crossing the ledger boundary.
"""

from enum import IntEnum

from pydantic import BaseModel, Field, model_validator


class FlightStatusCode(IntEnum):
    """Flight status codes reported by oracles."""

    UNKNOWN = 0
    ON_TIME = 10
    LATE_AIRLINE = 20
    LATE_WEATHER = 30
    LATE_TECHNICAL = 40
    LATE_OTHER = 50


class FlightStatusConfirmedPayload(BaseModel):
    """
    Payload for FLIGHT_STATUS_CONFIRMED events.

    Published by the oracle service once enough independent responders agreed
    on a status. If is_airline_fault is omitted it is derived from the code.
    """

    airline: str = Field(..., min_length=1, description="Airline address")
    flight_id: str = Field(..., min_length=1, description="Flight identifier, e.g. ND1309")
    timestamp: int = Field(..., ge=0, description="Scheduled departure (unix seconds)")
    status_code: int = Field(..., ge=0, le=255)
    is_airline_fault: bool | None = None

    @model_validator(mode="after")
    def derive_fault(self) -> "FlightStatusConfirmedPayload":
        if self.is_airline_fault is None:
            self.is_airline_fault = self.status_code == FlightStatusCode.LATE_AIRLINE
        return self
