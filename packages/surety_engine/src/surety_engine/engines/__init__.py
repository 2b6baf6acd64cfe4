"""
Engine components.

Each engine reads and writes the ledger only through LedgerRepository
and never commits; the ledger facade owns the transaction.
"""

from surety_engine.engines.flights import FlightRegistry
from surety_engine.engines.funding import FundingEngine
from surety_engine.engines.governance import GovernanceEngine
from surety_engine.engines.insurance import InsuranceEngine

__all__ = [
    "FlightRegistry",
    "FundingEngine",
    "GovernanceEngine",
    "InsuranceEngine",
]
