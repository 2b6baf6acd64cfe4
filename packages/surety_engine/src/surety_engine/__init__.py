"""
Surety Engine - FlightSurety ledger / state-machine engine

This package owns all persistent marketplace state and enforces its rules:
- Access & circuit breaker (guards)
- Ledger store (persistence)
- Governance, funding, flight registry, insurance & settlement (engines)
- Event contracts and notifiers
- Orchestration boundary (oracle status consumer)

Collaborators interact with it ONLY through FlightSuretyLedger entry points
or the oracle status stream.
"""

from surety_engine.ledger import FlightSuretyLedger

__all__ = ["FlightSuretyLedger"]
