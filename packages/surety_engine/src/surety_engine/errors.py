"""
Ledger errors.

Every rejected operation raises exactly one of these. Each carries a stable
`code` so collaborators (CLI, stream consumer) can react without parsing
messages. Raising any of them aborts the whole operation: the transaction is
rolled back and no event is delivered.
"""

from typing import Any


class LedgerError(Exception):
    """Base class for all ledger rejections."""

    code = "ledger_error"

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.context}


class LedgerNotDeployed(LedgerError):
    code = "ledger_not_deployed"


class NotOperational(LedgerError):
    code = "not_operational"


class NotOwner(LedgerError):
    code = "not_owner"


class NotAuthorizedCaller(LedgerError):
    code = "not_authorized_caller"


class DuplicateEntity(LedgerError):
    code = "duplicate_entity"


class UnknownAirline(LedgerError):
    code = "unknown_airline"


class InvalidCallerState(LedgerError):
    """Caller lacks the airline role (Actived / Registered) the operation requires."""

    code = "invalid_caller_state"


class InvalidAirlineState(LedgerError):
    """Target airline is not in the state the operation requires."""

    code = "invalid_airline_state"


class AlreadyApproved(LedgerError):
    code = "already_approved"


class InvalidPayment(LedgerError):
    code = "invalid_payment"


class InsufficientStake(LedgerError):
    code = "insufficient_stake"


class ExcessPayment(LedgerError):
    code = "excess_payment"


class AlreadyPurchased(LedgerError):
    code = "already_purchased"


class FlightAlreadyProcessed(LedgerError):
    code = "flight_already_processed"


class NoPositiveCredit(LedgerError):
    code = "no_positive_credit"


class InsufficientCustody(LedgerError):
    code = "insufficient_custody"


class ReentrancyDetected(LedgerError):
    code = "reentrancy_detected"


class ConcurrentUpdate(LedgerError):
    """Another transaction changed a row this operation read; retrying is safe."""

    code = "concurrent_update"


class DuplicateEvent(LedgerError):
    code = "duplicate_event"
