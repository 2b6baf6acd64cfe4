"""
Access & circuit-breaker guards.

Guard functions raise a typed LedgerError before any mutation happens.
Operations compose them explicitly at their start, in this order:
operational flag, caller role, then operation-specific preconditions.
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from surety_engine.errors import (
    InvalidCallerState,
    NotAuthorizedCaller,
    NotOperational,
    NotOwner,
    ReentrancyDetected,
)
from surety_engine.persistence.models import Airline, AirlineState
from surety_engine.persistence.repo import LedgerRepository

logger = logging.getLogger(__name__)


class AccessControl:
    """Precondition checks over the ledger store."""

    def __init__(self, repo: LedgerRepository):
        self.repo = repo

    def require_operational(self) -> None:
        if not self.repo.get_state().operational:
            raise NotOperational("Ledger is not operational")

    def require_owner(self, caller: str) -> None:
        if caller != self.repo.get_state().owner:
            raise NotOwner("Caller is not the ledger owner", caller=caller)

    def require_authorized_caller(self, caller: str) -> None:
        if not self.repo.is_authorized_caller(caller):
            raise NotAuthorizedCaller("Caller is not authorized", caller=caller)

    def require_airline_state(self, caller: str, state: AirlineState) -> Airline:
        airline = self.repo.get_airline(caller)
        if airline is None or airline.state != state.value:
            raise InvalidCallerState(
                f"Caller must be an airline in '{state.value}' state",
                caller=caller,
                required_state=state.value,
                actual_state=airline.state if airline else None,
            )
        return airline

    def require_actived_airline(self, caller: str) -> Airline:
        return self.require_airline_state(caller, AirlineState.ACTIVED)

    def require_registered_airline(self, caller: str) -> Airline:
        return self.require_airline_state(caller, AirlineState.REGISTERED)


class ReentrancyGuard:
    """
    Non-reentrant section for fund-moving operations.

    On entry the counter is bumped and remembered; on exit it must be
    unchanged. Any nested entry while a section is in flight bumps the
    counter and is rejected immediately, so the outer section fails on exit
    even if the nested rejection was swallowed by the transfer recipient.
    """

    def __init__(self):
        self.counter = 0
        self._depth = 0

    @contextmanager
    def guard(self, operation: str) -> Iterator[None]:
        self.counter += 1
        local_counter = self.counter

        if self._depth > 0:
            logger.warning(
                f"Nested guarded call rejected: {operation}",
                extra={"operation": operation, "guard_counter": local_counter},
            )
            raise ReentrancyDetected(
                f"Reentrant call to '{operation}' while a guarded operation is in flight",
                operation=operation,
            )

        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1

        if self.counter != local_counter:
            raise ReentrancyDetected(
                f"Guard counter changed during '{operation}'",
                operation=operation,
                expected=local_counter,
                actual=self.counter,
            )
