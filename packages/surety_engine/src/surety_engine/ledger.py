"""
FlightSurety Ledger

Facade that owns the ledger state and exposes every entry point.

Each mutating call is one operation:
1. Serialized through a re-entrant lock
2. Wrapped in the reentrancy guard when it moves funds
3. Run by exactly one engine against the shared repository
4. Committed as a single transaction together with its staged events,
   then the events are delivered

Any exception inside the operation rolls the transaction back and discards
its pending events. Operations invoked from inside another operation (for
example by a payment recipient during a transfer) join the outer
transaction and never commit on their own.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator
from uuid import uuid4

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from suretycore.settings import get_settings
from surety_engine.contracts.types import EventType
from surety_engine.engines import FlightRegistry, FundingEngine, GovernanceEngine, InsuranceEngine
from surety_engine.errors import ConcurrentUpdate, DuplicateEntity, DuplicateEvent, LedgerError
from surety_engine.guards import AccessControl, ReentrancyGuard
from surety_engine.keys import flight_key
from surety_engine.notifications import EventBuffer, InMemoryNotifier, Notifier
from surety_engine.payments import PaymentGateway, RecordingPaymentGateway
from surety_engine.persistence.models import AirlineState
from surety_engine.persistence.repo import LedgerRepository

logger = logging.getLogger(__name__)


class FlightSuretyLedger:
    """
    The ledger / state-machine engine.

    Args:
        db: Session bound to the ledger database
        notifier: Receives committed events (defaults to an in-memory collector)
        gateway: Outward transfer channel (defaults to a recording gateway)
        min_fund: Minimum airline stake in wei (defaults to settings)
        max_insurance: Per-purchase insurance cap in wei (defaults to settings)
    """

    def __init__(
        self,
        db: Session,
        notifier: Notifier | None = None,
        gateway: PaymentGateway | None = None,
        min_fund: int | None = None,
        max_insurance: int | None = None,
    ):
        settings = get_settings()

        self.db = db
        self.repo = LedgerRepository(db)
        self.access = AccessControl(self.repo)
        self.events = EventBuffer()
        self.notifier = notifier or InMemoryNotifier()
        self.gateway = gateway or RecordingPaymentGateway()
        self.reentrancy = ReentrancyGuard()

        self.min_fund = settings.MIN_AIRLINE_FUND if min_fund is None else min_fund
        self.max_insurance = settings.MAX_INSURANCE if max_insurance is None else max_insurance

        self.governance = GovernanceEngine(self.repo, self.access, self.events)
        self.funding = FundingEngine(self.repo, self.access, self.events, self.gateway, self.min_fund)
        self.flights = FlightRegistry(self.repo, self.access, self.events)
        self.insurance = InsuranceEngine(self.repo, self.access, self.events, self.gateway, self.max_insurance)

        self._lock = threading.RLock()
        self._depth = 0

    @classmethod
    def deploy(
        cls,
        db: Session,
        owner: str,
        first_airline: str,
        first_airline_name: str,
        **kwargs: Any,
    ) -> "FlightSuretyLedger":
        """
        Initialize ledger state: owner, operational flag and the first airline.

        The first airline starts REGISTERED; it still has to submit its fund.
        """
        ledger = cls(db, **kwargs)
        with ledger._operation("deploy", owner):
            if ledger.repo.has_state():
                raise DuplicateEntity("Ledger already deployed")
            ledger.repo.create_state(owner)
            ledger.repo.create_airline(first_airline, first_airline_name, AirlineState.REGISTERED)
        return ledger

    # =========================================================================
    # Operation boundary
    # =========================================================================

    @contextmanager
    def _operation(self, name: str, caller: str, guarded: bool = False) -> Iterator[None]:
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self.events.correlation_id = uuid4().hex
            self._depth += 1
            try:
                if guarded:
                    with self.reentrancy.guard(name):
                        yield
                else:
                    yield
            except LedgerError as e:
                if outermost:
                    self._abort()
                    logger.warning(
                        f"Ledger operation rejected: {name} ({e.code})",
                        extra={"operation": name, "caller": caller, **e.to_dict()},
                    )
                raise
            except StaleDataError as e:
                if outermost:
                    self._abort()
                    logger.warning(
                        f"Ledger operation conflicted: {name}",
                        extra={"operation": name, "caller": caller, "error": str(e)},
                    )
                raise ConcurrentUpdate("Ledger state changed concurrently, retry the operation", operation=name) from e
            except Exception as e:
                if outermost:
                    self._abort()
                    logger.error(
                        f"Ledger operation failed: {name}",
                        extra={"operation": name, "caller": caller, "error": str(e)},
                        exc_info=True,
                    )
                raise
            finally:
                self._depth -= 1

            if outermost:
                self._commit(name, caller)

    def _abort(self) -> None:
        self.db.rollback()
        self.events.discard()
        self.gateway.discard()

    def _commit(self, name: str, caller: str) -> None:
        events = self.events.drain()
        try:
            for envelope in events:
                self.notifier.stage(envelope)
            self.db.commit()
        except StaleDataError as e:
            self._abort()
            raise ConcurrentUpdate("Ledger state changed concurrently, retry the operation", operation=name) from e
        except Exception:
            self._abort()
            logger.error(f"Ledger commit failed: {name}", extra={"operation": name, "caller": caller}, exc_info=True)
            raise

        self.gateway.confirm()
        logger.info(
            f"Ledger operation committed: {name}",
            extra={"operation": name, "caller": caller, "events": [e.event_type for e in events]},
        )

        for envelope in events:
            try:
                self.notifier.publish(envelope)
            except Exception as e:
                # State is already committed; staged notifiers keep their own durable copy
                logger.error(
                    f"Failed to deliver event {envelope.event_id}",
                    extra={"event_id": str(envelope.event_id), "event_type": envelope.event_type, "error": str(e)},
                    exc_info=True,
                )

    # =========================================================================
    # Access & circuit breaker
    # =========================================================================

    def set_operational_status(self, caller: str, mode: bool) -> None:
        with self._operation("set_operational_status", caller):
            self.access.require_owner(caller)
            self.repo.set_operational(mode)

    def authorize_caller(self, caller: str, address: str) -> bool:
        with self._operation("authorize_caller", caller):
            self.access.require_operational()
            self.access.require_owner(caller)
            added = self.repo.add_authorized_caller(address)
        return added

    def deauthorize_caller(self, caller: str, address: str) -> bool:
        with self._operation("deauthorize_caller", caller):
            self.access.require_operational()
            self.access.require_owner(caller)
            removed = self.repo.remove_authorized_caller(address)
        return removed

    # =========================================================================
    # Governance
    # =========================================================================

    def register_airline(self, caller: str, new_address: str, name: str) -> dict[str, Any]:
        with self._operation("register_airline", caller):
            result = self.governance.register_airline(caller, new_address, name)
        return result

    def approve_registration(self, caller: str, airline_address: str) -> dict[str, Any]:
        with self._operation("approve_registration", caller):
            result = self.governance.approve_registration(caller, airline_address)
        return result

    # =========================================================================
    # Funding
    # =========================================================================

    def submit_fund(self, caller: str, value: int) -> dict[str, Any]:
        with self._operation("submit_fund", caller, guarded=True):
            result = self.funding.submit_fund(caller, value)
        return result

    # =========================================================================
    # Flights
    # =========================================================================

    def register_flight(self, caller: str, flight_id: str, timestamp: int) -> dict[str, Any]:
        with self._operation("register_flight", caller):
            result = self.flights.register_flight(caller, flight_id, timestamp)
        return result

    # =========================================================================
    # Insurance & settlement
    # =========================================================================

    def buy_insurance(self, caller: str, airline: str, flight_id: str, timestamp: int, value: int) -> dict[str, Any]:
        with self._operation("buy_insurance", caller, guarded=True):
            result = self.insurance.buy_insurance(caller, airline, flight_id, timestamp, value)
        return result

    def process_flight_status(
        self,
        caller: str,
        airline: str,
        flight_id: str,
        timestamp: int,
        status_code: int,
        is_airline_fault: bool,
        event_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Settle a flight.

        When `event_id` names the inbound event carrying this status, the
        event is recorded as processed in the same transaction; a second
        delivery of it raises DuplicateEvent and changes nothing.
        """
        with self._operation("process_flight_status", caller):
            result = self.insurance.process_flight_status(
                caller, airline, flight_id, timestamp, status_code, is_airline_fault
            )
            if event_id is not None:
                self._record_event(event_id, result)
        return result

    def _record_event(self, event_id: str, result: dict[str, Any]) -> None:
        summary = {
            "status": "processed",
            "flight_key": result["flight_key"],
            "credited": {k: str(v) for k, v in result["credited"].items()},
        }
        if not self.repo.mark_event_processed(event_id, EventType.FLIGHT_STATUS_CONFIRMED.value, summary):
            raise DuplicateEvent("Event already applied", event_id=event_id)

    def withdraw(self, caller: str) -> dict[str, Any]:
        with self._operation("withdraw", caller, guarded=True):
            result = self.insurance.withdraw(caller)
        return result

    pay = withdraw

    # =========================================================================
    # Reads
    # =========================================================================

    def is_operational(self) -> bool:
        with self._lock:
            return self.repo.get_state().operational

    def owner(self) -> str:
        with self._lock:
            return self.repo.get_state().owner

    def total_actived_airlines(self) -> int:
        with self._lock:
            return self.repo.get_state().total_actived_airlines

    def custody_balance(self) -> int:
        with self._lock:
            return self.repo.get_custody_balance()

    def is_authorized_caller(self, address: str) -> bool:
        with self._lock:
            return self.repo.is_authorized_caller(address)

    def is_airline(self, address: str) -> bool:
        """True once the airline has passed consensus (REGISTERED or ACTIVED)."""
        with self._lock:
            airline = self.repo.get_airline(address)
            return airline is not None and airline.state != AirlineState.REGISTERING.value

    def is_actived_airline(self, address: str) -> bool:
        with self._lock:
            airline = self.repo.get_airline(address)
            return airline is not None and airline.state == AirlineState.ACTIVED.value

    def get_airline(self, address: str) -> dict[str, Any] | None:
        with self._lock:
            airline = self.repo.get_airline(address)
            if airline is None:
                return None
            return {
                "address": airline.address,
                "name": airline.name,
                "state": airline.state,
                "staked_fund": int(airline.staked_fund),
                "approvals": self.repo.get_approvers(address),
            }

    def list_airlines(self) -> list[dict[str, Any]]:
        with self._lock:
            return [
                {
                    "address": a.address,
                    "name": a.name,
                    "state": a.state,
                    "staked_fund": int(a.staked_fund),
                    "approvals": self.repo.count_approvals(a.address),
                }
                for a in self.repo.list_airlines()
            ]

    def flight_key(self, airline: str, flight_id: str, timestamp: int) -> str:
        return flight_key(airline, flight_id, timestamp)

    def get_flight(self, airline: str, flight_id: str, timestamp: int) -> dict[str, Any] | None:
        with self._lock:
            key = flight_key(airline, flight_id, timestamp)
            flight = self.repo.get_flight(key)
            if flight is None:
                return None
            return {
                "flight_key": key,
                "flight_id": flight.flight_id,
                "airline": flight.airline_address,
                "timestamp": flight.timestamp,
                "registered": flight.registered,
                "status_code": flight.status_code,
                "processed": flight.processed,
                "insurees": [p.insuree_address for p in self.repo.list_positions(key)],
            }

    def get_insurees(self, airline: str, flight_id: str, timestamp: int) -> list[str]:
        with self._lock:
            key = flight_key(airline, flight_id, timestamp)
            return [p.insuree_address for p in self.repo.list_positions(key)]

    def get_insurance_amount(self, airline: str, flight_id: str, timestamp: int, insuree: str) -> int:
        with self._lock:
            position = self.repo.get_position(flight_key(airline, flight_id, timestamp), insuree)
            return int(position.amount) if position else 0

    def get_credit(self, address: str) -> int:
        with self._lock:
            return self.repo.get_credit(address)
