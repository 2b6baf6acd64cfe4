"""
Ledger Repository

The ledger store: typed reads and writes over ledger tables.
Engines mutate state only through this class. It never commits; the
ledger facade owns the transaction boundary.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, bindparam, func, text, update
from sqlalchemy.orm import Session

from surety_engine.errors import LedgerNotDeployed
from surety_engine.persistence.models import (
    LEDGER_STATE_ID,
    Airline,
    AirlineApproval,
    AirlineState,
    AuthorizedCaller,
    Credit,
    Flight,
    InsurancePosition,
    LedgerState,
    OutboxMessage,
    ProcessedEvent,
)


class LedgerRepository:
    """Repository for ledger-owned tables."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Global state
    # =========================================================================

    def get_state(self) -> LedgerState:
        state = self.db.get(LedgerState, LEDGER_STATE_ID)
        if state is None:
            raise LedgerNotDeployed("Ledger has not been deployed")
        return state

    def has_state(self) -> bool:
        return self.db.get(LedgerState, LEDGER_STATE_ID) is not None

    def create_state(self, owner: str, operational: bool = True) -> LedgerState:
        state = LedgerState(
            id=LEDGER_STATE_ID,
            owner=owner,
            operational=operational,
            total_actived_airlines=0,
            custody_balance="0",
        )
        self.db.add(state)
        self.db.flush()
        return state

    def set_operational(self, mode: bool) -> None:
        self.get_state().operational = mode
        self.db.flush()

    def increment_actived_airlines(self) -> int:
        state = self.get_state()
        state.total_actived_airlines += 1
        self.db.flush()
        return state.total_actived_airlines

    def get_custody_balance(self) -> int:
        return int(self.get_state().custody_balance)

    def adjust_custody(self, delta: int) -> int:
        """Add delta (may be negative) to the custody balance."""
        state = self.get_state()
        balance = int(state.custody_balance) + delta
        state.custody_balance = str(balance)
        self.db.flush()
        return balance

    # =========================================================================
    # Authorized callers
    # =========================================================================

    def is_authorized_caller(self, address: str) -> bool:
        return self.db.get(AuthorizedCaller, address) is not None

    def add_authorized_caller(self, address: str) -> bool:
        """Returns False if the address was already authorized."""
        if self.is_authorized_caller(address):
            return False
        self.db.add(AuthorizedCaller(address=address))
        self.db.flush()
        return True

    def remove_authorized_caller(self, address: str) -> bool:
        """Returns False if the address was not authorized."""
        caller = self.db.get(AuthorizedCaller, address)
        if caller is None:
            return False
        self.db.delete(caller)
        self.db.flush()
        return True

    def list_authorized_callers(self) -> list[str]:
        rows = self.db.query(AuthorizedCaller.address).order_by(AuthorizedCaller.address).all()
        return [row[0] for row in rows]

    # =========================================================================
    # Airlines
    # =========================================================================

    def get_airline(self, address: str) -> Airline | None:
        return self.db.get(Airline, address)

    def create_airline(
        self,
        address: str,
        name: str,
        state: AirlineState = AirlineState.REGISTERING,
    ) -> Airline:
        airline = Airline(address=address, name=name, state=state.value, staked_fund="0")
        self.db.add(airline)
        self.db.flush()
        return airline

    def set_airline_state(self, airline: Airline, state: AirlineState) -> None:
        airline.state = state.value
        self.db.flush()

    def set_staked_fund(self, airline: Airline, amount: int) -> None:
        airline.staked_fund = str(amount)
        self.db.flush()

    def count_airlines_in_state(self, state: AirlineState) -> int:
        return (
            self.db.query(func.count(Airline.address))
            .filter(Airline.state == state.value)
            .scalar()
        ) or 0

    def list_airlines(self) -> list[Airline]:
        return self.db.query(Airline).order_by(Airline.created_at, Airline.address).all()

    # --- Approvals ---

    def has_approved(self, airline_address: str, approver: str) -> bool:
        return (
            self.db.query(AirlineApproval.id)
            .filter(
                AirlineApproval.airline_address == airline_address,
                AirlineApproval.approver_address == approver,
            )
            .first()
        ) is not None

    def add_approval(self, airline_address: str, approver: str) -> int:
        """Record an approval and return the airline's approval count."""
        self.db.add(AirlineApproval(airline_address=airline_address, approver_address=approver))
        self.db.flush()
        return self.count_approvals(airline_address)

    def count_approvals(self, airline_address: str) -> int:
        return (
            self.db.query(func.count(AirlineApproval.id))
            .filter(AirlineApproval.airline_address == airline_address)
            .scalar()
        ) or 0

    def get_approvers(self, airline_address: str) -> list[str]:
        rows = (
            self.db.query(AirlineApproval.approver_address)
            .filter(AirlineApproval.airline_address == airline_address)
            .order_by(AirlineApproval.id)
            .all()
        )
        return [row[0] for row in rows]

    # =========================================================================
    # Flights
    # =========================================================================

    def get_flight(self, key: str) -> Flight | None:
        return self.db.get(Flight, key)

    def get_or_create_flight(self, key: str, airline: str, flight_id: str, timestamp: int) -> Flight:
        """Flights referenced before registration are created lazily, unregistered."""
        flight = self.get_flight(key)
        if flight is None:
            flight = Flight(
                flight_key=key,
                flight_id=flight_id,
                airline_address=airline,
                timestamp=timestamp,
                registered=False,
                status_code=0,
                processed=False,
            )
            self.db.add(flight)
            self.db.flush()
        return flight

    def upsert_flight(self, key: str, airline: str, flight_id: str, timestamp: int) -> Flight:
        """Write a registered flight record, overwriting any prior record at the key."""
        flight = self.get_or_create_flight(key, airline, flight_id, timestamp)
        flight.flight_id = flight_id
        flight.airline_address = airline
        flight.timestamp = timestamp
        flight.registered = True
        self.db.flush()
        return flight

    def claim_flight_processing(self, flight: Flight, status_code: int) -> bool:
        """
        Mark a flight processed with a conditional UPDATE.

        Only the transaction that flips `processed` from false to true gets
        True back; a concurrent claimer on another connection matches no row.
        """
        result = self.db.execute(
            update(Flight)
            .where(Flight.flight_key == flight.flight_key, Flight.processed.is_(False))
            .values(processed=True, status_code=status_code)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        self.db.expire(flight)
        return True

    # --- Insurance positions ---

    def get_position(self, key: str, insuree: str) -> InsurancePosition | None:
        return (
            self.db.query(InsurancePosition)
            .filter(
                InsurancePosition.flight_key == key,
                InsurancePosition.insuree_address == insuree,
            )
            .first()
        )

    def add_position(self, key: str, insuree: str, amount: int) -> InsurancePosition:
        next_position = (
            self.db.query(func.count(InsurancePosition.id))
            .filter(InsurancePosition.flight_key == key)
            .scalar()
        ) or 0
        position = InsurancePosition(
            flight_key=key,
            insuree_address=insuree,
            position=next_position,
            amount=str(amount),
        )
        self.db.add(position)
        self.db.flush()
        return position

    def list_positions(self, key: str) -> list[InsurancePosition]:
        """Positions for a flight, in purchase order."""
        return (
            self.db.query(InsurancePosition)
            .filter(InsurancePosition.flight_key == key)
            .order_by(InsurancePosition.position)
            .all()
        )

    # =========================================================================
    # Credits
    # =========================================================================

    def get_credit(self, address: str) -> int:
        credit = self.db.get(Credit, address)
        return int(credit.amount) if credit else 0

    def add_credit(self, address: str, amount: int) -> int:
        credit = self.db.get(Credit, address)
        if credit is None:
            credit = Credit(address=address, amount="0")
            self.db.add(credit)
        balance = int(credit.amount) + amount
        credit.amount = str(balance)
        self.db.flush()
        return balance

    def zero_credit(self, address: str) -> None:
        credit = self.db.get(Credit, address)
        if credit is not None:
            credit.amount = "0"
            self.db.flush()

    # =========================================================================
    # Processed events
    # =========================================================================

    def is_event_processed(self, event_id: str) -> bool:
        return self.db.get(ProcessedEvent, event_id) is not None

    def mark_event_processed(self, event_id: str, event_type: str, result: dict[str, Any] | None = None) -> bool:
        """
        Record an event as processed.

        Uses INSERT ... ON CONFLICT DO NOTHING for atomic check-and-set.

        Returns:
            False if the event was already recorded
        """
        inserted = self.db.execute(
            text("""
                INSERT INTO ledger_processed_events (event_id, event_type, processed_at, result)
                VALUES (:event_id, :event_type, :processed_at, :result)
                ON CONFLICT (event_id) DO NOTHING
            """).bindparams(
                bindparam("processed_at", type_=DateTime(timezone=True)),
                bindparam("result", type_=JSON),
            ),
            {
                "event_id": event_id,
                "event_type": event_type,
                "processed_at": datetime.utcnow(),
                "result": result,
            },
        )
        return inserted.rowcount == 1

    # =========================================================================
    # Outbox
    # =========================================================================

    def add_outbox_message(self, message_id: str, stream: str, kind: str, data: dict[str, str]) -> OutboxMessage:
        message = OutboxMessage(message_id=message_id, stream=stream, kind=kind, data=data)
        self.db.add(message)
        self.db.flush()
        return message

    def get_unpublished_outbox(self, limit: int = 100) -> list[OutboxMessage]:
        """
        Oldest unpublished messages, row-locked.

        FOR UPDATE SKIP LOCKED lets several relays run side by side.
        """
        return (
            self.db.query(OutboxMessage)
            .filter(OutboxMessage.published_at.is_(None))
            .order_by(OutboxMessage.id)
            .limit(limit)
            .with_for_update(skip_locked=True)
            .all()
        )

    def mark_outbox_published(self, messages: list[OutboxMessage]) -> int:
        now = datetime.utcnow()
        for message in messages:
            message.published_at = now
        self.db.flush()
        return len(messages)

    def count_unpublished_outbox(self) -> int:
        return (
            self.db.query(func.count(OutboxMessage.id))
            .filter(OutboxMessage.published_at.is_(None))
            .scalar()
        ) or 0
