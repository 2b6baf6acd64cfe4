"""
Ledger notifications.

Engines emit events into an EventBuffer while an operation runs. When the
operation succeeds the ledger first stages every buffered envelope with its
notifier inside the transaction, then commits, then publishes them. A
rolled-back operation discards them. The engine does not know how notifiers
deliver events.
"""

import logging
from typing import Any

from sqlalchemy.orm import Session

from surety_engine.contracts.envelope import EventEnvelope
from surety_engine.contracts.types import EventType
from surety_engine.persistence.repo import LedgerRepository

logger = logging.getLogger(__name__)


class EventBuffer:
    """Pending events of the operation in flight."""

    def __init__(self):
        self._pending: list[EventEnvelope] = []
        self.correlation_id: str | None = None

    def emit(self, event_type: EventType, payload: dict[str, Any]) -> EventEnvelope:
        envelope = EventEnvelope.create(
            event_type=event_type.value,
            payload=payload,
            correlation_id=self.correlation_id,
        )
        self._pending.append(envelope)
        return envelope

    def drain(self) -> list[EventEnvelope]:
        events, self._pending = self._pending, []
        return events

    def discard(self) -> int:
        count = len(self._pending)
        self._pending = []
        return count

    def __len__(self) -> int:
        return len(self._pending)


class Notifier:
    """Delivery channel for committed ledger events."""

    def stage(self, envelope: EventEnvelope) -> None:
        """Called inside the operation's transaction, right before commit."""

    def publish(self, envelope: EventEnvelope) -> None:
        raise NotImplementedError


class InMemoryNotifier(Notifier):
    """Keeps every published envelope; used by the CLI and tests."""

    def __init__(self):
        self.events: list[EventEnvelope] = []

    def publish(self, envelope: EventEnvelope) -> None:
        self.events.append(envelope)

    def of_type(self, event_type: EventType) -> list[EventEnvelope]:
        return [e for e in self.events if e.event_type == event_type.value]

    def types(self) -> list[str]:
        return [e.event_type for e in self.events]

    def clear(self) -> None:
        self.events.clear()


class OutboxNotifier(Notifier):
    """
    Writes envelopes to the ledger outbox in the operation's transaction.

    The outbox relay publishes them to `stream_name`, so an event exists
    exactly when the state change that produced it was committed.
    """

    def __init__(self, db: Session, stream_name: str):
        self.repo = LedgerRepository(db)
        self.stream_name = stream_name

    def stage(self, envelope: EventEnvelope) -> None:
        self.repo.add_outbox_message(
            str(envelope.event_id),
            self.stream_name,
            "event",
            envelope.to_stream_data(),
        )

    def publish(self, envelope: EventEnvelope) -> None:
        logger.debug(
            f"Event {envelope.event_id} queued in outbox",
            extra={"stream": self.stream_name, "event_type": envelope.event_type},
        )
