"""
Oracle Status Consumer

Orchestration boundary of the ledger. Reads flight_status_confirmed events
that the oracle service publishes to Redis Streams after reaching its own
quorum, and forwards each one to process_flight_status as the authorized
orchestrator principal.

Features:
- Consumer group support (XREADGROUP) for horizontal scaling
- Idempotency via the ledger_processed_events table, written in the same
  transaction as the settlement
- XACK only after the ledger committed (or definitively rejected) the event
"""

import logging
from typing import Any

import redis
from pydantic import ValidationError

from suretycore.redis import ack_message, claim_messages, get_pending_messages, read_from_stream
from surety_engine.contracts.envelope import EventEnvelope
from surety_engine.contracts.payloads import FlightStatusConfirmedPayload
from surety_engine.contracts.types import EventType
from surety_engine.errors import DuplicateEvent, FlightAlreadyProcessed, LedgerError
from surety_engine.ledger import FlightSuretyLedger

logger = logging.getLogger(__name__)

DEFAULT_STREAM_NAME = "flightsurety:oracle:status"
DEFAULT_GROUP_NAME = "ledger"

# Rejections that will never succeed on redelivery; the message is acked
TERMINAL_REJECTIONS = (FlightAlreadyProcessed,)


class OracleStatusConsumer:
    """
    Applies oracle-confirmed flight statuses to the ledger.

    Args:
        ledger: Ledger the statuses are applied to
        orchestrator: Principal used as caller; must be an authorized caller
    """

    def __init__(self, ledger: FlightSuretyLedger, orchestrator: str):
        self.ledger = ledger
        self.orchestrator = orchestrator

    def process_envelope(self, envelope: EventEnvelope) -> dict[str, Any]:
        """
        Process a single envelope.

        1. Skip if the event was already applied
        2. Validate the payload
        3. Call process_flight_status, which records the event as processed
           in the same transaction

        Returns:
            Processing result dict
        """
        event_id = str(envelope.event_id)
        repo = self.ledger.repo

        if envelope.event_type != EventType.FLIGHT_STATUS_CONFIRMED.value:
            logger.warning(f"Unknown event type: {envelope.event_type}", extra={"event_id": event_id})
            return {"event_id": event_id, "status": "skipped", "reason": "unknown_event_type"}

        if repo.is_event_processed(event_id):
            logger.debug(f"Event {event_id} already processed, skipping")
            return {"event_id": event_id, "status": "skipped", "reason": "already_processed"}

        try:
            payload = FlightStatusConfirmedPayload.model_validate(envelope.payload)
        except ValidationError as e:
            logger.warning(
                f"Invalid flight status payload in event {event_id}",
                extra={"event_id": event_id, "errors": e.errors()},
            )
            self._record(event_id, {"status": "invalid"})
            return {"event_id": event_id, "status": "skipped", "reason": "invalid_payload"}

        try:
            result = self.ledger.process_flight_status(
                self.orchestrator,
                payload.airline,
                payload.flight_id,
                payload.timestamp,
                payload.status_code,
                payload.is_airline_fault,
                event_id=event_id,
            )
        except DuplicateEvent:
            logger.debug(f"Event {event_id} was processed by another worker")
            return {"event_id": event_id, "status": "skipped", "reason": "already_processed"}
        except TERMINAL_REJECTIONS as e:
            self._record(event_id, {"status": "rejected", "code": e.code})
            return {"event_id": event_id, "status": "skipped", "reason": e.code}

        logger.info(
            f"Applied flight status from event {event_id}",
            extra={"event_id": event_id, "flight_key": result["flight_key"], "credited": len(result["credited"])},
        )

        return {"event_id": event_id, "status": "processed", "result": result}

    def _record(self, event_id: str, result: dict[str, Any]) -> None:
        """Record a skipped event; skips change no ledger state."""
        repo = self.ledger.repo
        try:
            repo.mark_event_processed(event_id, EventType.FLIGHT_STATUS_CONFIRMED.value, result)
            self.ledger.db.commit()
        except Exception:
            self.ledger.db.rollback()
            raise


def consume_from_stream(
    consumer: OracleStatusConsumer,
    stream_name: str = DEFAULT_STREAM_NAME,
    group_name: str = DEFAULT_GROUP_NAME,
    consumer_name: str = "ledger-worker",
    count: int = 10,
    block_ms: int = 5000,
    client: redis.Redis | None = None,
) -> int:
    """
    Consume and process new messages from the oracle status stream.

    Returns:
        Number of messages processed and acknowledged
    """
    messages = read_from_stream(
        stream_name,
        group_name,
        consumer_name,
        count=count,
        block_ms=block_ms,
        client=client,
    )
    return _process_batch(consumer, messages, stream_name, group_name, client)


def reclaim_pending_messages(
    consumer: OracleStatusConsumer,
    stream_name: str = DEFAULT_STREAM_NAME,
    group_name: str = DEFAULT_GROUP_NAME,
    consumer_name: str = "ledger-worker",
    min_idle_ms: int = 60000,
    count: int = 100,
    client: redis.Redis | None = None,
) -> int:
    """
    Reclaim and process messages left pending by crashed or stuck consumers.

    Idempotency protects against applying a status twice.

    Returns:
        Number of messages reclaimed and processed
    """
    pending = get_pending_messages(stream_name, group_name, min_idle_ms, count, client=client)
    if not pending:
        return 0

    message_ids = [p["message_id"] for p in pending]
    claimed = claim_messages(stream_name, group_name, consumer_name, message_ids, min_idle_ms, client=client)
    if not claimed:
        return 0

    logger.info(f"Reclaimed {len(claimed)} pending messages")

    return _process_batch(consumer, claimed, stream_name, group_name, client)


def _process_batch(
    consumer: OracleStatusConsumer,
    messages: list[tuple[str, dict[str, str]]],
    stream_name: str,
    group_name: str,
    client: redis.Redis | None,
) -> int:
    processed_count = 0

    for msg_id, data in messages:
        try:
            envelope = EventEnvelope.from_stream_message(msg_id, data)
            result = consumer.process_envelope(envelope)

            ack_message(stream_name, group_name, msg_id, client=client)
            processed_count += 1

            logger.debug(f"ACKed message {msg_id}", extra={"msg_id": msg_id, "result": result})

        except LedgerError as e:
            # Not acked: redelivered once the ledger accepts it (e.g. re-enabled or caller authorized)
            logger.warning(
                f"Ledger rejected message {msg_id}: {e.code}",
                extra={"msg_id": msg_id, **e.to_dict()},
            )
        except Exception as e:
            # Not acked: message will be redelivered or reclaimed
            logger.error(
                f"Failed to process message {msg_id}: {e}",
                extra={"msg_id": msg_id},
                exc_info=True,
            )

    return processed_count
