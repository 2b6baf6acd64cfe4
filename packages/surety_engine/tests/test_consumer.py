"""
Tests for the oracle status consumer.
"""

from unittest.mock import MagicMock

import pytest

from conftest import FIRST_AIRLINE, FLIGHT, ORCHESTRATOR, OWNER, PASSENGER, TIMESTAMP
from surety_engine.consumer import OracleStatusConsumer, _process_batch, reclaim_pending_messages
from surety_engine.contracts.envelope import EventEnvelope
from surety_engine.contracts.payloads import FlightStatusConfirmedPayload
from surety_engine.contracts.types import EventType
from surety_engine.errors import ConcurrentUpdate, DuplicateEvent, NotAuthorizedCaller
from surety_engine.persistence.models import ProcessedEvent

STREAM = "flightsurety:oracle:status"
GROUP = "ledger"


def status_envelope(status_code=20, **overrides):
    payload = {
        "airline": FIRST_AIRLINE,
        "flight_id": FLIGHT,
        "timestamp": TIMESTAMP,
        "status_code": status_code,
    }
    payload.update(overrides)
    return EventEnvelope.create(EventType.FLIGHT_STATUS_CONFIRMED.value, payload)


@pytest.fixture
def consumer(actived_ledger):
    actived_ledger.register_flight(FIRST_AIRLINE, FLIGHT, TIMESTAMP)
    actived_ledger.buy_insurance(PASSENGER, FIRST_AIRLINE, FLIGHT, TIMESTAMP, 100)
    return OracleStatusConsumer(actived_ledger, ORCHESTRATOR)


class TestFlightStatusPayload:
    def test_fault_derived_from_status_code(self):
        assert FlightStatusConfirmedPayload(
            airline=FIRST_AIRLINE, flight_id=FLIGHT, timestamp=TIMESTAMP, status_code=20
        ).is_airline_fault is True
        assert FlightStatusConfirmedPayload(
            airline=FIRST_AIRLINE, flight_id=FLIGHT, timestamp=TIMESTAMP, status_code=30
        ).is_airline_fault is False

    def test_explicit_fault_wins(self):
        payload = FlightStatusConfirmedPayload(
            airline=FIRST_AIRLINE, flight_id=FLIGHT, timestamp=TIMESTAMP, status_code=0, is_airline_fault=True
        )
        assert payload.is_airline_fault is True


class TestProcessEnvelope:
    """Tests for OracleStatusConsumer.process_envelope."""

    def test_applies_status(self, consumer, actived_ledger):
        result = consumer.process_envelope(status_envelope())

        assert result["status"] == "processed"
        assert actived_ledger.get_credit(PASSENGER) == 150
        assert actived_ledger.repo.is_event_processed(result["event_id"])

    def test_same_event_applied_once(self, consumer, actived_ledger):
        envelope = status_envelope()
        consumer.process_envelope(envelope)

        result = consumer.process_envelope(envelope)

        assert result == {"event_id": str(envelope.event_id), "status": "skipped", "reason": "already_processed"}
        assert actived_ledger.get_credit(PASSENGER) == 150

    def test_second_status_for_flight_is_terminal(self, consumer, actived_ledger):
        """Test a duplicate status from a different event is recorded and skipped."""
        consumer.process_envelope(status_envelope())

        result = consumer.process_envelope(status_envelope(status_code=10))

        assert result["status"] == "skipped"
        assert result["reason"] == "flight_already_processed"
        assert actived_ledger.repo.is_event_processed(result["event_id"])
        assert actived_ledger.get_credit(PASSENGER) == 150

    def test_invalid_payload_skipped(self, consumer, actived_ledger):
        envelope = EventEnvelope.create(EventType.FLIGHT_STATUS_CONFIRMED.value, {"airline": FIRST_AIRLINE})

        result = consumer.process_envelope(envelope)

        assert result["reason"] == "invalid_payload"
        assert actived_ledger.repo.is_event_processed(str(envelope.event_id))

    def test_unknown_event_type_skipped(self, consumer):
        envelope = EventEnvelope.create(EventType.CREDIT_PAYOUT.value, {})

        assert consumer.process_envelope(envelope)["reason"] == "unknown_event_type"

    def test_unauthorized_orchestrator_raises(self, consumer, actived_ledger):
        """Test a retryable rejection propagates and the event stays unrecorded."""
        actived_ledger.deauthorize_caller(OWNER, ORCHESTRATOR)
        envelope = status_envelope()

        with pytest.raises(NotAuthorizedCaller):
            consumer.process_envelope(envelope)

        assert actived_ledger.repo.is_event_processed(str(envelope.event_id)) is False
        assert actived_ledger.get_credit(PASSENGER) == 0

    def test_marker_commits_with_credit(self, consumer, actived_ledger, monkeypatch):
        """Test a failed commit loses the marker and the credit together, so a redelivery applies once."""
        db = actived_ledger.db
        real_commit = db.commit
        attempts = []

        def commit_failing_once():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("connection lost during commit")
            real_commit()

        monkeypatch.setattr(db, "commit", commit_failing_once)
        envelope = status_envelope()

        with pytest.raises(RuntimeError):
            consumer.process_envelope(envelope)

        assert actived_ledger.repo.is_event_processed(str(envelope.event_id)) is False
        assert actived_ledger.get_credit(PASSENGER) == 0

        assert consumer.process_envelope(envelope)["status"] == "processed"
        assert consumer.process_envelope(envelope)["reason"] == "already_processed"
        assert actived_ledger.get_credit(PASSENGER) == 150

    def test_stale_duplicate_check_does_not_double_credit(self, consumer, actived_ledger, monkeypatch):
        """Test two workers that both passed the processed check credit once."""
        envelope = status_envelope()
        consumer.process_envelope(envelope)
        monkeypatch.setattr(actived_ledger.repo, "is_event_processed", lambda event_id: False)

        result = consumer.process_envelope(envelope)

        assert result["status"] == "skipped"
        assert actived_ledger.get_credit(PASSENGER) == 150


class TestEventMarker:
    """Tests for recording applied events inside the ledger operation."""

    def test_marker_insert_is_idempotent(self, actived_ledger):
        repo = actived_ledger.repo

        assert repo.mark_event_processed("evt-1", EventType.FLIGHT_STATUS_CONFIRMED.value, {"status": "processed"})
        assert repo.mark_event_processed("evt-1", EventType.FLIGHT_STATUS_CONFIRMED.value, {"status": "processed"}) is False
        assert repo.is_event_processed("evt-1")

    def test_recorded_event_aborts_settlement(self, consumer, actived_ledger):
        """Test settling under an already recorded event id changes nothing."""
        actived_ledger.repo.mark_event_processed("evt-2", EventType.FLIGHT_STATUS_CONFIRMED.value)
        actived_ledger.db.commit()

        with pytest.raises(DuplicateEvent):
            actived_ledger.process_flight_status(
                ORCHESTRATOR, FIRST_AIRLINE, FLIGHT, TIMESTAMP, 20, True, event_id="evt-2"
            )

        assert actived_ledger.get_credit(PASSENGER) == 0
        assert actived_ledger.get_flight(FIRST_AIRLINE, FLIGHT, TIMESTAMP)["processed"] is False

    def test_marker_carries_settlement_summary(self, consumer, actived_ledger):
        result = consumer.process_envelope(status_envelope())

        marker = actived_ledger.db.get(ProcessedEvent, result["event_id"])
        assert marker.result == {
            "status": "processed",
            "flight_key": result["result"]["flight_key"],
            "credited": {PASSENGER: "150"},
        }


class TestProcessBatch:
    """Tests for acknowledgement behaviour."""

    def test_acks_processed_messages(self, consumer):
        client = MagicMock()
        messages = [("1-0", status_envelope().to_stream_data())]

        count = _process_batch(consumer, messages, STREAM, GROUP, client)

        assert count == 1
        client.xack.assert_called_once_with(STREAM, GROUP, "1-0")

    def test_rejected_message_not_acked(self, consumer, actived_ledger):
        actived_ledger.set_operational_status(OWNER, False)
        client = MagicMock()
        messages = [("1-0", status_envelope().to_stream_data())]

        count = _process_batch(consumer, messages, STREAM, GROUP, client)

        assert count == 0
        client.xack.assert_not_called()

    def test_conflicting_update_not_acked(self, consumer, actived_ledger, monkeypatch):
        """Test a message whose settlement conflicted with another worker is redelivered."""

        def conflict(*args, **kwargs):
            raise ConcurrentUpdate("Ledger state changed concurrently, retry the operation")

        monkeypatch.setattr(actived_ledger, "process_flight_status", conflict)
        client = MagicMock()
        envelope = status_envelope()

        count = _process_batch(consumer, [("1-0", envelope.to_stream_data())], STREAM, GROUP, client)

        assert count == 0
        client.xack.assert_not_called()
        assert actived_ledger.repo.is_event_processed(str(envelope.event_id)) is False

    def test_malformed_message_not_acked(self, consumer):
        client = MagicMock()

        count = _process_batch(consumer, [("1-0", {"event_type": "x"})], STREAM, GROUP, client)

        assert count == 0
        client.xack.assert_not_called()

    def test_reclaim_processes_idle_messages(self, consumer, actived_ledger):
        client = MagicMock()
        client.xpending.return_value = {"pending": 1}
        client.xpending_range.return_value = [
            {"message_id": "1-0", "consumer": "dead", "time_since_delivered": 120000, "times_delivered": 1}
        ]
        client.xclaim.return_value = [("1-0", status_envelope().to_stream_data())]

        count = reclaim_pending_messages(consumer, STREAM, GROUP, min_idle_ms=60000, client=client)

        assert count == 1
        client.xclaim.assert_called_once_with(STREAM, GROUP, "ledger-worker", 60000, ["1-0"])
        assert actived_ledger.get_credit(PASSENGER) == 150

    def test_reclaim_nothing_pending(self, consumer):
        client = MagicMock()
        client.xpending.return_value = {"pending": 0}

        assert reclaim_pending_messages(consumer, STREAM, GROUP, client=client) == 0
        client.xclaim.assert_not_called()
