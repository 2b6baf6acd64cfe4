"""
Event Envelope - Standard wrapper for ledger events.

The ledger wraps every notification in this envelope before handing it to a
notifier; the oracle service uses the same envelope to publish confirmed
flight statuses to Redis Streams.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4


@dataclass
class EventEnvelope:
    """
    Standard event envelope.

    Attributes:
        event_id: Unique identifier for this event instance
        event_type: Type of event (EventType value)
        occurred_at: When the event occurred (UTC)
        payload: Self-contained event data
        version: Event contract version (for schema evolution)
        correlation_id: Optional correlation ID for tracing (the operation id)
        metadata: Optional metadata (stream message id, source, etc.)
    """

    event_id: UUID
    event_type: str
    occurred_at: datetime
    payload: dict[str, Any]
    version: int = 1
    correlation_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        event_type: str,
        payload: dict[str, Any],
        correlation_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> "EventEnvelope":
        """Create a new envelope with auto-generated event_id and timestamp."""
        return cls(
            event_id=uuid4(),
            event_type=str(event_type),
            occurred_at=datetime.utcnow(),
            payload=payload,
            correlation_id=correlation_id,
            metadata=metadata or {},
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EventEnvelope":
        """Create an EventEnvelope from a dictionary."""
        return cls(
            event_id=UUID(data["event_id"]) if isinstance(data["event_id"], str) else data["event_id"],
            event_type=data["event_type"],
            occurred_at=(
                datetime.fromisoformat(data["occurred_at"])
                if isinstance(data["occurred_at"], str)
                else data["occurred_at"]
            ),
            version=int(data.get("version", 1)),
            payload=data.get("payload", {}),
            correlation_id=data.get("correlation_id"),
            metadata=data.get("metadata", {}),
        )

    @classmethod
    def from_stream_message(cls, msg_id: str, data: dict[str, str]) -> "EventEnvelope":
        """Parse a Redis Stream message into an envelope."""
        metadata = json.loads(data.get("metadata") or "{}")
        metadata["stream_msg_id"] = msg_id

        return cls(
            event_id=UUID(data["event_id"]),
            event_type=data["event_type"],
            occurred_at=(
                datetime.fromisoformat(data["occurred_at"])
                if data.get("occurred_at")
                else datetime.utcnow()
            ),
            version=int(data.get("version", "1")),
            payload=json.loads(data.get("payload") or "{}"),
            correlation_id=data.get("correlation_id") or None,
            metadata=metadata,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type,
            "occurred_at": self.occurred_at.isoformat(),
            "version": self.version,
            "payload": self.payload,
            "correlation_id": self.correlation_id,
            "metadata": self.metadata,
        }

    def to_stream_data(self) -> dict[str, str]:
        """Convert to a flat dict suitable for XADD (all string values)."""
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type,
            "occurred_at": self.occurred_at.isoformat(),
            "version": str(self.version),
            "payload": json.dumps(self.payload),
            "correlation_id": self.correlation_id or "",
            "metadata": json.dumps(self.metadata),
        }
