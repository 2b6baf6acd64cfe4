"""
Outbox Relay

Publishes ledger outbox rows (events and transfer instructions) to their
Redis streams and marks them published.

Delivery is at-least-once: a row published right before a failed commit is
published again by the next batch. Readers deduplicate by event_id or
instruction_id.
"""

import logging

import redis
from sqlalchemy.orm import Session

from suretycore.redis import publish_to_stream
from surety_engine.persistence.repo import LedgerRepository

logger = logging.getLogger(__name__)


def relay_batch(
    db: Session,
    batch_size: int = 100,
    max_len: int | None = 100000,
    client: redis.Redis | None = None,
) -> int:
    """
    Relay one batch of unpublished outbox rows.

    Rows that fail to publish stay unpublished and are retried next batch.

    Returns:
        Number of rows published
    """
    repo = LedgerRepository(db)
    messages = repo.get_unpublished_outbox(limit=batch_size)

    if not messages:
        db.rollback()
        return 0

    published = []
    for message in messages:
        try:
            stream_msg_id = publish_to_stream(message.stream, message.data, max_len=max_len, client=client)
            published.append(message)

            logger.debug(
                f"Published outbox message {message.message_id}",
                extra={
                    "message_id": message.message_id,
                    "kind": message.kind,
                    "stream": message.stream,
                    "stream_msg_id": stream_msg_id,
                },
            )
        except redis.RedisError as e:
            logger.error(
                f"Failed to publish outbox message {message.message_id}: {e}",
                extra={"message_id": message.message_id, "stream": message.stream},
                exc_info=True,
            )

    try:
        repo.mark_outbox_published(published)
        db.commit()
    except Exception:
        db.rollback()
        raise

    return len(published)
