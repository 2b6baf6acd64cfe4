"""
Redis client utilities for suretycore.

Provides a lazy-initialized Redis client (no import-time connections) and
thin Redis Streams helpers. Every helper accepts an explicit client so that
callers holding their own connection (or a test double) can reuse them.
"""

import functools
from typing import Any

import redis

from suretycore.settings import get_settings


@functools.lru_cache()
def get_redis_client() -> redis.Redis:
    """
    Get Redis client (cached).

    The URL comes from settings.REDIS_URL.
    """
    return redis.from_url(get_settings().REDIS_URL, decode_responses=True)


def ensure_stream_group(
    stream_name: str,
    group_name: str,
    start_id: str = "0",
    client: redis.Redis | None = None,
) -> bool:
    """
    Ensure a consumer group exists for a stream (creating the stream if needed).

    Returns:
        True if the group was created, False if it already existed
    """
    client = client or get_redis_client()
    try:
        client.xgroup_create(stream_name, group_name, id=start_id, mkstream=True)
        return True
    except redis.ResponseError as e:
        if "BUSYGROUP" in str(e):
            return False
        raise


def publish_to_stream(
    stream_name: str,
    data: dict[str, Any],
    max_len: int | None = 10000,
    client: redis.Redis | None = None,
) -> str:
    """
    XADD a message; values are stringified for Redis.

    Returns:
        Message ID assigned by Redis
    """
    client = client or get_redis_client()
    fields = {k: v if isinstance(v, str) else str(v) for k, v in data.items()}

    if max_len:
        return client.xadd(stream_name, fields, maxlen=max_len, approximate=True)
    return client.xadd(stream_name, fields)


def read_from_stream(
    stream_name: str,
    group_name: str,
    consumer_name: str,
    count: int = 10,
    block_ms: int = 5000,
    client: redis.Redis | None = None,
) -> list[tuple[str, dict[str, str]]]:
    """
    XREADGROUP new messages for this consumer.

    Returns:
        List of (message_id, data) tuples
    """
    client = client or get_redis_client()

    result = client.xreadgroup(
        group_name,
        consumer_name,
        {stream_name: ">"},
        count=count,
        block=block_ms,
    )
    if not result:
        return []

    # [[stream_name, [(msg_id, data), ...]]]
    return [(msg_id, data) for _stream, entries in result for msg_id, data in entries]


def ack_message(
    stream_name: str,
    group_name: str,
    message_id: str,
    client: redis.Redis | None = None,
) -> int:
    """XACK a message. Returns the number of messages acknowledged (0 or 1)."""
    client = client or get_redis_client()
    return client.xack(stream_name, group_name, message_id)


def get_pending_messages(
    stream_name: str,
    group_name: str,
    min_idle_ms: int = 60000,
    count: int = 100,
    client: redis.Redis | None = None,
) -> list[dict[str, Any]]:
    """
    List pending (delivered but unacknowledged) messages idle for at least min_idle_ms.
    """
    client = client or get_redis_client()

    summary = client.xpending(stream_name, group_name)
    if not summary or summary["pending"] == 0:
        return []

    entries = client.xpending_range(stream_name, group_name, min="-", max="+", count=count)

    return [
        {
            "message_id": entry["message_id"],
            "consumer": entry["consumer"],
            "idle_ms": entry["time_since_delivered"],
            "delivery_count": entry["times_delivered"],
        }
        for entry in entries
        if entry["time_since_delivered"] >= min_idle_ms
    ]


def claim_messages(
    stream_name: str,
    group_name: str,
    consumer_name: str,
    message_ids: list[str],
    min_idle_ms: int = 60000,
    client: redis.Redis | None = None,
) -> list[tuple[str, dict[str, str]]]:
    """XCLAIM idle messages for this consumer."""
    if not message_ids:
        return []

    client = client or get_redis_client()
    result = client.xclaim(stream_name, group_name, consumer_name, min_idle_ms, message_ids)
    return [(msg_id, data) for msg_id, data in result]
