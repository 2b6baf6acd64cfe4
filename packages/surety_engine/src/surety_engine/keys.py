"""Flight key derivation."""

import hashlib


def flight_key(airline: str, flight_id: str, timestamp: int) -> str:
    """
    Deterministic SHA3-256 key of (airline, flight id, timestamp).

    Each part is length-prefixed so that different tuples can never
    serialize to the same byte string.

    Example:
        >>> flight_key("0xA1", "ND1309", 1700000000)[:2]
        '0x'
    """
    digest = hashlib.sha3_256()
    for part in (airline, flight_id, str(int(timestamp))):
        encoded = part.encode("utf-8")
        digest.update(len(encoded).to_bytes(8, "big"))
        digest.update(encoded)
    return "0x" + digest.hexdigest()
