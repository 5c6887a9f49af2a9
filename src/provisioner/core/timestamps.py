"""
Entity ids and timestamps.

Ids are ULIDs: 48 bits of epoch milliseconds followed by 80 random bits,
written as 26 Crockford base32 characters, so ``ORDER BY id`` follows
creation order across processes. Timestamps (``create_at``, ``delete_at``,
``lock_acquired_at``) are integer epoch milliseconds, 0 meaning "never".
"""

import secrets
import time

_CROCKFORD = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


def now_millis() -> int:
    return time.time_ns() // 1_000_000


def generate_ulid(millis: int | None = None) -> str:
    """New ULID stamped with *millis* (default: now)."""
    stamp = now_millis() if millis is None else millis
    value = (stamp << 80) | secrets.randbits(80)
    chars = []
    for _ in range(26):
        value, digit = divmod(value, 32)
        chars.append(_CROCKFORD[digit])
    return "".join(reversed(chars))
