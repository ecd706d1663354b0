"""
ID generation using UUIDv7 (time-ordered UUIDs)

Requisitions, items, lots and events all get sortable identifiers, so
the event log and every listing come out in creation order for free.
"""

import secrets
import time


def generate_id() -> str:
    """
    Generate a UUIDv7-like identifier

    The first 48 bits are the Unix timestamp in milliseconds, followed by
    the version nibble (7), 12 random bits, the RFC 4122 variant and
    62 more random bits.

    Returns:
        Sortable UUID string (e.g., "01908e9a-3b87-7000-8000-123456789abc")
    """
    timestamp_ms = int(time.time() * 1000) & 0xFFFFFFFFFFFF
    rand_a = secrets.randbits(12)
    rand_b = secrets.randbits(62)

    version_and_rand_a = 0x7000 | rand_a
    variant_and_rand_b = 0x8000 | ((rand_b >> 48) & 0x3FFF)
    node = rand_b & 0xFFFFFFFFFFFF

    return (
        f"{(timestamp_ms >> 16) & 0xFFFFFFFF:08x}-"
        f"{timestamp_ms & 0xFFFF:04x}-"
        f"{version_and_rand_a:04x}-"
        f"{variant_and_rand_b:04x}-"
        f"{node:012x}"
    )
