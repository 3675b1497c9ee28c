"""Time-ordered identifiers for accounts and sessions."""

import secrets
import time
import uuid


def new_id() -> str:
    """
    Generate a UUIDv7 string.

    The leading 48 bits are the Unix time in milliseconds, so ids sort by
    creation time and keep primary-key indexes append-mostly.
    """
    timestamp_ms = time.time_ns() // 1_000_000
    value = (timestamp_ms & 0xFFFF_FFFF_FFFF) << 80
    value |= secrets.randbits(80)

    # Version 7 in bits 76-79, RFC 4122 variant in bits 62-63
    value &= ~(0xF << 76)
    value |= 0x7 << 76
    value &= ~(0x3 << 62)
    value |= 0x2 << 62

    return str(uuid.UUID(int=value))
