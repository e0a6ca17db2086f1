"""Utility helper functions."""

import hmac
import math
import secrets
import uuid
from datetime import UTC, datetime, timedelta
from typing import Callable

Clock = Callable[[], datetime]


def generate_uuid() -> str:
    """Generate a unique UUID."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def generate_numeric_code(length: int = 6) -> str:
    """Uniformly random numeric code without a leading zero."""
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(10**length - low))


def codes_match(expected: str, supplied: str) -> bool:
    """Compare two codes in time independent of where they differ."""
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


def seconds_until(moment: datetime, now: datetime) -> int:
    """Whole seconds from ``now`` until ``moment``, rounded up, at least 1."""
    return max(1, math.ceil((moment - now) / timedelta(seconds=1)))


def format_sequence_number(prefix: str, value: int, width: int = 6) -> str:
    """Render a counter value as a zero padded, prefixed identifier."""
    return f"{prefix}-{value:0{width}d}"
