"""Utilities package."""

from orderflow.utils.helpers import (
    Clock,
    codes_match,
    format_sequence_number,
    generate_numeric_code,
    generate_uuid,
    seconds_until,
    utcnow,
)
from orderflow.utils.logger import setup_logging

__all__ = [
    "setup_logging",
    "Clock",
    "codes_match",
    "format_sequence_number",
    "generate_numeric_code",
    "generate_uuid",
    "seconds_until",
    "utcnow",
]
