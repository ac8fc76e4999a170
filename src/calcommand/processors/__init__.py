"""Data Processing Module

Deterministic processors that turn free text into times, dates, timezones
and recurrence rules.
"""

from .core import (
    RecurrenceParser,
    RelativeDateResolver,
    TimeScanner,
    TimezoneResolver,
)

__all__ = [
    "RecurrenceParser",
    "RelativeDateResolver",
    "TimeScanner",
    "TimezoneResolver",
]
