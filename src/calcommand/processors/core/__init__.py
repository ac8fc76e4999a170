"""Temporal Processors

Leaf resolvers for clock times, timezones, dates and recurrence.
"""

from .time_scanner import CandidateKind, ClockReading, TimeCandidate, TimeScan, TimeScanner
from .timezone_resolver import TIMEZONE_ABBREVIATIONS, TimezoneResolver
from .date_resolver import DateResolution, RelativeDateResolver
from .recurrence_parser import RecurrenceParse, RecurrenceParser

__all__ = [
    "CandidateKind",
    "ClockReading",
    "TimeCandidate",
    "TimeScan",
    "TimeScanner",
    "TIMEZONE_ABBREVIATIONS",
    "TimezoneResolver",
    "DateResolution",
    "RelativeDateResolver",
    "RecurrenceParse",
    "RecurrenceParser",
]
