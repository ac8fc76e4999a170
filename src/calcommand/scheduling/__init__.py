"""Scheduling Module

Data models for utterances, drafts and structured commands, and the rules a
command must satisfy before it is finalized. The normalizer itself lives in
`calcommand.scheduling.command_normalizer`.
"""

from .models import (
    CommandKind,
    ContactRef,
    DateSpec,
    Diagnostic,
    DraftCommand,
    Frequency,
    NormalizationResult,
    NormalizationState,
    RawUtterance,
    RecurrenceRule,
    Rejection,
    StructuredCommand,
    TimeOfDay,
    TimeZoneTag,
)
from .validators import CommandRule, CommandValidator, ValidationOutcome

__all__ = [
    "CommandKind",
    "ContactRef",
    "DateSpec",
    "Diagnostic",
    "DraftCommand",
    "Frequency",
    "NormalizationResult",
    "NormalizationState",
    "RawUtterance",
    "RecurrenceRule",
    "Rejection",
    "StructuredCommand",
    "TimeOfDay",
    "TimeZoneTag",
    "CommandRule",
    "CommandValidator",
    "ValidationOutcome",
]
