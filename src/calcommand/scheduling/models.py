"""Scheduling Data Models

Immutable value types shared by the resolvers and the command normalizer:
clock times, calendar dates, timezone tags, recurrence rules, contacts, the
loosely typed draft produced upstream and the finalized structured command.
"""

import calendar
import json
import re
import shlex
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from itertools import islice
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from dateutil import rrule
from dateutil.tz import gettz
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..core.error_handler import (
    InvalidDateError,
    InvalidRecurrenceError,
    InvalidTimeError,
    RecurrenceConflictError,
    ResolutionIssue,
)
from ..core.logging_manager import LoggingManager


logger = LoggingManager.get_logger(__name__)

_MERIDIEM_TIME = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*([ap])\.?\s*m?\.?$", re.IGNORECASE)
_CLOCK_TIME = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")


@dataclass(frozen=True, order=True)
class TimeOfDay:
    """Wall-clock time with minute precision."""
    hour: int
    minute: int = 0

    def __post_init__(self):
        if not 0 <= self.hour <= 23 or not 0 <= self.minute <= 59:
            raise InvalidTimeError(f"Time out of range: {self.hour}:{self.minute:02d}")

    @classmethod
    def from_meridiem(cls, hour: int, minute: int = 0, meridiem: Optional[str] = None) -> 'TimeOfDay':
        """Build a time from a 12-hour clock reading.

        Args:
            hour: Hour as written (1-12 when a meridiem is given)
            minute: Minute as written
            meridiem: 'am', 'pm' (any case, dotted or not) or None for 24-hour input

        Returns:
            TimeOfDay on the 24-hour clock (12am is 00, 12pm is 12)
        """
        if meridiem is None:
            return cls(hour, minute)

        marker = meridiem.strip().lower()[:1]
        if not 1 <= hour <= 12:
            raise InvalidTimeError(f"Hour {hour} cannot carry '{meridiem}'")

        if marker == "p" and hour != 12:
            hour += 12
        elif marker == "a" and hour == 12:
            hour = 0
        return cls(hour, minute)

    @classmethod
    def parse(cls, value: str) -> 'TimeOfDay':
        """Parse 'HH:MM' or a 12-hour reading such as '9pm' or '9:30 p.m.'."""
        text = value.strip()
        match = _CLOCK_TIME.match(text)
        if match:
            return cls(int(match.group(1)), int(match.group(2)))

        match = _MERIDIEM_TIME.match(text)
        if match:
            return cls.from_meridiem(int(match.group(1)), int(match.group(2) or 0), match.group(3))

        raise InvalidTimeError(f"Unrecognised time '{value}'")

    @classmethod
    def from_time(cls, value: time) -> 'TimeOfDay':
        return cls(value.hour, value.minute)

    def to_time(self) -> time:
        return time(self.hour, self.minute)

    @property
    def minutes(self) -> int:
        """Minutes since midnight."""
        return self.hour * 60 + self.minute

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


@dataclass(frozen=True, order=True)
class DateSpec:
    """A calendar date that is known to exist."""
    year: int
    month: int
    day: int

    def __post_init__(self):
        if not 1 <= self.year <= 9999 or not 1 <= self.month <= 12:
            raise InvalidDateError(f"Invalid date {self.year}-{self.month:02d}-{self.day:02d}")
        if not 1 <= self.day <= calendar.monthrange(self.year, self.month)[1]:
            raise InvalidDateError(f"Invalid date {self.year}-{self.month:02d}-{self.day:02d}")

    @classmethod
    def from_date(cls, value: date) -> 'DateSpec':
        return cls(value.year, value.month, value.day)

    @classmethod
    def parse(cls, value: str) -> 'DateSpec':
        """Parse an ISO 'YYYY-MM-DD' date."""
        match = _ISO_DATE.match(value.strip())
        if not match:
            raise InvalidDateError(f"Unrecognised date '{value}'")
        return cls(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    def to_date(self) -> date:
        return date(self.year, self.month, self.day)

    def add_days(self, days: int) -> 'DateSpec':
        return DateSpec.from_date(self.to_date() + timedelta(days=days))

    @property
    def weekday(self) -> int:
        """Day of week with 0 = Sunday."""
        return (self.to_date().weekday() + 1) % 7

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"


@dataclass(frozen=True)
class TimeZoneTag:
    """A timezone abbreviation bound to an IANA zone at one instant."""
    abbreviation: str
    zone_id: str
    utc_offset: timedelta

    @property
    def offset_hours(self) -> float:
        return self.utc_offset.total_seconds() / 3600


class Frequency(Enum):
    """Recurrence frequencies."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


_RRULE_FREQUENCIES = {
    Frequency.DAILY: rrule.DAILY,
    Frequency.WEEKLY: rrule.WEEKLY,
    Frequency.MONTHLY: rrule.MONTHLY,
    Frequency.YEARLY: rrule.YEARLY,
}

# Sunday-first index -> RFC 5545 day code
_BYDAY_CODES = ("SU", "MO", "TU", "WE", "TH", "FR", "SA")


@dataclass(frozen=True)
class RecurrenceRule:
    """Repetition rule for an event.

    The end of a series is given by `until` or by `count`, never both.
    `days_of_week` uses 0 = Sunday and is only meaningful for weekly rules.
    """
    frequency: Frequency
    interval: int = 1
    until: Optional[DateSpec] = None
    count: Optional[int] = None
    days_of_week: FrozenSet[int] = frozenset()

    def __post_init__(self):
        object.__setattr__(self, 'days_of_week', frozenset(self.days_of_week))

        if self.interval < 1:
            raise InvalidRecurrenceError(f"Recurrence interval must be at least 1, got {self.interval}",
                                         field="interval")
        if self.until is not None and self.count is not None:
            raise RecurrenceConflictError("Recurrence cannot have both an end date and a count",
                                          field="count")
        if self.count is not None and self.count < 1:
            raise InvalidRecurrenceError(f"Recurrence count must be at least 1, got {self.count}",
                                         field="count")
        if any(not 0 <= day <= 6 for day in self.days_of_week):
            raise InvalidRecurrenceError(f"Invalid weekday in {sorted(self.days_of_week)}", field="days")
        if self.days_of_week and self.frequency is not Frequency.WEEKLY:
            raise InvalidRecurrenceError("Days of week only apply to weekly recurrence", field="days")

    @property
    def sorted_days(self) -> Tuple[int, ...]:
        return tuple(sorted(self.days_of_week))

    def to_rrule(self) -> str:
        """Render the rule as an RFC 5545 RRULE value."""
        parts = [f"FREQ={self.frequency.value.upper()}"]
        if self.interval != 1:
            parts.append(f"INTERVAL={self.interval}")
        if self.days_of_week:
            parts.append("BYDAY=" + ",".join(_BYDAY_CODES[day] for day in self.sorted_days))
        if self.until is not None:
            parts.append(f"UNTIL={self.until.year:04d}{self.until.month:02d}{self.until.day:02d}")
        if self.count is not None:
            parts.append(f"COUNT={self.count}")
        return ";".join(parts)

    def occurrences(self, start: Union[DateSpec, date], limit: Optional[int] = None) -> Iterator[DateSpec]:
        """Expand the dates of the series starting at `start`.

        Args:
            start: First date of the series
            limit: Maximum number of dates to yield; required for open-ended rules

        Returns:
            Iterator over occurrence dates
        """
        if isinstance(start, DateSpec):
            start = start.to_date()
        if limit is None and self.until is None and self.count is None:
            raise InvalidRecurrenceError("Open-ended recurrence needs a limit")

        kwargs: Dict[str, Any] = {
            'dtstart': datetime.combine(start, time(0, 0)),
            'interval': self.interval,
        }
        if self.count is not None:
            kwargs['count'] = self.count
        if self.until is not None:
            kwargs['until'] = datetime.combine(self.until.to_date(), time(23, 59))
        if self.days_of_week:
            # dateutil counts weekdays from Monday
            kwargs['byweekday'] = [rrule.weekdays[(day - 1) % 7] for day in self.sorted_days]

        dates = (DateSpec.from_date(dt.date())
                 for dt in rrule.rrule(_RRULE_FREQUENCIES[self.frequency], **kwargs))
        return islice(dates, limit) if limit is not None else dates


@dataclass(frozen=True)
class ContactRef:
    """A person named in an utterance, with any addresses found for them."""
    display_name: str
    resolved_emails: Tuple[str, ...] = ()

    def __post_init__(self):
        unique: List[str] = []
        seen = set()
        for email in self.resolved_emails:
            key = email.lower()
            if key not in seen:
                seen.add(key)
                unique.append(email)
        object.__setattr__(self, 'resolved_emails', tuple(unique))

    def with_emails(self, emails: Iterable[str]) -> 'ContactRef':
        return ContactRef(self.display_name, self.resolved_emails + tuple(emails))


class CommandKind(Enum):
    """Kinds of structured command."""
    CREATE_EVENT = "create_event"
    CREATE_REMINDER = "create_reminder"
    CREATE_NOTE = "create_note"
    OTHER = "other"

    @classmethod
    def from_label(cls, label: Optional[str]) -> Optional['CommandKind']:
        """Map a free-form intent label to a kind, or None when unrecognised."""
        if not label:
            return None
        normalized = re.sub(r"[\s\-]+", "_", label.strip().lower())
        aliases = {
            'event': cls.CREATE_EVENT,
            'calendar': cls.CREATE_EVENT,
            'calendar_create': cls.CREATE_EVENT,
            'create_event': cls.CREATE_EVENT,
            'reminder': cls.CREATE_REMINDER,
            'todo': cls.CREATE_REMINDER,
            'create_reminder': cls.CREATE_REMINDER,
            'create_todo': cls.CREATE_REMINDER,
            'note': cls.CREATE_NOTE,
            'create_note': cls.CREATE_NOTE,
            'other': cls.OTHER,
        }
        return aliases.get(normalized)


def _split_list(value: Any) -> Any:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


class DraftCommand(BaseModel):
    """Loosely typed command proposed by an upstream parser.

    Every field is optional and unknown keys are ignored. Times and dates stay
    as strings here; the normalizer runs them through the deterministic
    parsers before trusting them.
    """
    model_config = ConfigDict(extra="ignore", frozen=True)

    intent: Optional[str] = None
    title: Optional[str] = None
    date: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    calendar: Optional[str] = None
    contacts: List[str] = Field(default_factory=list)
    emails: List[str] = Field(default_factory=list)
    repeat: Optional[str] = None
    interval: Optional[int] = None
    until: Optional[str] = None
    count: Optional[int] = None
    days: List[int] = Field(default_factory=list)
    location: Optional[str] = None
    description: Optional[str] = None
    zoom: bool = False

    @field_validator('contacts', 'emails', mode='before')
    @classmethod
    def split_names(cls, v):
        if v is None:
            return []
        return _split_list(v)

    @field_validator('days', mode='before')
    @classmethod
    def split_days(cls, v):
        if v is None:
            return []
        return _split_list(v)

    @field_validator('*', mode='before')
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def has_recurrence(self) -> bool:
        return self.repeat is not None

    @classmethod
    def from_payload(cls, payload: Union[Mapping[str, Any], str, None]) -> 'DraftCommand':
        """Build a draft from an upstream JSON payload without raising.

        Fields that fail validation are dropped and logged; a payload that is
        not a JSON object yields an empty draft.

        Args:
            payload: Mapping or JSON text, optionally wrapped in a code fence

        Returns:
            Draft holding every field that could be read
        """
        if payload is None:
            return cls()

        if isinstance(payload, str):
            text = re.sub(r"^```(?:json)?\s*|\s*```$", "", payload.strip())
            try:
                payload = json.loads(text)
            except json.JSONDecodeError as e:
                logger.warning(f"Discarding draft payload that is not JSON: {e}")
                return cls()

        if not isinstance(payload, Mapping):
            logger.warning(f"Discarding draft payload of type {type(payload).__name__}")
            return cls()

        data = dict(payload)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            rejected = {str(error['loc'][0]) for error in e.errors() if error['loc']}
            logger.warning(f"Dropping invalid draft fields: {sorted(rejected)}")

        try:
            return cls.model_validate({k: v for k, v in data.items() if k not in rejected})
        except ValidationError as e:
            logger.warning(f"Discarding draft payload: {e}")
            return cls()

    @classmethod
    def from_command_string(cls, command: str) -> 'DraftCommand':
        """Build a draft from a command line such as

        calendar create "Standup" 2025-05-07 09:00 09:15 "Work" --repeat daily
        todo "Buy milk" --lists "Groceries" --reminder-time "2025-05-07 18:00"
        note "Ideas" --content "..." --folder "Projects"
        """
        try:
            tokens = shlex.split(command)
        except ValueError as e:
            logger.warning(f"Discarding malformed command string: {e}")
            return cls()

        positional: List[str] = []
        flags: Dict[str, Any] = {}
        index = 0
        while index < len(tokens):
            token = tokens[index]
            if token.startswith("--"):
                name = token[2:].lower()
                if index + 1 < len(tokens) and not tokens[index + 1].startswith("--"):
                    flags[name] = tokens[index + 1]
                    index += 2
                    continue
                flags[name] = True
            else:
                positional.append(token)
            index += 1

        if not positional:
            return cls()

        head = positional[0].lower()
        rest = positional[1:]
        if rest and rest[0].lower() in ("create", "add"):
            rest = rest[1:]

        data: Dict[str, Any] = {}
        if head == "calendar":
            data['intent'] = CommandKind.CREATE_EVENT.value
            for key, value in zip(('title', 'date', 'start_time', 'end_time', 'calendar'), rest):
                data[key] = value
            data['repeat'] = flags.get('repeat') or flags.get('recurrence')
            data['interval'] = flags.get('interval')
            data['until'] = flags.get('until')
            data['count'] = flags.get('count')
            data['days'] = flags.get('days')
            data['contacts'] = flags.get('contacts')
            data['emails'] = flags.get('emails') or flags.get('email')
            data['location'] = flags.get('location')
            data['description'] = flags.get('notes') or flags.get('description')
            data['zoom'] = flags.get('zoom') is True
        elif head in ("todo", "reminder", "reminders"):
            data['intent'] = CommandKind.CREATE_REMINDER.value
            data['title'] = rest[0] if rest else None
            lists = flags.get('lists') or flags.get('list')
            if isinstance(lists, str) and _split_list(lists):
                data['calendar'] = _split_list(lists)[0]
            elif len(rest) > 1:
                data['calendar'] = rest[1]
            reminder_time = flags.get('reminder-time') or flags.get('remind')
            if isinstance(reminder_time, str):
                when = reminder_time.split()
                data['date'] = when[0]
                data['start_time'] = when[1] if len(when) > 1 else None
            data['description'] = flags.get('notes')
        elif head in ("note", "notes"):
            data['intent'] = CommandKind.CREATE_NOTE.value
            data['title'] = rest[0] if rest else None
            data['description'] = flags.get('content') or (rest[1] if len(rest) > 1 else None)
            data['calendar'] = flags.get('folder') or (rest[2] if len(rest) > 2 else None)
        else:
            data['intent'] = CommandKind.OTHER.value
            data['title'] = " ".join(positional)

        # Valueless flags arrive as True and only make sense for --zoom
        return cls.from_payload({key: value for key, value in data.items()
                                 if value is not None and (value is not True or key == 'zoom')})


@dataclass(frozen=True)
class RawUtterance:
    """Free-form input plus the clock and locale it was written against."""
    text: str
    now: datetime
    local_timezone: str
    default_time: Optional[TimeOfDay] = None
    default_duration_minutes: Optional[int] = None

    def __post_init__(self):
        if self.now.tzinfo is None or self.now.utcoffset() is None:
            raise ValueError("RawUtterance.now must be timezone-aware")
        if gettz(self.local_timezone) is None:
            raise ValueError(f"Unknown local timezone '{self.local_timezone}'")
        if self.default_duration_minutes is not None and self.default_duration_minutes < 1:
            raise ValueError("Default duration must be positive")

    def local_now(self) -> datetime:
        """The reference instant expressed in the local zone."""
        return self.now.astimezone(gettz(self.local_timezone))


@dataclass(frozen=True)
class StructuredCommand:
    """Finalized command handed to a calendar, reminder or notes backend.

    `date` is the day the user asked for. `start_date` can differ from it when
    a timezone conversion crosses midnight. `end_date` differs from
    `start_date` only for a midnight-spanning event, and then by one day.
    """
    kind: CommandKind
    title: str
    timezone: str
    date: Optional[DateSpec] = None
    start_date: Optional[DateSpec] = None
    start_time: Optional[TimeOfDay] = None
    end_date: Optional[DateSpec] = None
    end_time: Optional[TimeOfDay] = None
    container: Optional[str] = None
    recurrence: Optional[RecurrenceRule] = None
    contacts: Tuple[ContactRef, ...] = ()
    emails: Tuple[str, ...] = ()
    location: Optional[str] = None
    description: Optional[str] = None
    zoom: bool = False

    @property
    def start(self) -> Optional[datetime]:
        """Timezone-aware start, when the command has one."""
        if self.start_date is None or self.start_time is None:
            return None
        return datetime.combine(self.start_date.to_date(), self.start_time.to_time(),
                                tzinfo=gettz(self.timezone))

    @property
    def end(self) -> Optional[datetime]:
        if self.end_date is None or self.end_time is None:
            return None
        return datetime.combine(self.end_date.to_date(), self.end_time.to_time(),
                                tzinfo=gettz(self.timezone))

    def to_draft(self) -> DraftCommand:
        """Render the command as a draft that normalizes back to itself."""
        recurrence = self.recurrence
        return DraftCommand(
            intent=self.kind.value,
            title=self.title,
            date=str(self.date) if self.date else None,
            start_date=str(self.start_date) if self.start_date else None,
            end_date=str(self.end_date) if self.end_date else None,
            start_time=str(self.start_time) if self.start_time else None,
            end_time=str(self.end_time) if self.end_time else None,
            calendar=self.container,
            contacts=[contact.display_name for contact in self.contacts],
            emails=list(self.emails),
            repeat=recurrence.frequency.value if recurrence else None,
            interval=recurrence.interval if recurrence else None,
            until=str(recurrence.until) if recurrence and recurrence.until else None,
            count=recurrence.count if recurrence else None,
            days=list(recurrence.sorted_days) if recurrence else [],
            location=self.location,
            description=self.description,
            zoom=self.zoom,
        )


class NormalizationState(Enum):
    """States of the command normalizer."""
    RECEIVED = "received"
    TIME_RESOLVED = "time_resolved"
    DATE_RESOLVED = "date_resolved"
    RECURRENCE_RESOLVED = "recurrence_resolved"
    CONTACTS_RESOLVED = "contacts_resolved"
    VALIDATED = "validated"
    FINALIZED = "finalized"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal observation made while resolving a command."""
    issue: ResolutionIssue
    message: str
    field: Optional[str] = None


@dataclass(frozen=True)
class Rejection:
    """Why a command could not be finalized."""
    issue: ResolutionIssue
    message: str
    field: Optional[str] = None


@dataclass(frozen=True)
class NormalizationResult:
    """Outcome of one normalization."""
    state: NormalizationState
    command: Optional[StructuredCommand] = None
    rejection: Optional[Rejection] = None
    diagnostics: Tuple[Diagnostic, ...] = ()
    trace: Tuple[NormalizationState, ...] = ()
    low_confidence: bool = False

    @property
    def is_finalized(self) -> bool:
        return self.state is NormalizationState.FINALIZED

    def has_issue(self, issue: ResolutionIssue) -> bool:
        if self.rejection is not None and self.rejection.issue is issue:
            return True
        return any(diagnostic.issue is issue for diagnostic in self.diagnostics)
