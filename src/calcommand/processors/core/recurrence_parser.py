"""Recurrence Parser

Builds recurrence rules from phrases such as "every other week",
"every Tuesday and Thursday", "daily until June 30" or "weekly for 10 weeks",
and from command flags (--repeat, --interval, --until, --count, --days).
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from dateutil import relativedelta

from ...core.error_handler import (
    InvalidDateError,
    InvalidRecurrenceError,
    RecurrenceConflictError,
    ResolutionIssue,
)
from ...core.logging_manager import LoggingManager
from ...scheduling.models import DateSpec, Diagnostic, Frequency, RecurrenceRule
from .date_resolver import RelativeDateResolver


_WEEKDAY = r"(?:monday|tuesday|tues|wednesday|weds|thursday|thurs|friday|saturday|sunday)"
_WEEKDAY_LIST = rf"({_WEEKDAY}s?(?:\s*(?:,|and|&|,\s*and)\s*{_WEEKDAY}s?)*)"
_ORDINAL_WEEKDAY = rf"\b(?:first|second|third|fourth|fifth|last|1st|2nd|3rd|4th|5th)\s+{_WEEKDAY}\b"
_UNTIL_DATE = (
    r"(\d{4}-\d{1,2}-\d{1,2}"
    r"|(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?\s+\d{1,2}(?:st|nd|rd|th)?(?:,?\s+\d{4})?"
    r"|\d{1,2}(?:st|nd|rd|th)?\s+(?:of\s+)?(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*(?:,?\s+\d{4})?"
    r"|\d{1,2}/\d{1,2}(?:/\d{2,4})?)"
)

# Sunday = 0, as used by --days
_DAY_INDEX = {
    "sunday": 0, "monday": 1, "tuesday": 2, "tues": 2, "wednesday": 3, "weds": 3,
    "thursday": 4, "thurs": 4, "friday": 5, "saturday": 6,
}

_UNIT_FREQUENCY = {
    "day": Frequency.DAILY,
    "week": Frequency.WEEKLY,
    "month": Frequency.MONTHLY,
    "year": Frequency.YEARLY,
}

_NUMBER_WORDS = {"two": 2, "three": 3, "four": 4, "five": 5, "six": 6, "seven": 7,
                 "eight": 8, "nine": 9, "ten": 10, "twelve": 12}


@dataclass(frozen=True)
class RecurrenceParse:
    """Result of recurrence parsing."""
    rule: Optional[RecurrenceRule] = None
    diagnostics: Tuple[Diagnostic, ...] = ()
    end_spans: Tuple[Tuple[int, int], ...] = ()

    @property
    def is_recurring(self) -> bool:
        return self.rule is not None


class RecurrenceParser:
    """Parser for recurrence phrases and flags."""

    def __init__(self, max_interval: int = 100, max_count: int = 500,
                 reject_on_conflict: bool = False,
                 date_resolver: Optional[RelativeDateResolver] = None):
        """Initialize recurrence parser.

        Args:
            max_interval: Largest accepted interval
            max_count: Largest accepted occurrence count
            reject_on_conflict: Raise instead of dropping the count when both
                an end date and a count are given
            date_resolver: Resolver used for "until" dates
        """
        self.logger = LoggingManager.get_logger(__name__)
        self.max_interval = max_interval
        self.max_count = max_count
        self.reject_on_conflict = reject_on_conflict
        self.date_resolver = date_resolver or RelativeDateResolver()

        self.frequency_patterns = self._build_frequency_patterns()
        self.end_patterns = self._build_end_patterns()
        self.flag_pattern = re.compile(r"--(repeat|recurrence|interval|until|count|days)(?:[=\s]+([^\s-][^\s]*))?")

    def _build_frequency_patterns(self) -> List[Dict[str, Any]]:
        """Build frequency patterns in priority order.

        Returns:
            List of frequency pattern configurations
        """
        return [
            {"pattern": rf"\bevery\s+other\s+{_WEEKDAY_LIST}", "type": "alternate_weekdays"},
            {"pattern": r"\bevery\s+other\s+(day|week|month|year)\b", "type": "every_other"},
            {"pattern": r"\bevery\s+(\d+|two|three|four|five|six|seven|eight|nine|ten|twelve)\s+(day|week|month|year)s?\b",
             "type": "every_n"},
            {"pattern": r"\bevery\s+(?:week\s?day|business\s+day|working\s+day)s?\b", "type": "weekdays"},
            {"pattern": r"\bevery\s+weekend\b", "type": "weekends"},
            {"pattern": rf"\b(?:every|each)\s+{_WEEKDAY_LIST}", "type": "weekday_list"},
            {"pattern": r"\b(?:every|each)\s+(day|week|month|year)\b", "type": "every_unit"},
            {"pattern": r"\b(daily|weekly|monthly|yearly|annually|biweekly|bi-weekly|fortnightly)\b",
             "type": "adverb"},
            {"pattern": rf"\bon\s+((?:{_WEEKDAY}s)(?:\s*(?:,|and|&|,\s*and)\s*{_WEEKDAY}s)*)\b",
             "type": "plural_weekdays"},
        ]

    def _build_end_patterns(self) -> List[Dict[str, Any]]:
        """Build patterns for the end of a series.

        Returns:
            List of end pattern configurations
        """
        return [
            {"pattern": rf"\b(?:until|till|through|thru|ending(?:\s+on)?|ends\s+on)\s+(?:the\s+)?{_UNTIL_DATE}",
             "type": "until"},
            {"pattern": r"\bfor\s+(?:the\s+next\s+)?(\d+|two|three|four|five|six|seven|eight|nine|ten|twelve)\s+"
                        r"(?:more\s+)?(occurrences?|times|sessions|meetings|days?|weeks?|months?|years?)\b",
             "type": "for_period"},
            {"pattern": r"\b(\d+)\s+(?:times|occurrences)\b", "type": "times"},
        ]

    def parse(self, text: str, flags: Optional[Mapping[str, Any]] = None,
              start_date: Optional[DateSpec] = None, now: Optional[datetime] = None) -> RecurrenceParse:
        """Parse recurrence from text and optional flags.

        Args:
            text: Free text, may contain --repeat style flags
            flags: Recurrence hints (repeat, interval, until, count, days)
            start_date: First date of the series, used for weekday defaults
                and for resolving "until" dates without a year
            now: Reference instant when no start date is known

        Returns:
            Parse result; `rule` is None when nothing recurring was found

        Raises:
            InvalidRecurrenceError: If interval or count exceed the limits,
                or the series ends before it starts
            RecurrenceConflictError: If both until and count are given and
                conflicts are configured to reject
        """
        lowered = text.lower()
        reference = start_date.to_date() if start_date else (now.date() if now else date.today())
        diagnostics: List[Diagnostic] = []
        end_spans: List[Tuple[int, int]] = []

        values: Dict[str, Any] = {}
        text_flags = self._text_flags(lowered, end_spans)
        self._apply_flags(text_flags, values, reference)
        self._apply_flags(flags or {}, values, reference)
        self._apply_phrases(lowered, values, reference, end_spans)

        frequency = values.get("frequency")
        if frequency is None:
            if any(key in values for key in ("interval", "until", "count", "days")) and (flags or text_flags):
                diagnostics.append(Diagnostic(ResolutionIssue.INVALID_RECURRENCE,
                                              "Recurrence details given without a frequency", "repeat"))
            return RecurrenceParse(diagnostics=tuple(diagnostics))

        interval = values.get("interval", 1)
        if interval > self.max_interval:
            raise InvalidRecurrenceError(f"Interval {interval} exceeds the limit of {self.max_interval}",
                                         field="interval")

        count = values.get("count")
        if count is not None and count > self.max_count:
            raise InvalidRecurrenceError(f"Count {count} exceeds the limit of {self.max_count}", field="count")

        until = values.get("until")
        if until is not None and count is not None:
            if self.reject_on_conflict:
                raise RecurrenceConflictError(f"Recurrence has both an end date ({until}) and a count ({count})",
                                              field="count")
            diagnostics.append(Diagnostic(ResolutionIssue.RECURRENCE_CONFLICT,
                                          f"Both an end date ({until}) and a count ({count}) were given; "
                                          f"keeping the end date", "count"))
            count = None

        if until is not None and start_date is not None and until < start_date:
            raise InvalidRecurrenceError(f"Recurrence ends on {until}, before it starts on {start_date}",
                                         field="until")

        ordinal = re.search(_ORDINAL_WEEKDAY, lowered)
        if frequency is Frequency.MONTHLY and ordinal:
            diagnostics.append(Diagnostic(ResolutionIssue.INVALID_RECURRENCE,
                                          f"'{ordinal.group(0)}' is not supported; repeating on the same "
                                          "day of the month as the first occurrence", "repeat"))

        days: Set[int] = set(values.get("days", ()))
        if days and frequency is not Frequency.WEEKLY:
            diagnostics.append(Diagnostic(ResolutionIssue.INVALID_RECURRENCE,
                                          f"Days of week do not apply to {frequency.value} recurrence", "days"))
            days = set()
        if frequency is Frequency.WEEKLY and not days and start_date is not None:
            days = {start_date.weekday}

        rule = RecurrenceRule(frequency=frequency, interval=interval, until=until, count=count,
                              days_of_week=frozenset(days))
        self.logger.debug(f"Parsed recurrence {rule.to_rrule()}")
        return RecurrenceParse(rule=rule, diagnostics=tuple(diagnostics), end_spans=tuple(end_spans))

    def end_spans(self, text: str) -> Tuple[Tuple[int, int], ...]:
        """Spans of recurrence flags and 'until <date>' phrases.

        Dates inside these spans end a series; they never name the day of the
        event itself.
        """
        lowered = text.lower()
        spans = [match.span() for match in self.flag_pattern.finditer(lowered)]
        for pattern_config in self.end_patterns:
            if pattern_config["type"] == "until":
                spans.extend(match.span() for match in re.finditer(pattern_config["pattern"], lowered))
        return tuple(sorted(spans))

    def _text_flags(self, lowered: str, end_spans: List[Tuple[int, int]]) -> Dict[str, Any]:
        flags: Dict[str, Any] = {}
        for match in self.flag_pattern.finditer(lowered):
            name, value = match.group(1), match.group(2)
            if name == "recurrence":
                name = "repeat"
            if value is not None:
                flags.setdefault(name, value)
            end_spans.append(match.span())
        return flags

    def _apply_flags(self, flags: Mapping[str, Any], values: Dict[str, Any], reference: date):
        """Fold flag-style hints into values; earlier sources win."""
        repeat = flags.get("repeat")
        if repeat and "frequency" not in values:
            frequency, interval = self._frequency_word(str(repeat).lower())
            if frequency is not None:
                values["frequency"] = frequency
                if interval != 1:
                    values.setdefault("interval", interval)
            else:
                self.logger.debug(f"Ignoring unknown repeat value '{repeat}'")

        if flags.get("interval") is not None and "interval" not in values:
            values["interval"] = self._positive_int(flags["interval"], "interval")

        if flags.get("count") is not None and "count" not in values:
            values["count"] = self._positive_int(flags["count"], "count")

        if flags.get("until") and "until" not in values:
            values["until"] = self._until_date(str(flags["until"]), reference)

        days = flags.get("days")
        if days and "days" not in values:
            items = days.split(",") if isinstance(days, str) else days
            try:
                parsed = {int(str(item).strip()) for item in items if str(item).strip()}
            except ValueError as e:
                raise InvalidRecurrenceError(f"Invalid days value '{days}'", field="days") from e
            if any(not 0 <= day <= 6 for day in parsed):
                raise InvalidRecurrenceError(f"Days must be between 0 (Sunday) and 6, got {sorted(parsed)}",
                                             field="days")
            values["days"] = parsed

    def _apply_phrases(self, lowered: str, values: Dict[str, Any], reference: date,
                       end_spans: List[Tuple[int, int]]):
        for pattern_config in self.frequency_patterns:
            if "frequency" in values:
                break
            match = re.search(pattern_config["pattern"], lowered)
            if match:
                self._apply_frequency_match(match, pattern_config["type"], values)

        if values.get("frequency") is Frequency.WEEKLY and "days" not in values:
            # "weekly on Monday and Wednesday"
            match = re.search(rf"\bon\s+{_WEEKDAY_LIST}", lowered)
            if match:
                values["days"] = self._weekday_set(match.group(1))

        for pattern_config in self.end_patterns:
            match = re.search(pattern_config["pattern"], lowered)
            if not match:
                continue

            end_type = pattern_config["type"]
            if end_type == "until":
                if "until" not in values:
                    values["until"] = self._until_date(match.group(1), reference)
                end_spans.append(match.span())
            elif end_type == "for_period":
                if values.get("frequency") is None:
                    continue
                self._apply_period(self._number(match.group(1)), match.group(2), values, reference)
                end_spans.append(match.span())
            elif end_type == "times" and "count" not in values and values.get("frequency") is not None:
                values["count"] = int(match.group(1))
                end_spans.append(match.span())

    def _apply_frequency_match(self, match: re.Match, pattern_type: str, values: Dict[str, Any]):
        if pattern_type == "alternate_weekdays":
            values.update(frequency=Frequency.WEEKLY, days=self._weekday_set(match.group(1)))
            values.setdefault("interval", 2)
        elif pattern_type == "every_other":
            values["frequency"] = _UNIT_FREQUENCY[match.group(1)]
            values.setdefault("interval", 2)
        elif pattern_type == "every_n":
            values["frequency"] = _UNIT_FREQUENCY[match.group(2)]
            values.setdefault("interval", self._number(match.group(1)))
        elif pattern_type == "weekdays":
            values.update(frequency=Frequency.WEEKLY, days={1, 2, 3, 4, 5})
        elif pattern_type == "weekends":
            values.update(frequency=Frequency.WEEKLY, days={0, 6})
        elif pattern_type in ("weekday_list", "plural_weekdays"):
            values["frequency"] = Frequency.WEEKLY
            values.setdefault("days", self._weekday_set(match.group(1)))
        elif pattern_type == "every_unit":
            values["frequency"] = _UNIT_FREQUENCY[match.group(1)]
        elif pattern_type == "adverb":
            frequency, interval = self._frequency_word(match.group(1))
            values["frequency"] = frequency
            if interval != 1:
                values.setdefault("interval", interval)

    def _apply_period(self, amount: int, unit: str, values: Dict[str, Any], reference: date):
        """'for 10 weeks': a count when each period holds one occurrence, else an end date."""
        unit = unit.rstrip("s")
        frequency = values["frequency"]
        one_per_period = (_UNIT_FREQUENCY.get(unit) is frequency and values.get("interval", 1) == 1
                          and len(values.get("days", ())) <= 1)
        if unit in ("occurrence", "time", "session", "meeting") or one_per_period:
            values.setdefault("count", amount)
            return

        delta = relativedelta.relativedelta(**{f"{unit}s": amount})
        values.setdefault("until", DateSpec.from_date(reference + delta - timedelta(days=1)))

    def _frequency_word(self, word: str) -> Tuple[Optional[Frequency], int]:
        mapping = {
            "daily": (Frequency.DAILY, 1),
            "day": (Frequency.DAILY, 1),
            "weekly": (Frequency.WEEKLY, 1),
            "week": (Frequency.WEEKLY, 1),
            "biweekly": (Frequency.WEEKLY, 2),
            "bi-weekly": (Frequency.WEEKLY, 2),
            "fortnightly": (Frequency.WEEKLY, 2),
            "monthly": (Frequency.MONTHLY, 1),
            "month": (Frequency.MONTHLY, 1),
            "yearly": (Frequency.YEARLY, 1),
            "year": (Frequency.YEARLY, 1),
            "annually": (Frequency.YEARLY, 1),
            "annual": (Frequency.YEARLY, 1),
        }
        return mapping.get(word.strip(), (None, 1))

    def _weekday_set(self, text: str) -> Set[int]:
        return {_DAY_INDEX.get(name, _DAY_INDEX.get(name[:-1]))
                for name in re.findall(_WEEKDAY + "s?", text)}

    def _until_date(self, phrase: str, reference: date) -> DateSpec:
        try:
            resolution = self.date_resolver.analyze(phrase, reference)
        except InvalidDateError as e:
            raise InvalidRecurrenceError(f"Invalid end date '{phrase}': {e.message}", field="until") from e
        if not resolution.explicit:
            raise InvalidRecurrenceError(f"Unrecognised end date '{phrase}'", field="until")
        return resolution.date

    def _positive_int(self, value: Any, field: str) -> int:
        try:
            number = int(value)
        except (TypeError, ValueError) as e:
            raise InvalidRecurrenceError(f"Invalid {field} '{value}'", field=field) from e
        if number < 1:
            raise InvalidRecurrenceError(f"{field.capitalize()} must be at least 1, got {number}", field=field)
        return number

    def _number(self, text: str) -> int:
        return int(text) if text.isdigit() else _NUMBER_WORDS[text]
