"""Relative Date Resolver

Resolves date phrases ("tomorrow", "this coming Friday", "the last Monday of
June", "2025-05-07", "May 7") against a reference instant, and reports the
part of day a phrase implies so that bare hours can be placed in the morning
or the evening.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple, Union

from dateutil import relativedelta

from ...core.error_handler import InvalidDateError
from ...core.logging_manager import LoggingManager
from ...scheduling.models import DateSpec


DEFAULT_DAYPART_BIAS = {
    "tonight": "pm",
    "evening": "pm",
    "night": "pm",
    "afternoon": "pm",
    "morning": "am",
}

_MONTHS = (r"(january|february|march|april|may|june|july|august|september|october|november|december|"
           r"jan|feb|mar|apr|jun|jul|aug|sept|sep|oct|nov|dec)")
_WEEKDAYS = r"(monday|tuesday|tues|wednesday|weds|thursday|thurs|friday|saturday|sunday)"
_ORDINALS = r"(first|second|third|fourth|fifth|last|1st|2nd|3rd|4th|5th)"

_NUMBER_WORDS = {"a": 1, "an": 1, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6}


@dataclass(frozen=True)
class DateResolution:
    """Resolved date plus what the text said about the part of day."""
    date: DateSpec
    phrase: Optional[str] = None
    span: Optional[Tuple[int, int]] = None
    daypart: Optional[str] = None
    bias: Optional[str] = None

    @property
    def explicit(self) -> bool:
        """False when the date defaulted to the reference date."""
        return self.phrase is not None


class RelativeDateResolver:
    """Resolver for absolute and relative date phrases."""

    def __init__(self, daypart_bias: Optional[Dict[str, str]] = None):
        """Initialize resolver patterns.

        Args:
            daypart_bias: Meridiem implied by each part of day
                (tonight, evening, night, afternoon, morning)
        """
        self.logger = LoggingManager.get_logger(__name__)
        self.daypart_bias = dict(DEFAULT_DAYPART_BIAS)
        self.daypart_bias.update(daypart_bias or {})

        self.date_patterns = self._build_date_patterns()
        self.month_names = self._build_month_names()
        self.day_names = self._build_day_names()
        self.daypart_pattern = re.compile(r"\b(tonight|morning|afternoon|evening|night)\b")

    def _build_date_patterns(self) -> List[Dict[str, Any]]:
        """Build date patterns in priority order.

        Returns:
            List of date pattern configurations
        """
        return [
            {"pattern": r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b", "type": "iso_date"},
            {"pattern": rf"\b{_MONTHS}\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?,?\s+(\d{{4}})\b",
             "type": "month_day_year"},
            {"pattern": rf"\b(\d{{1,2}})(?:st|nd|rd|th)?\s+(?:of\s+)?{_MONTHS}\.?,?\s+(\d{{4}})\b",
             "type": "day_month_year"},
            {"pattern": r"(?<![\d/])(\d{1,2})/(\d{1,2})(?:/(\d{4}|\d{2}))?(?![\d/])", "type": "us_date"},
            {"pattern": rf"\b(?:the\s+)?{_ORDINALS}\s+{_WEEKDAYS}(?:\s+(?:of|in)\s+(?:(next|this)\s+month|{_MONTHS}))?\b",
             "type": "ordinal_weekday"},
            {"pattern": rf"\b{_MONTHS}\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?(?![\d:])(?!\s?[ap]\.?m)",
             "type": "month_day"},
            {"pattern": rf"\b(\d{{1,2}})(?:st|nd|rd|th)?\s+(?:of\s+)?{_MONTHS}\b", "type": "day_month"},
            {"pattern": r"\b(?:the\s+)?day\s+after\s+tomorrow\b", "type": "day_after_tomorrow"},
            {"pattern": r"\b(tomorrow|tmrw|tmr)(?:\s+(morning|afternoon|evening|night))?\b",
             "type": "tomorrow"},
            {"pattern": r"\btonight\b", "type": "tonight"},
            {"pattern": r"\bthis\s+(morning|afternoon|evening)\b", "type": "this_daypart"},
            {"pattern": r"\btoday\b", "type": "today"},
            {"pattern": r"\bin\s+(\d+|a|an|one|two|three|four|five|six)\s+(day|week)s?\b", "type": "offset"},
            {"pattern": r"\bnext\s+week\b", "type": "next_week"},
            {"pattern": rf"\b(this\s+coming|next)\s+{_WEEKDAYS}\b", "type": "coming_weekday"},
            {"pattern": rf"\b(?:this\s+|on\s+)?{_WEEKDAYS}\b", "type": "weekday"},
        ]

    def _build_month_names(self) -> Dict[str, int]:
        names = {}
        for number, name in enumerate(("january", "february", "march", "april", "may", "june", "july",
                                       "august", "september", "october", "november", "december"), 1):
            names[name] = number
            names[name[:3]] = number
        names["sept"] = 9
        return names

    def _build_day_names(self) -> Dict[str, int]:
        """Weekday names using Python's numbering (Monday = 0)."""
        return {
            "monday": 0,
            "tuesday": 1, "tues": 1,
            "wednesday": 2, "weds": 2,
            "thursday": 3, "thurs": 3,
            "friday": 4,
            "saturday": 5,
            "sunday": 6,
        }

    def resolve(self, phrase: str, now: Union[datetime, date]) -> DateSpec:
        """Resolve a date phrase to a calendar date.

        Args:
            phrase: Text holding at most one date phrase
            now: Reference instant, already in the user's local zone

        Returns:
            The resolved date; the reference date when no phrase is found

        Raises:
            InvalidDateError: If the phrase names a date that does not exist
        """
        return self.analyze(phrase, now).date

    def analyze(self, text: str, now: Union[datetime, date]) -> DateResolution:
        """Find the first date phrase in text and resolve it.

        Args:
            text: Free text
            now: Reference instant, already in the user's local zone

        Returns:
            Date resolution with the matched phrase and daypart bias

        Raises:
            InvalidDateError: If the text names a date that does not exist
        """
        today = now.date() if isinstance(now, datetime) else now
        lowered = text.lower()

        for pattern_config in self.date_patterns:
            match = re.search(pattern_config["pattern"], lowered)
            if not match:
                continue

            resolved = self._resolve_match(match, pattern_config["type"], today)
            if resolved is None:
                continue

            daypart = self._phrase_daypart(match, pattern_config["type"]) or self._find_daypart(lowered)
            self.logger.debug(f"Resolved '{match.group(0)}' ({pattern_config['type']}) to {resolved}")
            return DateResolution(
                date=resolved,
                phrase=text[match.start():match.end()],
                span=match.span(),
                daypart=daypart,
                bias=self.daypart_bias.get(daypart) if daypart else None,
            )

        daypart = self._find_daypart(lowered)
        return DateResolution(
            date=DateSpec.from_date(today),
            daypart=daypart,
            bias=self.daypart_bias.get(daypart) if daypart else None,
        )

    def daypart_bias_for(self, text: str) -> Optional[str]:
        """Meridiem implied by the first part-of-day word in text, if any."""
        daypart = self._find_daypart(text.lower())
        return self.daypart_bias.get(daypart) if daypart else None

    def _resolve_match(self, match: re.Match, date_type: str, today: date) -> Optional[DateSpec]:
        groups = match.groups()

        if date_type == "iso_date":
            return DateSpec(int(groups[0]), int(groups[1]), int(groups[2]))

        if date_type == "month_day_year":
            return DateSpec(int(groups[2]), self.month_names[groups[0]], int(groups[1]))

        if date_type == "day_month_year":
            return DateSpec(int(groups[2]), self.month_names[groups[1]], int(groups[0]))

        if date_type == "us_date":
            month, day, year = int(groups[0]), int(groups[1]), groups[2]
            if year is None:
                return self._next_month_day(month, day, today)
            year = int(year)
            return DateSpec(year + 2000 if year < 100 else year, month, day)

        if date_type == "ordinal_weekday":
            return self._ordinal_weekday(groups, today)

        if date_type == "month_day":
            return self._next_month_day(self.month_names[groups[0]], int(groups[1]), today)

        if date_type == "day_month":
            return self._next_month_day(self.month_names[groups[1]], int(groups[0]), today)

        if date_type == "day_after_tomorrow":
            return DateSpec.from_date(today + timedelta(days=2))

        if date_type == "tomorrow":
            return DateSpec.from_date(today + timedelta(days=1))

        if date_type in ("tonight", "this_daypart", "today"):
            return DateSpec.from_date(today)

        if date_type == "offset":
            amount = int(groups[0]) if groups[0].isdigit() else _NUMBER_WORDS[groups[0]]
            days = amount * 7 if groups[1] == "week" else amount
            return DateSpec.from_date(today + timedelta(days=days))

        if date_type == "next_week":
            return DateSpec.from_date(today + timedelta(weeks=1))

        if date_type == "coming_weekday":
            return DateSpec.from_date(self._next_weekday(today, self.day_names[groups[1]], strictly_after=True))

        if date_type == "weekday":
            return DateSpec.from_date(self._next_weekday(today, self.day_names[groups[0]], strictly_after=False))

        return None

    def _next_weekday(self, today: date, weekday: int, strictly_after: bool) -> date:
        """Next date falling on `weekday` (Monday = 0)."""
        days_ahead = (weekday - today.weekday()) % 7
        if days_ahead == 0 and strictly_after:
            days_ahead = 7
        return today + timedelta(days=days_ahead)

    def _next_month_day(self, month: int, day: int, today: date) -> DateSpec:
        """Month and day without a year: this year, or next year once it has passed."""
        year = today.year
        if (month, day) < (today.month, today.day):
            year += 1
        return DateSpec(year, month, day)

    def _ordinal_weekday(self, groups: Tuple[Optional[str], ...], today: date) -> DateSpec:
        """Resolve 'the first Friday', 'the last Monday of June', 'the 2nd Tuesday of next month'."""
        ordinal, weekday_name, relative_month, month_name = groups
        weekday = relativedelta.weekdays[self.day_names[weekday_name]]
        index = {"first": 1, "1st": 1, "second": 2, "2nd": 2, "third": 3, "3rd": 3,
                 "fourth": 4, "4th": 4, "fifth": 5, "5th": 5, "last": -1}[ordinal]

        def in_month(year: int, month: int) -> date:
            anchor = date(year, month, 1)
            if index < 0:
                found = anchor + relativedelta.relativedelta(day=31, weekday=weekday(-1))
            else:
                found = anchor + relativedelta.relativedelta(weekday=weekday(index))
            if found.month != month:
                raise InvalidDateError(f"There is no {ordinal} {weekday_name} in {year}-{month:02d}")
            return found

        if month_name:
            month = self.month_names[month_name]
            found = in_month(today.year, month)
            if found < today:
                found = in_month(today.year + 1, month)
            return DateSpec.from_date(found)

        if relative_month == "next":
            next_month = today + relativedelta.relativedelta(months=1)
            return DateSpec.from_date(in_month(next_month.year, next_month.month))

        found = in_month(today.year, today.month)
        if found < today and relative_month != "this":
            next_month = today + relativedelta.relativedelta(months=1)
            found = in_month(next_month.year, next_month.month)
        return DateSpec.from_date(found)

    def _phrase_daypart(self, match: re.Match, date_type: str) -> Optional[str]:
        if date_type == "tonight":
            return "tonight"
        if date_type == "this_daypart":
            return match.group(1)
        if date_type == "tomorrow" and match.group(2):
            return match.group(2)
        return None

    def _find_daypart(self, lowered: str) -> Optional[str]:
        match = self.daypart_pattern.search(lowered)
        return match.group(1) if match else None
