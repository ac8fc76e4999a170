"""Lexical Time Scanner

Finds clock times and time ranges in free text. Handles 12-hour readings with
am/pm suffixes in their common spellings, 24-hour readings, the named times
noon and midnight, ranges joined by "to", "-", "until" or "between ... and",
and a trailing timezone abbreviation. Bare numbers only count as times when a
trigger word such as "at" or "from" introduces them.
"""

import bisect
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ...core.logging_manager import LoggingManager
from ...scheduling.models import TimeOfDay
from .timezone_resolver import TIMEZONE_ABBREVIATIONS, looks_like_abbreviation


class CandidateKind(Enum):
    """Shape of a time candidate."""
    SINGLE = "single"
    RANGE = "range"


class MeridiemSource(Enum):
    """Where a clock reading got its am/pm from."""
    EXPLICIT = "explicit"      # written next to the number
    RANGE = "range"            # borrowed from the other end of a range
    CLAUSE = "clause"          # free-standing am/pm elsewhere in the clause
    NONE = "none"


@dataclass(frozen=True)
class ClockReading:
    """One clock value as read from text, before any policy is applied."""
    hour: int
    minute: int = 0
    meridiem: Optional[str] = None
    meridiem_source: MeridiemSource = MeridiemSource.NONE
    named: Optional[str] = None
    ambiguous: bool = False
    clock24: bool = False

    def with_meridiem(self, meridiem: str, source: MeridiemSource) -> 'ClockReading':
        return ClockReading(self.hour, self.minute, meridiem, source, self.named)

    def as_24_hour(self) -> 'ClockReading':
        return ClockReading(self.hour, self.minute, clock24=True)

    def to_time(self, fallback: Optional[str] = None) -> Optional[TimeOfDay]:
        """Resolve to a time of day.

        Args:
            fallback: Meridiem to use when the reading is ambiguous

        Returns:
            The time, or None for an ambiguous reading without a fallback
        """
        if self.meridiem is not None:
            return TimeOfDay.from_meridiem(self.hour, self.minute, self.meridiem)
        if self.ambiguous:
            if fallback is None:
                return None
            return TimeOfDay.from_meridiem(self.hour, self.minute, fallback)
        return TimeOfDay(self.hour % 24, self.minute)


@dataclass(frozen=True)
class TimeCandidate:
    """A time or time range found in text."""
    kind: CandidateKind
    span: Tuple[int, int]
    text: str
    start_reading: ClockReading
    end_reading: Optional[ClockReading] = None
    timezone: Optional[str] = None
    strong: bool = False

    @property
    def low_confidence(self) -> bool:
        if self.start_reading.ambiguous:
            return True
        return self.end_reading is not None and self.end_reading.ambiguous

    @property
    def start(self) -> Optional[TimeOfDay]:
        return self.resolve()[0]

    @property
    def end(self) -> Optional[TimeOfDay]:
        return self.resolve()[1]

    def resolve(self, fallback: Optional[str] = None) -> Tuple[Optional[TimeOfDay], Optional[TimeOfDay]]:
        """Resolve start and end, applying `fallback` to ambiguous hours.

        For a range, an ambiguous bound is flipped to the other half of the
        day when that keeps the range in order ("7 to 9" reads 7-9, not 19-09).
        """
        start = self.start_reading.to_time(fallback)
        if self.end_reading is None:
            return start, None

        end = self.end_reading.to_time(fallback)
        if start is not None and end is not None and end <= start:
            if self.start_reading.ambiguous:
                earlier = self.start_reading.to_time("am")
                if earlier < end:
                    start = earlier
            elif self.end_reading.ambiguous:
                later = self.end_reading.to_time("pm")
                if later > start:
                    end = later
        return start, end

    def crosses_midnight(self, fallback: Optional[str] = None) -> bool:
        """True when the range is written to run past midnight (9pm to 1am, 10pm to midnight)."""
        if self.end_reading is None:
            return False
        start, end = self.resolve(fallback)
        if start is None or end is None or end > start:
            return False
        if self.end_reading.named == "midnight":
            return True
        return start.hour >= 12 and end.hour < 12 and (
            self.end_reading.meridiem == "am" or self.end_reading.clock24
        )


@dataclass
class _Token:
    start: int
    end: int
    reading: ClockReading
    strong: bool
    anchor: Optional[str]


class TimeScan:
    """Restartable view over the time candidates of one text.

    Every iteration scans the text again, so the object can be iterated
    any number of times with the same result.
    """

    def __init__(self, scanner: 'TimeScanner', text: str):
        self._scanner = scanner
        self.text = text

    def __iter__(self) -> Iterator[TimeCandidate]:
        return self._scanner.iter_candidates(self.text)

    def primary(self) -> Optional[TimeCandidate]:
        """The candidate that supplies the event time.

        The first range wins. Otherwise the first time written with am/pm,
        minutes or noon/midnight wins over bare numbers such as "for 4".
        """
        first_single = None
        first_strong = None
        for candidate in self:
            if candidate.kind is CandidateKind.RANGE:
                return candidate
            if first_single is None:
                first_single = candidate
            if first_strong is None and candidate.strong:
                first_strong = candidate
        return first_strong or first_single


class TimeScanner:
    """Scanner for clock times and ranges in free text."""

    def __init__(self, ambiguous_hour_max: int = 7):
        """Initialize scanner patterns.

        Args:
            ambiguous_hour_max: Hours 1..ambiguous_hour_max without a suffix
                cannot be placed in the day and are flagged
        """
        self.logger = LoggingManager.get_logger(__name__)
        self.ambiguous_hour_max = ambiguous_hour_max

        self.mask_patterns = self._build_mask_patterns()
        self.token_pattern = re.compile(
            r"(?<![\w:/.$#])(?:(\d{1,2})(?::([0-5]\d))?(?:\s?(am|pm))?|(noon|midnight))(?![\w:])"
        )
        self.anchor_pattern = re.compile(
            r"(?:\b(at|from|by|around|between|for|until|till|before|after)|(@))\s*$"
        )
        self.unit_pattern = re.compile(
            r"\s*(?:(?:-|to)\s*\d{1,2}\s*)?(?:hours?|hrs?|h\b|minutes?|mins?|days?|weeks?|months?|"
            r"years?|times|occurrences|people|persons|guests|percent|%)"
        )
        self.month_prefix_pattern = re.compile(
            r"\b(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?\s+$"
        )
        self.connector_pattern = re.compile(r"^\s*(?:-|–|—|to|until|till|through|thru|and)\s*$")
        self.intro_pattern = re.compile(r"\b(from|between)\s+$")
        self.free_meridiem_pattern = re.compile(r"\b(am|pm)\b")
        self.duration_patterns = self._build_duration_patterns()

    def _build_mask_patterns(self) -> List[Dict[str, Any]]:
        """Build patterns for spans whose digits are never times.

        Returns:
            List of mask pattern configurations
        """
        return [
            {"pattern": r"\b[\w.+-]+@[\w-]+(?:\.[\w-]+)+", "type": "email"},
            {"pattern": r"\b(?:https?://|www\.)\S+", "type": "url"},
            {"pattern": r"\b\d{4}-\d{1,2}-\d{1,2}\b", "type": "iso_date"},
            {"pattern": r"\b\d{1,2}/\d{1,2}(?:/\d{2,4})?\b", "type": "slash_date"},
            {"pattern": r"--(?:days|interval|count|until)\s+\S+", "type": "flag_value"},
        ]

    def _build_duration_patterns(self) -> List[Dict[str, Any]]:
        """Build patterns for event durations.

        Returns:
            List of duration pattern configurations
        """
        return [
            {
                "pattern": r"\bfor\s+(\d+)\s*(?:hours?|hrs?|h)\s+and\s+(\d+)\s*(?:minutes?|mins?)\b",
                "type": "hours_and_minutes",
            },
            {
                "pattern": r"\bfor\s+(?:an|one|1)\s+hour\s+and\s+a\s+half\b",
                "type": "hour_and_half",
            },
            {
                "pattern": r"\bfor\s+(\d+(?:\.\d+)?)\s*(?:hours?|hrs?|h)\b",
                "type": "hours",
            },
            {
                "pattern": r"\bfor\s+(\d+)\s*(?:minutes?|mins?|m)\b",
                "type": "minutes",
            },
            {
                "pattern": r"\bfor\s+half\s+an\s+hour\b",
                "type": "half_hour",
            },
            {
                "pattern": r"\bfor\s+(?:an|one)\s+hour\b",
                "type": "one_hour",
            },
        ]

    def scan(self, text: str) -> TimeScan:
        """Scan text for time candidates.

        Args:
            text: Raw utterance

        Returns:
            Lazy, restartable iterable of candidates in text order
        """
        return TimeScan(self, text)

    def scan_duration(self, text: str) -> Optional[int]:
        """Find an explicit event duration such as 'for 2 hours'.

        Returns:
            Duration in minutes, or None when the text gives none
        """
        lowered = text.lower()
        for pattern_config in self.duration_patterns:
            match = re.search(pattern_config["pattern"], lowered)
            if not match:
                continue

            duration_type = pattern_config["type"]
            if duration_type == "hours_and_minutes":
                minutes = int(match.group(1)) * 60 + int(match.group(2))
            elif duration_type == "hour_and_half":
                minutes = 90
            elif duration_type == "hours":
                minutes = round(float(match.group(1)) * 60)
            elif duration_type == "minutes":
                minutes = int(match.group(1))
            elif duration_type == "half_hour":
                minutes = 30
            else:
                minutes = 60

            if minutes > 0:
                return minutes
        return None

    def iter_candidates(self, text: str) -> Iterator[TimeCandidate]:
        """Yield candidates in text order, ranges before their parts."""
        working = self._prepare(text)
        tokens = self._tokenize(working)
        if not tokens:
            return

        boundaries, clause_meridiems = self._clause_meridiems(working, tokens)
        tokens = [self._apply_clause_meridiem(token, boundaries, clause_meridiems) for token in tokens]

        index = 0
        while index < len(tokens):
            token = tokens[index]
            if index + 1 < len(tokens):
                candidate = self._build_range(text, working, token, tokens[index + 1])
                if candidate is not None:
                    yield candidate
                    index += 2
                    continue

            if token.strong or token.anchor:
                yield TimeCandidate(
                    kind=CandidateKind.SINGLE,
                    span=(token.start, token.end),
                    text=text[token.start:token.end],
                    start_reading=token.reading,
                    timezone=self._trailing_timezone(text, token.end),
                    strong=token.strong,
                )
            index += 1

    def _prepare(self, text: str) -> str:
        """Lower-case and mask the text without changing its length."""
        working = text.lower()

        # a.m. / p.m. / a. m. -> am / pm, padded to keep offsets stable
        working = re.sub(
            r"(?<![a-z])([ap])\.\s?m\.?(?![a-z])",
            lambda m: m.group(1) + "m" + " " * (len(m.group(0)) - 2),
            working,
        )

        for mask_config in self.mask_patterns:
            working = re.sub(mask_config["pattern"], lambda m: " " * len(m.group(0)), working)
        return working

    def _tokenize(self, working: str) -> List[_Token]:
        tokens = []
        for match in self.token_pattern.finditer(working):
            hour_text, minute_text, meridiem, named = match.groups()

            if named:
                reading = ClockReading(12, 0, "pm" if named == "noon" else "am",
                                       MeridiemSource.EXPLICIT, named=named)
                tokens.append(_Token(match.start(), match.end(), reading, True, None))
                continue

            hour = int(hour_text)
            minute = int(minute_text) if minute_text else 0
            anchor_match = self.anchor_pattern.search(working, 0, match.start())
            anchor = (anchor_match.group(1) or anchor_match.group(2)) if anchor_match else None

            if meridiem:
                if not 1 <= hour <= 12:
                    self.logger.debug(f"Skipping '{match.group(0)}': hour cannot carry {meridiem}")
                    continue
                reading = ClockReading(hour, minute, meridiem, MeridiemSource.EXPLICIT)
            else:
                if hour > 23:
                    continue
                if self.unit_pattern.match(working, match.end()):
                    # "for 2 hours", "in 3 days": a quantity, not a clock time
                    continue
                if not minute_text and self.month_prefix_pattern.search(working, 0, match.start()):
                    # "May 7" is a day of the month
                    continue
                clock24 = hour == 0 or hour > 12 or hour_text.startswith("0")
                reading = ClockReading(
                    hour, minute,
                    ambiguous=not clock24 and 1 <= hour <= self.ambiguous_hour_max,
                    clock24=clock24,
                )

            strong = bool(meridiem or minute_text)
            tokens.append(_Token(match.start(), match.end(), reading, strong, anchor))

        return tokens

    def _clause_meridiems(self, working: str,
                          tokens: List[_Token]) -> Tuple[List[int], Dict[int, str]]:
        """Clause boundaries and the free-standing am/pm word of each clause."""
        boundaries = [m.start() for m in re.finditer(r"[.;!?\n]", working)]
        meridiems: Dict[int, str] = {}

        for match in self.free_meridiem_pattern.finditer(working):
            if any(token.start <= match.start() < token.end for token in tokens):
                continue
            # "I am", "am I free"
            if re.search(r"\bi\s+$", working[:match.start()]) or re.match(r"\s+i\b", working[match.end():]):
                continue
            clause = bisect.bisect_right(boundaries, match.start())
            meridiems.setdefault(clause, match.group(1))

        return boundaries, meridiems

    def _apply_clause_meridiem(self, token: _Token, boundaries: List[int],
                               clause_meridiems: Dict[int, str]) -> _Token:
        reading = token.reading
        if reading.meridiem is not None or reading.named or reading.clock24 or not 1 <= reading.hour <= 12:
            return token

        meridiem = clause_meridiems.get(bisect.bisect_right(boundaries, token.start))
        if meridiem is None:
            return token

        return _Token(token.start, token.end, reading.with_meridiem(meridiem, MeridiemSource.CLAUSE),
                      token.strong, token.anchor)

    def _build_range(self, text: str, working: str, first: _Token,
                     second: _Token) -> Optional[TimeCandidate]:
        between = working[first.end:second.start]
        if not self.connector_pattern.match(between):
            return None

        intro = self.intro_pattern.search(working, 0, first.start)
        connector = between.strip()
        if connector == "and" and not (intro and intro.group(1) == "between"):
            return None
        if not (first.strong or second.strong or intro or first.anchor == "at"):
            return None

        start_reading, end_reading = self._propagate_meridiem(first.reading, second.reading)
        span_start = intro.start() if intro else first.start

        return TimeCandidate(
            kind=CandidateKind.RANGE,
            span=(span_start, second.end),
            text=text[span_start:second.end],
            start_reading=start_reading,
            end_reading=end_reading,
            timezone=self._trailing_timezone(text, second.end),
        )

    def _propagate_meridiem(self, start: ClockReading,
                            end: ClockReading) -> Tuple[ClockReading, ClockReading]:
        """Share an am/pm suffix between the two ends of a range.

        A start without suffix takes the end's suffix unless that would put it
        after the end ("11 to 1pm" is 11am-1pm). An end without suffix takes
        the start's suffix unless that would put it before the start. A bound
        written on the 24-hour clock makes its partner a 24-hour reading too.
        """
        if start.clock24 and end.meridiem is None and not end.named and not end.clock24:
            return start, end.as_24_hour()
        if end.clock24 and start.meridiem is None and not start.named and not start.clock24:
            return start.as_24_hour(), end

        if start.meridiem is None and end.meridiem is not None and not start.clock24:
            borrowed = start.with_meridiem(end.meridiem, MeridiemSource.RANGE)
            if borrowed.to_time() >= end.to_time():
                borrowed = start.with_meridiem("am" if end.meridiem == "pm" else "pm",
                                               MeridiemSource.RANGE)
            return borrowed, end

        if end.meridiem is None and start.meridiem is not None and not end.clock24:
            borrowed = end.with_meridiem(start.meridiem, MeridiemSource.RANGE)
            if borrowed.to_time() <= start.to_time():
                borrowed = end.with_meridiem("am" if start.meridiem == "pm" else "pm",
                                             MeridiemSource.RANGE)
            return start, borrowed

        return start, end

    def _trailing_timezone(self, text: str, position: int) -> Optional[str]:
        """Timezone abbreviation written right after a time, if any."""
        match = re.match(r"\s*\(?([A-Za-z]{2,5})\)?(?![A-Za-z])", text[position:])
        if not match:
            return None

        word = match.group(1)
        # Two-letter forms (ET, PT) only count when written in capitals
        if word.upper() in TIMEZONE_ABBREVIATIONS and (word.isupper() or len(word) > 2):
            return word.upper()
        if looks_like_abbreviation(word):
            return word
        return None
