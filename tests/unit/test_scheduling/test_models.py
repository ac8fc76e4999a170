"""
Unit tests for the scheduling data models.

Tests clock times, dates, recurrence rules, contacts, draft parsing and
the structured command.
"""

from datetime import datetime, timedelta

import pytest
from dateutil.tz import gettz

from calcommand.core.error_handler import (
    InvalidDateError,
    InvalidRecurrenceError,
    InvalidTimeError,
    RecurrenceConflictError,
    ResolutionIssue,
)
from calcommand.scheduling.models import (
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
)
from tests.fixtures.sample_data import LOCAL_TIMEZONE, REFERENCE_NOW, SAMPLE_COMMAND_STRINGS, SAMPLE_DRAFTS


class TestTimeOfDay:
    """Test suite for TimeOfDay"""

    @pytest.mark.unit
    @pytest.mark.parametrize("hour,meridiem,expected", [
        (12, "am", TimeOfDay(0, 0)),
        (12, "pm", TimeOfDay(12, 0)),
        (1, "AM", TimeOfDay(1, 0)),
        (9, "p.m.", TimeOfDay(21, 0)),
        (11, "pm", TimeOfDay(23, 0)),
    ])
    def test_from_meridiem(self, hour, meridiem, expected):
        """Test 12-hour readings map onto the 24-hour clock"""
        assert TimeOfDay.from_meridiem(hour, 0, meridiem) == expected

    @pytest.mark.unit
    def test_meridiem_needs_12_hour_value(self):
        """Test 13pm is not a time"""
        with pytest.raises(InvalidTimeError):
            TimeOfDay.from_meridiem(13, 0, "pm")

    @pytest.mark.unit
    @pytest.mark.parametrize("value,expected", [
        ("09:00", TimeOfDay(9, 0)),
        ("23:59", TimeOfDay(23, 59)),
        ("7:05:30", TimeOfDay(7, 5)),
        ("9pm", TimeOfDay(21, 0)),
        ("9:30 p.m.", TimeOfDay(21, 30)),
        ("12AM", TimeOfDay(0, 0)),
    ])
    def test_parse(self, value, expected):
        """Test parsing 24-hour and 12-hour strings"""
        assert TimeOfDay.parse(value) == expected

    @pytest.mark.unit
    @pytest.mark.parametrize("value", ["25:00", "12:60", "noonish", "", "9 o'clock"])
    def test_parse_invalid(self, value):
        """Test out-of-range and unrecognised times"""
        with pytest.raises(InvalidTimeError):
            TimeOfDay.parse(value)

    @pytest.mark.unit
    def test_ordering_and_format(self):
        """Test times order by clock position and render as HH:MM"""
        assert TimeOfDay(9, 5) < TimeOfDay(10, 0)
        assert str(TimeOfDay(9, 5)) == "09:05"
        assert TimeOfDay(1, 30).minutes == 90


class TestDateSpec:
    """Test suite for DateSpec"""

    @pytest.mark.unit
    @pytest.mark.parametrize("year,month,day", [
        (2025, 2, 29),
        (2025, 4, 31),
        (2025, 13, 1),
        (2025, 0, 10),
        (2025, 1, 0),
    ])
    def test_nonexistent_dates_rejected(self, year, month, day):
        """Test dates that do not exist cannot be built"""
        with pytest.raises(InvalidDateError):
            DateSpec(year, month, day)

    @pytest.mark.unit
    def test_leap_day(self):
        """Test February 29 in a leap year"""
        assert DateSpec(2024, 2, 29).add_days(1) == DateSpec(2024, 3, 1)

    @pytest.mark.unit
    def test_weekday_counts_from_sunday(self):
        """Test weekday numbering with Sunday as 0"""
        assert DateSpec(2025, 5, 4).weekday == 0
        assert DateSpec(2025, 5, 7).weekday == 3
        assert DateSpec(2025, 5, 10).weekday == 6

    @pytest.mark.unit
    def test_parse_and_format(self):
        """Test ISO parsing and rendering"""
        assert DateSpec.parse("2025-5-7") == DateSpec(2025, 5, 7)
        assert str(DateSpec(2025, 5, 7)) == "2025-05-07"
        with pytest.raises(InvalidDateError):
            DateSpec.parse("05/07/2025")

    @pytest.mark.unit
    def test_add_days_across_year(self):
        """Test date arithmetic"""
        assert DateSpec(2025, 12, 31).add_days(1) == DateSpec(2026, 1, 1)
        assert DateSpec(2025, 5, 7).add_days(-7) == DateSpec(2025, 4, 30)


class TestRecurrenceRule:
    """Test suite for RecurrenceRule"""

    @pytest.mark.unit
    def test_to_rrule(self):
        """Test RFC 5545 rendering"""
        rule = RecurrenceRule(Frequency.WEEKLY, 2, days_of_week={2, 4}, count=5)
        assert rule.to_rrule() == "FREQ=WEEKLY;INTERVAL=2;BYDAY=TU,TH;COUNT=5"

        assert RecurrenceRule(Frequency.DAILY, until=DateSpec(2025, 6, 30)).to_rrule() == \
            "FREQ=DAILY;UNTIL=20250630"

    @pytest.mark.unit
    def test_until_and_count_conflict(self):
        """Test a rule cannot have both an end date and a count"""
        with pytest.raises(RecurrenceConflictError):
            RecurrenceRule(Frequency.DAILY, until=DateSpec(2025, 6, 30), count=3)

    @pytest.mark.unit
    @pytest.mark.parametrize("kwargs", [
        {"interval": 0},
        {"count": 0},
        {"days_of_week": {7}},
    ])
    def test_invalid_values(self, kwargs):
        """Test out-of-range rule values"""
        with pytest.raises(InvalidRecurrenceError):
            RecurrenceRule(Frequency.WEEKLY, **kwargs)

    @pytest.mark.unit
    def test_days_only_for_weekly(self):
        """Test days of week are rejected on other frequencies"""
        with pytest.raises(InvalidRecurrenceError):
            RecurrenceRule(Frequency.MONTHLY, days_of_week={1})

    @pytest.mark.unit
    def test_weekly_occurrences(self):
        """Test expansion of a weekly rule on two days"""
        rule = RecurrenceRule(Frequency.WEEKLY, days_of_week={2, 4}, count=4)

        assert list(rule.occurrences(DateSpec(2025, 5, 6))) == [
            DateSpec(2025, 5, 6), DateSpec(2025, 5, 8), DateSpec(2025, 5, 13), DateSpec(2025, 5, 15),
        ]

    @pytest.mark.unit
    def test_occurrences_until_is_inclusive(self):
        """Test the end date itself is part of the series"""
        rule = RecurrenceRule(Frequency.DAILY, until=DateSpec(2025, 5, 9))
        assert list(rule.occurrences(DateSpec(2025, 5, 7))) == [
            DateSpec(2025, 5, 7), DateSpec(2025, 5, 8), DateSpec(2025, 5, 9),
        ]

    @pytest.mark.unit
    def test_open_ended_occurrences_need_limit(self):
        """Test an unbounded rule must be limited"""
        rule = RecurrenceRule(Frequency.MONTHLY)

        with pytest.raises(InvalidRecurrenceError):
            list(rule.occurrences(DateSpec(2025, 1, 31)))
        assert len(list(rule.occurrences(DateSpec(2025, 1, 15), limit=3))) == 3


class TestContactRef:
    """Test suite for ContactRef"""

    @pytest.mark.unit
    def test_emails_deduplicated(self):
        """Test resolved addresses are de-duplicated case-insensitively"""
        contact = ContactRef("Alice", ("alice@example.com", "ALICE@example.com"))
        assert contact.resolved_emails == ("alice@example.com",)

    @pytest.mark.unit
    def test_with_emails(self):
        """Test adding addresses keeps existing ones first"""
        contact = ContactRef("Alice", ("a@example.com",)).with_emails(["b@example.com", "a@example.com"])
        assert contact.resolved_emails == ("a@example.com", "b@example.com")


class TestCommandKind:
    """Test suite for CommandKind labels"""

    @pytest.mark.unit
    @pytest.mark.parametrize("label,kind", [
        ("create_event", CommandKind.CREATE_EVENT),
        ("Create Event", CommandKind.CREATE_EVENT),
        ("calendar", CommandKind.CREATE_EVENT),
        ("todo", CommandKind.CREATE_REMINDER),
        ("create-reminder", CommandKind.CREATE_REMINDER),
        ("note", CommandKind.CREATE_NOTE),
        ("other", CommandKind.OTHER),
        ("dance", None),
        (None, None),
    ])
    def test_from_label(self, label, kind):
        """Test free-form intent labels"""
        assert CommandKind.from_label(label) is kind


class TestDraftCommand:
    """Test suite for DraftCommand parsing"""

    @pytest.mark.unit
    def test_from_fenced_json(self):
        """Test JSON wrapped in a code fence"""
        draft = DraftCommand.from_payload(SAMPLE_DRAFTS["fenced_json"])

        assert draft.intent == "calendar"
        assert draft.title == "Design Review"
        assert draft.contacts == ["Joe Buck", "Ann Lee"]
        assert draft.emails == ["joe@example.comexample.com"]
        assert draft.zoom is True

    @pytest.mark.unit
    def test_invalid_fields_dropped(self):
        """Test fields that fail validation are dropped, the rest kept"""
        draft = DraftCommand.from_payload(SAMPLE_DRAFTS["invalid_fields"])

        assert draft.title == "Standup"
        assert draft.count is None
        assert draft.interval is None

    @pytest.mark.unit
    @pytest.mark.parametrize("payload", ["not json at all", "[1, 2]", 42, None])
    def test_unusable_payload_gives_empty_draft(self, payload):
        """Test payloads that are not JSON objects never raise"""
        assert DraftCommand.from_payload(payload) == DraftCommand()

    @pytest.mark.unit
    def test_blank_strings_become_none(self):
        """Test empty strings are treated as missing"""
        draft = DraftCommand.from_payload({"title": "  ", "date": "", "contacts": None})

        assert draft.title is None
        assert draft.date is None
        assert draft.contacts == []

    @pytest.mark.unit
    def test_unknown_keys_ignored(self):
        """Test extra keys from the upstream parser are ignored"""
        draft = DraftCommand.from_payload({"title": "Sync", "confidence": 0.3})
        assert draft.title == "Sync"

    @pytest.mark.unit
    def test_event_command_string(self):
        """Test a calendar command line"""
        draft = DraftCommand.from_command_string(SAMPLE_COMMAND_STRINGS["event"])

        assert draft.intent == "create_event"
        assert draft.title == "Standup"
        assert draft.date == "2025-05-08"
        assert (draft.start_time, draft.end_time) == ("09:00", "09:15")
        assert draft.calendar == "Work"
        assert draft.repeat == "weekly"
        assert draft.days == [1, 3]
        assert draft.zoom is True

    @pytest.mark.unit
    def test_todo_command_string(self):
        """Test a reminder command line"""
        draft = DraftCommand.from_command_string(SAMPLE_COMMAND_STRINGS["todo"])

        assert draft.intent == "create_reminder"
        assert draft.title == "Buy milk"
        assert draft.calendar == "Groceries"
        assert (draft.date, draft.start_time) == ("2025-05-08", "18:00")

    @pytest.mark.unit
    def test_note_command_string(self):
        """Test a note command line"""
        draft = DraftCommand.from_command_string(SAMPLE_COMMAND_STRINGS["note"])

        assert draft.intent == "create_note"
        assert draft.title == "Ideas"
        assert draft.description == "Try the new parser"
        assert draft.calendar == "Projects"

    @pytest.mark.unit
    def test_malformed_command_string(self):
        """Test unbalanced quotes give an empty draft"""
        assert DraftCommand.from_command_string('calendar create "Standup') == DraftCommand()


class TestRawUtterance:
    """Test suite for RawUtterance"""

    @pytest.mark.unit
    def test_requires_aware_now(self):
        """Test the reference instant must carry a timezone"""
        with pytest.raises(ValueError):
            RawUtterance("lunch", datetime(2025, 5, 7, 10, 0), LOCAL_TIMEZONE)

    @pytest.mark.unit
    def test_requires_known_zone(self):
        """Test the local zone must exist"""
        with pytest.raises(ValueError):
            RawUtterance("lunch", REFERENCE_NOW, "Atlantis/Capital")

    @pytest.mark.unit
    def test_local_now(self):
        """Test the reference instant is expressed in the local zone"""
        utc_now = datetime(2025, 5, 8, 2, 0, tzinfo=gettz("UTC"))
        utterance = RawUtterance("lunch", utc_now, LOCAL_TIMEZONE)

        local = utterance.local_now()
        assert (local.date().isoformat(), local.hour) == ("2025-05-07", 22)


class TestStructuredCommand:
    """Test suite for StructuredCommand"""

    @pytest.fixture
    def command(self):
        """Midnight-spanning event with a recurrence"""
        return StructuredCommand(
            kind=CommandKind.CREATE_EVENT,
            title="Party",
            timezone=LOCAL_TIMEZONE,
            date=DateSpec(2025, 5, 9),
            start_date=DateSpec(2025, 5, 9),
            start_time=TimeOfDay(22, 0),
            end_date=DateSpec(2025, 5, 10),
            end_time=TimeOfDay(2, 0),
            container="Calendar",
            recurrence=RecurrenceRule(Frequency.WEEKLY, days_of_week={5}, count=3),
            contacts=(ContactRef("Alice"),),
            emails=("bob@example.com",),
        )

    @pytest.mark.unit
    def test_start_and_end(self, command):
        """Test aware start and end instants"""
        assert command.end - command.start == timedelta(hours=4)
        assert command.start.utcoffset() == timedelta(hours=-4)

    @pytest.mark.unit
    def test_to_draft(self, command):
        """Test rendering a command back into a draft"""
        draft = command.to_draft()

        assert draft.intent == "create_event"
        assert (draft.date, draft.start_date, draft.end_date) == ("2025-05-09", "2025-05-09", "2025-05-10")
        assert (draft.start_time, draft.end_time) == ("22:00", "02:00")
        assert draft.calendar == "Calendar"
        assert draft.contacts == ["Alice"]
        assert draft.emails == ["bob@example.com"]
        assert (draft.repeat, draft.interval, draft.count, draft.days) == ("weekly", 1, 3, [5])

    @pytest.mark.unit
    def test_untimed_command_has_no_start(self):
        """Test notes have no start instant"""
        note = StructuredCommand(kind=CommandKind.CREATE_NOTE, title="Ideas", timezone=LOCAL_TIMEZONE)
        assert note.start is None
        assert note.end is None


class TestNormalizationResult:
    """Test suite for NormalizationResult"""

    @pytest.mark.unit
    def test_has_issue(self):
        """Test issues are found in the rejection and the diagnostics"""
        rejected = NormalizationResult(
            state=NormalizationState.REJECTED,
            rejection=Rejection(ResolutionIssue.INVALID_DATE, "no such day", "date"),
            diagnostics=(Diagnostic(ResolutionIssue.AMBIGUOUS_TIME, "read as pm"),),
        )

        assert not rejected.is_finalized
        assert rejected.has_issue(ResolutionIssue.INVALID_DATE)
        assert rejected.has_issue(ResolutionIssue.AMBIGUOUS_TIME)
        assert not rejected.has_issue(ResolutionIssue.INVALID_EMAIL)
