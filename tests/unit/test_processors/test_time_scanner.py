"""
Unit tests for the TimeScanner component.

Tests clock time and range recognition, am/pm inference, masking of
digits that are not times, durations and trailing timezone abbreviations.
"""

import pytest

from calcommand.processors.core.time_scanner import CandidateKind, MeridiemSource, TimeScanner
from calcommand.scheduling.models import TimeOfDay


class TestTimeScanner:
    """Test suite for TimeScanner component"""

    @pytest.fixture
    def scanner(self):
        """Scanner with the default ambiguity window"""
        return TimeScanner()

    @pytest.mark.unit
    @pytest.mark.parametrize("text,expected", [
        ("lunch at 12:30pm", TimeOfDay(12, 30)),
        ("call at 12am", TimeOfDay(0, 0)),
        ("standup at 9:15 AM", TimeOfDay(9, 15)),
        ("deadline at 11:59 p.m.", TimeOfDay(23, 59)),
        ("review at 3 pm", TimeOfDay(15, 0)),
        ("sync at 14:45", TimeOfDay(14, 45)),
        ("gym at 07:00", TimeOfDay(7, 0)),
        ("lunch at noon", TimeOfDay(12, 0)),
        ("deploy at midnight", TimeOfDay(0, 0)),
        ("coffee at 9", TimeOfDay(9, 0)),
    ])
    def test_single_times(self, scanner, text, expected):
        """Test single clock readings in their common spellings"""
        candidate = scanner.scan(text).primary()

        assert candidate.kind is CandidateKind.SINGLE
        assert candidate.start == expected
        assert candidate.end is None
        assert not candidate.low_confidence

    @pytest.mark.unit
    @pytest.mark.parametrize("text,start,end", [
        ("from 9pm to 10pm", TimeOfDay(21, 0), TimeOfDay(22, 0)),
        ("from 2 to 4pm", TimeOfDay(14, 0), TimeOfDay(16, 0)),
        ("from 11 to 1pm", TimeOfDay(11, 0), TimeOfDay(13, 0)),
        ("between 2 and 4pm", TimeOfDay(14, 0), TimeOfDay(16, 0)),
        ("9am-5pm", TimeOfDay(9, 0), TimeOfDay(17, 0)),
        ("from 10am until noon", TimeOfDay(10, 0), TimeOfDay(12, 0)),
        ("from 14:00 to 15:30", TimeOfDay(14, 0), TimeOfDay(15, 30)),
        ("from 9:30 to 11", TimeOfDay(9, 30), TimeOfDay(11, 0)),
    ])
    def test_ranges(self, scanner, text, start, end):
        """Test ranges joined by to, -, until and between ... and"""
        candidate = scanner.scan(text).primary()

        assert candidate.kind is CandidateKind.RANGE
        assert candidate.resolve("pm") == (start, end)

    @pytest.mark.unit
    def test_range_borrows_meridiem(self, scanner):
        """Test a bare range start takes the suffix of its end"""
        candidate = scanner.scan("from 2 to 4pm").primary()

        assert candidate.start_reading.meridiem_source is MeridiemSource.RANGE
        assert not candidate.low_confidence

    @pytest.mark.unit
    def test_bare_numbers_without_trigger_are_ignored(self, scanner):
        """Test numbers that are not introduced as times"""
        assert list(scanner.scan("room 4 is booked")) == []
        assert list(scanner.scan("we need 3 chairs")) == []

    @pytest.mark.unit
    def test_quantities_are_not_times(self, scanner):
        """Test numbers followed by a unit are skipped"""
        candidates = list(scanner.scan("for 2 hours at 3pm"))

        assert len(candidates) == 1
        assert candidates[0].start == TimeOfDay(15, 0)

    @pytest.mark.unit
    def test_day_of_month_is_not_a_time(self, scanner):
        """Test 'May 7' does not produce a time"""
        candidates = list(scanner.scan("May 7 at 3pm"))

        assert [c.start for c in candidates] == [TimeOfDay(15, 0)]

    @pytest.mark.unit
    def test_dates_and_emails_are_masked(self, scanner):
        """Test digits inside dates, emails and URLs are not read as times"""
        text = "2025-05-07 with bob2@example.com see https://x.io/10 on 5/20 at 4pm"
        candidates = list(scanner.scan(text))

        assert [c.start for c in candidates] == [TimeOfDay(16, 0)]

    @pytest.mark.unit
    def test_ambiguous_hour_is_low_confidence(self, scanner):
        """Test a bare small hour cannot be placed without a policy"""
        candidate = scanner.scan("standup at 7").primary()

        assert candidate.low_confidence
        assert candidate.start is None
        assert candidate.resolve("pm")[0] == TimeOfDay(19, 0)
        assert candidate.resolve("am")[0] == TimeOfDay(7, 0)

    @pytest.mark.unit
    def test_ambiguity_window_is_configurable(self):
        """Test hours up to ambiguous_hour_max are ambiguous"""
        scanner = TimeScanner(ambiguous_hour_max=9)

        assert scanner.scan("coffee at 9").primary().low_confidence
        assert not scanner.scan("coffee at 10").primary().low_confidence

    @pytest.mark.unit
    def test_free_standing_meridiem_applies_to_clause(self, scanner):
        """Test 'in the pm' settles an ambiguous hour in the same clause"""
        candidate = scanner.scan("dinner at 6 in the pm").primary()

        assert candidate.start == TimeOfDay(18, 0)
        assert candidate.start_reading.meridiem_source is MeridiemSource.CLAUSE

    @pytest.mark.unit
    def test_pronoun_i_am_is_not_a_meridiem(self, scanner):
        """Test 'I am' does not make a time morning"""
        candidate = scanner.scan("I am free at 5").primary()
        assert candidate.low_confidence

    @pytest.mark.unit
    def test_crosses_midnight(self, scanner):
        """Test ranges written to run past midnight"""
        assert scanner.scan("from 10pm to 2am").primary().crosses_midnight()
        assert scanner.scan("from 10pm to midnight").primary().crosses_midnight()
        assert scanner.scan("from 22:00 to 01:30").primary().crosses_midnight()
        assert not scanner.scan("from 3pm to 1pm").primary().crosses_midnight()
        assert not scanner.scan("from 9am to 5pm").primary().crosses_midnight()

    @pytest.mark.unit
    def test_primary_prefers_range(self, scanner):
        """Test the first range wins over an earlier single time"""
        candidate = scanner.scan("leave at 8am, meeting from 9am to 10am").primary()

        assert candidate.kind is CandidateKind.RANGE
        assert candidate.start == TimeOfDay(9, 0)

    @pytest.mark.unit
    def test_primary_prefers_explicit_time_over_bare_number(self, scanner):
        """Test a time with am/pm wins over an earlier bare number"""
        candidate = scanner.scan("book dinner for 4 at 7pm").primary()

        assert candidate.start == TimeOfDay(19, 0)
        assert not candidate.low_confidence
        assert scanner.scan("table for 4 at 7:30").primary().start_reading.minute == 30

    @pytest.mark.unit
    def test_scan_is_restartable(self, scanner):
        """Test the scan result can be iterated more than once"""
        scan = scanner.scan("at 9am and again at 4pm")

        first = list(scan)
        assert first == list(scan)
        assert [c.start for c in first] == [TimeOfDay(9, 0), TimeOfDay(16, 0)]

    @pytest.mark.unit
    def test_candidate_spans_point_into_text(self, scanner):
        """Test candidate text is the slice of the original text"""
        text = "Meet From 9PM to 10PM"
        candidate = scanner.scan(text).primary()

        assert text[candidate.span[0]:candidate.span[1]] == candidate.text

    @pytest.mark.unit
    @pytest.mark.parametrize("text,expected", [
        ("call at 9pm pst", "PST"),
        ("call at 9pm (EST)", "EST"),
        ("call at 9pm ET", "ET"),
        ("call at 3pm XYZ", "XYZ"),
        ("call at 9pm et al", None),
        ("call at 9pm tomorrow", None),
        ("call at 9pm", None),
    ])
    def test_trailing_timezone(self, scanner, text, expected):
        """Test timezone abbreviations written after the time"""
        assert scanner.scan(text).primary().timezone == expected

    @pytest.mark.unit
    def test_range_timezone_follows_end(self, scanner):
        """Test a range picks up the zone written after its end"""
        assert scanner.scan("from 9am to 10am PT").primary().timezone == "PT"

    @pytest.mark.unit
    @pytest.mark.parametrize("text,expected", [
        ("workshop for 2 hours", 120),
        ("workshop for 1.5 hours", 90),
        ("call for 45 minutes", 45),
        ("call for 1 hour and 30 minutes", 90),
        ("call for an hour and a half", 90),
        ("call for half an hour", 30),
        ("call for an hour", 60),
        ("call at 3pm", None),
    ])
    def test_scan_duration(self, scanner, text, expected):
        """Test explicit durations"""
        assert scanner.scan_duration(text) == expected
