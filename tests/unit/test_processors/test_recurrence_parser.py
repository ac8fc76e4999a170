"""
Unit tests for the RecurrenceParser component.

Series start on Wednesday 2025-05-07 unless a test says otherwise.
"""

import pytest

from calcommand.core.error_handler import (
    InvalidRecurrenceError,
    RecurrenceConflictError,
    ResolutionIssue,
)
from calcommand.processors.core.recurrence_parser import RecurrenceParser
from calcommand.scheduling.models import DateSpec, Frequency
from tests.fixtures.sample_data import REFERENCE_NOW

START = DateSpec(2025, 5, 7)


class TestRecurrenceParser:
    """Test suite for RecurrenceParser component"""

    @pytest.fixture
    def parser(self):
        """Parser with default limits"""
        return RecurrenceParser()

    def parse(self, parser, text, **kwargs):
        kwargs.setdefault("start_date", START)
        kwargs.setdefault("now", REFERENCE_NOW)
        return parser.parse(text, **kwargs)

    @pytest.mark.unit
    @pytest.mark.parametrize("text,frequency,interval,days", [
        ("standup daily", Frequency.DAILY, 1, set()),
        ("every day at 9", Frequency.DAILY, 1, set()),
        ("weekly sync", Frequency.WEEKLY, 1, {3}),
        ("biweekly review", Frequency.WEEKLY, 2, {3}),
        ("every other week", Frequency.WEEKLY, 2, {3}),
        ("every 3 days", Frequency.DAILY, 3, set()),
        ("every two months", Frequency.MONTHLY, 2, set()),
        ("monthly report", Frequency.MONTHLY, 1, set()),
        ("annually", Frequency.YEARLY, 1, set()),
        ("every Tuesday and Thursday", Frequency.WEEKLY, 1, {2, 4}),
        ("each Monday, Wednesday and Friday", Frequency.WEEKLY, 1, {1, 3, 5}),
        ("every other Friday", Frequency.WEEKLY, 2, {5}),
        ("every weekday", Frequency.WEEKLY, 1, {1, 2, 3, 4, 5}),
        ("every weekend", Frequency.WEEKLY, 1, {0, 6}),
        ("gym on Mondays and Thursdays", Frequency.WEEKLY, 1, {1, 4}),
        ("weekly on Monday and Friday", Frequency.WEEKLY, 1, {1, 5}),
    ])
    def test_frequency_phrases(self, parser, text, frequency, interval, days):
        """Test recurrence phrases and the weekday default for weekly rules"""
        rule = self.parse(parser, text).rule

        assert rule.frequency is frequency
        assert rule.interval == interval
        assert rule.days_of_week == frozenset(days)

    @pytest.mark.unit
    def test_no_recurrence(self, parser):
        """Test text without recurrence yields no rule"""
        parse = self.parse(parser, "lunch with Bob on Friday")

        assert not parse.is_recurring
        assert parse.diagnostics == ()

    @pytest.mark.unit
    def test_until_date(self, parser):
        """Test 'until <date>' ends the series"""
        rule = self.parse(parser, "daily until June 30").rule

        assert rule.until == DateSpec(2025, 6, 30)
        assert rule.count is None

    @pytest.mark.unit
    def test_count(self, parser):
        """Test occurrence counts"""
        assert self.parse(parser, "daily for 10 times").rule.count == 10
        assert self.parse(parser, "weekly for 6 weeks").rule.count == 6
        assert self.parse(parser, "every Monday, 4 occurrences").rule.count == 4

    @pytest.mark.unit
    def test_period_in_other_unit_becomes_end_date(self, parser):
        """Test 'weekly for 3 months' ends the day before three months are up"""
        rule = self.parse(parser, "weekly for 3 months").rule

        assert rule.until == DateSpec(2025, 8, 6)
        assert rule.count is None

    @pytest.mark.unit
    @pytest.mark.parametrize("text,until", [
        ("every Monday and Friday for 4 weeks", DateSpec(2025, 6, 3)),
        ("every other week for 6 weeks", DateSpec(2025, 6, 17)),
    ])
    def test_period_with_several_occurrences_per_unit_becomes_end_date(self, parser, text, until):
        """Test a period ends by date when a week holds other than one occurrence"""
        rule = self.parse(parser, text).rule

        assert rule.until == until
        assert rule.count is None

    @pytest.mark.unit
    def test_ordinal_monthly_weekday_reported(self, parser):
        """Test 'the first Friday' is flagged because the rule keeps the day of the month"""
        parse = self.parse(parser, "monthly on the first Friday")

        assert parse.rule.frequency is Frequency.MONTHLY
        assert parse.rule.days_of_week == frozenset()
        assert [d.issue for d in parse.diagnostics] == [ResolutionIssue.INVALID_RECURRENCE]
        assert self.parse(parser, "monthly report").diagnostics == ()

    @pytest.mark.unit
    def test_until_and_count_keeps_until(self, parser):
        """Test a conflicting count is dropped with a diagnostic"""
        parse = self.parse(parser, "daily for 10 times until June 30")

        assert parse.rule.until == DateSpec(2025, 6, 30)
        assert parse.rule.count is None
        assert [d.issue for d in parse.diagnostics] == [ResolutionIssue.RECURRENCE_CONFLICT]

    @pytest.mark.unit
    def test_until_and_count_rejected_when_configured(self):
        """Test conflicts raise when configured to reject"""
        parser = RecurrenceParser(reject_on_conflict=True)

        with pytest.raises(RecurrenceConflictError):
            self.parse(parser, "daily for 10 times until June 30")

    @pytest.mark.unit
    def test_interval_limit(self, parser):
        """Test intervals above the limit are rejected"""
        with pytest.raises(InvalidRecurrenceError):
            self.parse(parser, "every 200 days")

    @pytest.mark.unit
    def test_count_limit(self):
        """Test counts above the limit are rejected"""
        parser = RecurrenceParser(max_count=20)

        with pytest.raises(InvalidRecurrenceError):
            self.parse(parser, "daily for 30 times")

    @pytest.mark.unit
    def test_until_before_start_rejected(self, parser):
        """Test a series cannot end before it starts"""
        with pytest.raises(InvalidRecurrenceError):
            self.parse(parser, "", flags={"repeat": "daily", "until": "2025-05-01"})

    @pytest.mark.unit
    def test_invalid_until_date_rejected(self, parser):
        """Test an end date that does not exist is an invalid recurrence"""
        with pytest.raises(InvalidRecurrenceError):
            self.parse(parser, "", flags={"repeat": "daily", "until": "2025-02-30"})

    @pytest.mark.unit
    def test_text_flags(self, parser):
        """Test --repeat style flags in the text"""
        rule = self.parse(parser, "standup --repeat weekly --days 1,3 --count 4").rule

        assert rule.frequency is Frequency.WEEKLY
        assert rule.days_of_week == frozenset({1, 3})
        assert rule.count == 4

    @pytest.mark.unit
    def test_draft_flags(self, parser):
        """Test hints passed as flags"""
        rule = self.parse(parser, "", flags={"repeat": "weekly", "interval": 2, "days": [2, 4],
                                              "until": "2025-07-01"}).rule

        assert rule.to_rrule() == "FREQ=WEEKLY;INTERVAL=2;BYDAY=TU,TH;UNTIL=20250701"

    @pytest.mark.unit
    def test_text_flags_win_over_hints(self, parser):
        """Test flags written in the text beat flags passed in"""
        rule = self.parse(parser, "--repeat daily", flags={"repeat": "weekly"}).rule
        assert rule.frequency is Frequency.DAILY

    @pytest.mark.unit
    def test_days_dropped_for_non_weekly(self, parser):
        """Test days of week are dropped from non-weekly rules"""
        parse = self.parse(parser, "", flags={"repeat": "monthly", "days": [1]})

        assert parse.rule.frequency is Frequency.MONTHLY
        assert parse.rule.days_of_week == frozenset()
        assert [d.issue for d in parse.diagnostics] == [ResolutionIssue.INVALID_RECURRENCE]

    @pytest.mark.unit
    def test_details_without_frequency(self, parser):
        """Test flags without a frequency are reported and ignored"""
        parse = self.parse(parser, "", flags={"count": 3})

        assert not parse.is_recurring
        assert [d.issue for d in parse.diagnostics] == [ResolutionIssue.INVALID_RECURRENCE]

    @pytest.mark.unit
    @pytest.mark.parametrize("flags", [
        {"repeat": "daily", "interval": 0},
        {"repeat": "daily", "count": "many"},
        {"repeat": "weekly", "days": "1,9"},
        {"repeat": "weekly", "days": "mon"},
    ])
    def test_invalid_flag_values(self, parser, flags):
        """Test malformed flag values are rejected"""
        with pytest.raises(InvalidRecurrenceError):
            self.parse(parser, "", flags=flags)

    @pytest.mark.unit
    def test_unknown_repeat_value_ignored(self, parser):
        """Test an unrecognised repeat word yields no rule"""
        assert not self.parse(parser, "", flags={"repeat": "sometimes"}).is_recurring

    @pytest.mark.unit
    def test_weekly_without_start_date_has_no_default_days(self, parser):
        """Test weekday default needs a start date"""
        rule = parser.parse("weekly", now=REFERENCE_NOW).rule
        assert rule.days_of_week == frozenset()

    @pytest.mark.unit
    def test_end_spans(self, parser):
        """Test spans of end dates and flags are reported for masking"""
        text = "standup daily until June 30 --count 5"
        spans = parser.end_spans(text)

        assert [text[start:end] for start, end in spans] == ["until June 30", "--count 5"]

    @pytest.mark.unit
    def test_occurrences_of_parsed_rule(self, parser):
        """Test a parsed rule expands to the expected dates"""
        rule = self.parse(parser, "every Tuesday and Thursday for 4 times").rule
        dates = list(rule.occurrences(DateSpec(2025, 5, 6)))

        assert dates == [DateSpec(2025, 5, 6), DateSpec(2025, 5, 8), DateSpec(2025, 5, 13), DateSpec(2025, 5, 15)]
