"""Tests for recurrence expansion."""

from datetime import datetime, timedelta

import pytest

from familysync.core.recurrence import (
    MAX_OCCURRENCES,
    RecurrenceRule,
    RecurrenceSpec,
    anchor_id_of,
    expand,
    instance_id,
    is_virtual_id,
    shift,
)


@pytest.fixture
def anchor_start():
    return datetime(2025, 1, 6, 16, 0)  # Monday


@pytest.fixture
def anchor_end(anchor_start):
    return anchor_start + timedelta(hours=1, minutes=30)


class TestNonRecurring:
    def test_inside_window(self, anchor_start, anchor_end):
        occ = expand("e1", anchor_start, anchor_end, None, datetime(2025, 1, 1), datetime(2025, 1, 31))
        assert len(occ) == 1
        assert occ[0].id == "e1"
        assert not occ[0].is_virtual

    def test_outside_window(self, anchor_start, anchor_end):
        occ = expand("e1", anchor_start, anchor_end, None, datetime(2025, 2, 1), datetime(2025, 2, 28))
        assert occ == []

    def test_end_in_window_counts(self, anchor_start, anchor_end):
        window_start = anchor_start + timedelta(minutes=30)
        occ = expand("e1", anchor_start, anchor_end, None, window_start, window_start + timedelta(days=1))
        assert len(occ) == 1


class TestWeekly:
    def test_one_week_window(self, anchor_start, anchor_end):
        spec = RecurrenceSpec(RecurrenceRule.WEEKLY)
        occ = expand("e1", anchor_start, anchor_end, spec, datetime(2025, 1, 5), datetime(2025, 1, 11, 23, 59))
        assert len(occ) == 1
        assert occ[0].id == "e1_inst_0"

    def test_four_week_window(self, anchor_start, anchor_end):
        spec = RecurrenceSpec(RecurrenceRule.WEEKLY)
        occ = expand("e1", anchor_start, anchor_end, spec, datetime(2025, 1, 5), datetime(2025, 2, 1, 23, 59))

        assert [o.id for o in occ] == ["e1_inst_0", "e1_inst_1", "e1_inst_2", "e1_inst_3"]
        for a, b in zip(occ, occ[1:]):
            assert b.start - a.start == timedelta(days=7)
        assert all(o.end - o.start == timedelta(hours=1, minutes=30) for o in occ)

    def test_window_after_anchor_keeps_indices(self, anchor_start, anchor_end):
        spec = RecurrenceSpec(RecurrenceRule.WEEKLY)
        occ = expand("e1", anchor_start, anchor_end, spec, datetime(2025, 1, 19), datetime(2025, 1, 25))
        assert [o.id for o in occ] == ["e1_inst_2"]
        assert occ[0].start == datetime(2025, 1, 20, 16, 0)

    def test_until_stops_series(self, anchor_start, anchor_end):
        spec = RecurrenceSpec(RecurrenceRule.WEEKLY, until=datetime(2025, 1, 20, 23, 59))
        occ = expand("e1", anchor_start, anchor_end, spec, datetime(2025, 1, 1), datetime(2025, 3, 1))
        assert len(occ) == 3

    def test_deterministic_ids(self, anchor_start, anchor_end):
        spec = RecurrenceSpec(RecurrenceRule.WEEKLY)
        window = (datetime(2025, 1, 1), datetime(2025, 3, 1))
        first = expand("e1", anchor_start, anchor_end, spec, *window)
        second = expand("e1", anchor_start, anchor_end, spec, *window)
        assert first == second


class TestDailyAndMonthly:
    def test_daily_capped(self, anchor_start, anchor_end):
        spec = RecurrenceSpec(RecurrenceRule.DAILY)
        occ = expand("e1", anchor_start, anchor_end, spec, datetime(2025, 1, 1), datetime(2027, 12, 31))
        assert len(occ) == MAX_OCCURRENCES
        assert occ[-1].id == f"e1_inst_{MAX_OCCURRENCES - 1}"

    def test_daily_far_window_is_empty(self, anchor_start, anchor_end):
        spec = RecurrenceSpec(RecurrenceRule.DAILY)
        occ = expand("e1", anchor_start, anchor_end, spec, datetime(2027, 1, 1), datetime(2027, 1, 31))
        assert occ == []

    def test_monthly_does_not_drift(self):
        start = datetime(2025, 1, 31, 9)
        spec = RecurrenceSpec(RecurrenceRule.MONTHLY)
        window = (datetime(2025, 1, 1), datetime(2025, 4, 30, 23, 59))
        occ = expand("e1", start, start + timedelta(hours=1), spec, *window)
        assert [o.start.date().isoformat() for o in occ] == [
            "2025-01-31",
            "2025-02-28",
            "2025-03-31",
            "2025-04-30",
        ]


class TestIds:
    def test_round_trip(self):
        vid = instance_id("abc", 4)
        assert is_virtual_id(vid)
        assert anchor_id_of(vid) == "abc"
        assert not is_virtual_id("abc")
        assert anchor_id_of("abc") == "abc"

    def test_shift(self):
        dt = datetime(2025, 1, 15)
        assert shift(dt, RecurrenceRule.DAILY, 2) == datetime(2025, 1, 17)
        assert shift(dt, RecurrenceRule.WEEKLY) == datetime(2025, 1, 22)
        assert shift(dt, RecurrenceRule.MONTHLY) == datetime(2025, 2, 15)


class TestSpecSerialization:
    def test_from_dict_empty(self):
        assert RecurrenceSpec.from_dict(None) is None
        assert RecurrenceSpec.from_dict({"rule": None}) is None

    def test_from_dict(self):
        spec = RecurrenceSpec.from_dict({"rule": "monthly", "until": "2025-06-01T00:00:00"})
        assert spec == RecurrenceSpec(RecurrenceRule.MONTHLY, datetime(2025, 6, 1))
