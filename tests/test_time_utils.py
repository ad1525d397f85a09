"""
Tests for time utilities
"""
from datetime import date, datetime, timezone

import pytest
from freezegun import freeze_time

from utils.time_utils import (
    FixedClock,
    SystemClock,
    at_local_hour,
    local_date,
    now_utc,
    parse_iso_to_utc,
    parse_optional,
    to_utc,
)

from conftest import utc


class TestTimeUtils:

    @freeze_time("2024-01-15 10:30:00")
    def test_now_utc(self):
        now = now_utc()
        assert now == utc(2024, 1, 15, 10, 30)
        assert now.tzinfo is not None

    @freeze_time("2024-01-15 10:30:00")
    def test_system_clock_reads_wall_clock(self):
        assert SystemClock().now() == utc(2024, 1, 15, 10, 30)

    def test_parse_iso_with_z_suffix(self):
        assert parse_iso_to_utc("2024-01-02T09:00:00Z") == utc(2024, 1, 2, 9)

    def test_parse_iso_converts_offsets(self):
        assert parse_iso_to_utc("2024-01-02T09:00:00-05:00") == utc(2024, 1, 2, 14)

    def test_parse_iso_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_iso_to_utc("not a date")

    def test_parse_optional(self):
        assert parse_optional(None) is None
        assert parse_optional("") is None
        assert parse_optional("2024-01-02T09:00:00+00:00") == utc(2024, 1, 2, 9)

    def test_to_utc_localizes_naive_values(self):
        naive = datetime(2024, 7, 1, 9, 0)
        assert to_utc(naive) == utc(2024, 7, 1, 9)
        assert to_utc(naive, "America/New_York") == utc(2024, 7, 1, 13)

    def test_at_local_hour_follows_daylight_saving(self):
        assert at_local_hour(date(2024, 1, 15), 9, "America/New_York") == utc(2024, 1, 15, 14)
        assert at_local_hour(date(2024, 7, 15), 9, "America/New_York") == utc(2024, 7, 15, 13)

    def test_at_local_hour_unknown_timezone_is_utc(self):
        assert at_local_hour(date(2024, 1, 15), 9, "Nowhere/Land") == utc(2024, 1, 15, 9)

    def test_local_date(self):
        late_evening_utc = datetime(2024, 1, 2, 3, 0, tzinfo=timezone.utc)
        assert local_date(late_evening_utc, "America/Los_Angeles") == date(2024, 1, 1)
        assert local_date(date(2024, 1, 2), "America/Los_Angeles") == date(2024, 1, 2)


class TestFixedClock:

    def test_set_and_advance(self):
        clock = FixedClock(utc(2024, 1, 1, 8))
        assert clock.advance(minutes=6) == utc(2024, 1, 1, 8, 6)

        clock.set(datetime(2024, 2, 1, 12, 0))
        assert clock.now() == utc(2024, 2, 1, 12)

    def test_naive_start_is_treated_as_utc(self):
        assert FixedClock(datetime(2024, 1, 1)).now() == utc(2024, 1, 1)
