"""Tests for time helpers."""

from datetime import date, datetime, timedelta, timezone

import pytest

from blips.timeutil import format_relative_time, format_timestamp, parse_timestamp

from conftest import NOW


@pytest.mark.parametrize(
    "delta, expected",
    [
        (timedelta(seconds=30), "just now"),
        (timedelta(minutes=1), "1 minute ago"),
        (timedelta(minutes=5), "5 minutes ago"),
        (timedelta(hours=2), "2 hours ago"),
        (timedelta(days=1), "1 day ago"),
        (timedelta(days=15), "2 weeks ago"),
        (timedelta(days=65), "2 months ago"),
        (timedelta(days=800), "2 years ago"),
        (timedelta(hours=-1), "in the future"),
    ],
)
def test_format_relative_time(delta, expected):
    assert format_relative_time(NOW - delta, now=NOW) == expected


def test_format_relative_time_accepts_naive():
    assert format_relative_time(datetime(2026, 3, 1, 10, 0), now=NOW) == "2 hours ago"


class TestParseTimestamp:
    def test_iso_round_trip(self):
        stamp = NOW + timedelta(microseconds=17)
        assert parse_timestamp(format_timestamp(stamp)) == stamp

    def test_zulu_suffix(self):
        assert parse_timestamp("2026-03-01T12:00:00.000Z") == NOW

    def test_offset_is_converted_to_utc(self):
        assert parse_timestamp("2026-03-01T14:00:00+02:00") == NOW

    def test_yaml_date(self):
        assert parse_timestamp(date(2026, 3, 1)) == datetime(2026, 3, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "whenever", 42])
    def test_unparseable(self, value):
        assert parse_timestamp(value) is None
