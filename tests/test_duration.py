"""Tests for ISO 8601 duration parsing and run time formatting."""

import datetime as dt

import pytest

from rolekeeper.analyzer.duration import format_seconds, parse_duration
from rolekeeper.errors import ConfigError


class TestParseDuration:
    @pytest.mark.parametrize("text,expected", [
        ("PT1H", dt.timedelta(hours=1)),
        ("PT59M59.5S", dt.timedelta(minutes=59, seconds=59.5)),
        ("PT1M2.345S", dt.timedelta(seconds=62.345)),
        ("P1DT2H", dt.timedelta(days=1, hours=2)),
        ("pt30s", dt.timedelta(seconds=30)),
    ])
    def test_valid(self, text, expected):
        assert parse_duration(text) == expected

    def test_millisecond_precision(self):
        assert parse_duration("PT0.0004S") == dt.timedelta(0)
        assert parse_duration("PT1.2346S") == dt.timedelta(milliseconds=1235)

    @pytest.mark.parametrize("text", ["", "P", "PT", "1H", "P1Y", "P1M", "PT1X", "one hour"])
    def test_invalid(self, text):
        with pytest.raises(ConfigError):
            parse_duration(text)


class TestFormatSeconds:
    @pytest.mark.parametrize("seconds,expected", [
        (62.345, "1:02.345"),
        (3723.45, "1:02:03.450"),
        (59, "0:59"),
        (3600, "1:00:00"),
    ])
    def test_format(self, seconds, expected):
        assert format_seconds(seconds) == expected
