"""
Tests for the UTC datetime helpers.
"""

from datetime import datetime, timedelta, timezone

import pytest

from cairn.core.utils.datetime_utils import (
    ensure_utc,
    format_iso,
    parse_iso_datetime,
    set_mock_time,
    utc_now,
    utc_now_testable,
)


class TestDatetimeUtils:
    def test_utc_now_is_aware(self):
        assert utc_now().tzinfo == timezone.utc

    def test_ensure_utc(self):
        naive = datetime(2024, 1, 1, 12, 0)
        offset = datetime(2024, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

        assert ensure_utc(naive).tzinfo == timezone.utc
        assert ensure_utc(offset) == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_format_and_parse(self):
        dt = datetime(2024, 1, 15, 10, 30, 45, tzinfo=timezone.utc)

        text = format_iso(dt)

        assert text == "2024-01-15T10:30:45Z"
        assert parse_iso_datetime(text) == dt

    def test_parse_invalid(self):
        with pytest.raises(ValueError):
            parse_iso_datetime("yesterday")

    def test_mock_time(self):
        fixed = datetime(2024, 1, 1, tzinfo=timezone.utc)
        set_mock_time(fixed)
        try:
            assert utc_now_testable() == fixed
        finally:
            set_mock_time(None)
        assert utc_now_testable() != fixed
