"""Shared utilities for CAIRN core."""

from cairn.core.utils.datetime_utils import (
    utc_now,
    utc_now_iso,
    utc_now_testable,
    ensure_utc,
    parse_iso_datetime,
    format_iso,
    set_mock_time,
)

__all__ = [
    "utc_now",
    "utc_now_iso",
    "utc_now_testable",
    "ensure_utc",
    "parse_iso_datetime",
    "format_iso",
    "set_mock_time",
]
