"""Tests for byte and duration formatting."""

from datetime import timedelta

import pytest

from routerwatch.tracking.formatting import format_bytes, format_duration


@pytest.mark.parametrize(
    "value,expected",
    [
        (0, "0 B"),
        (-5, "0 B"),
        (512, "512 B"),
        (1024, "1 KB"),
        (1536, "1.5 KB"),
        (1048576, "1 MB"),
        (5 * 1024**3 + 256 * 1024**2, "5.25 GB"),
        (3 * 1024**5, "3072 TB"),
    ],
)
def test_format_bytes(value, expected):
    assert format_bytes(value) == expected


@pytest.mark.parametrize(
    "value,expected",
    [
        (timedelta(seconds=4), "4s"),
        (timedelta(minutes=3, seconds=4), "3m 4s"),
        (timedelta(hours=2, minutes=3, seconds=59), "2h 3m"),
        (timedelta(days=1, hours=2, minutes=3), "1d 2h 3m"),
        (timedelta(0), "0s"),
        (timedelta(seconds=-30), "0s"),
    ],
)
def test_format_duration(value, expected):
    assert format_duration(value) == expected
