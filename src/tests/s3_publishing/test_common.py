"""Tests for shared formatting and key helpers."""

import pytest

from s3_publishing.common import format_bytes, format_duration, identifier_from_key, pluralize


@pytest.mark.parametrize(
    "key,prefix,expected",
    [
        ("store/abc", "store/", "abc"),
        ("store/abc", "store", "abc"),
        ("abc", "", "abc"),
    ],
)
def test_identifier_from_key(key, prefix, expected):
    assert identifier_from_key(key, prefix) == expected


@pytest.mark.parametrize(
    "size,expected",
    [(0, "0 B"), (1023, "1023 B"), (1536, "1.5 KB"), (5 * 1024**2, "5.0 MB"), (3 * 1024**5, "3072.0 TB")],
)
def test_format_bytes(size, expected):
    assert format_bytes(size) == expected


@pytest.mark.parametrize(
    "seconds,expected",
    [(0.25, "250ms"), (4.2, "4.2s"), (150, "2m 30s"), (4500, "1h 15m")],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_pluralize():
    assert pluralize(1, "resource") == "resource"
    assert pluralize(2, "resource") == "resources"
