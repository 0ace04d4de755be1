# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Unit test for the helper_time library."""
from datetime import datetime, timedelta, timezone

import pytest
from ad_test_harness.helper_time import (
    can_be_parsed_as_long,
    format_like,
    parse_time_value,
    parse_timestamp,
    to_epoch_millis,
)
from ad_test_harness.opensearch_exceptions import OpenSearchConfigurationError

NEW_YEAR = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "value,expected",
    [
        ("1704067200000", True),
        ("-42", True),
        ("+7", True),
        ("9223372036854775807", True),
        ("-9223372036854775808", True),
        ("9223372036854775808", False),
        ("12.5", False),
        ("2024-01-01T00:00:00Z", False),
        ("", False),
        (None, False),
    ],
)
def test_can_be_parsed_as_long(value, expected):
    assert can_be_parsed_as_long(value) is expected


def test_parse_timestamp_epoch_millis():
    assert parse_timestamp(1704067200000) == NEW_YEAR
    assert parse_timestamp("1704067200000") == NEW_YEAR
    assert parse_timestamp(1704067200123) == NEW_YEAR + timedelta(milliseconds=123)


def test_parse_timestamp_iso():
    assert parse_timestamp("2024-01-01T00:00:00Z") == NEW_YEAR
    assert parse_timestamp("2024-01-01T01:00:00+01:00") == NEW_YEAR
    assert parse_timestamp("2024-01-01T00:00:00.250Z") == NEW_YEAR + timedelta(milliseconds=250)
    assert parse_timestamp("2024-01-01T02:00:00+02:00").tzinfo == timezone.utc


@pytest.mark.parametrize(
    "raw", ["not a date", "2024-01-01T00:00:00", "9223372036854775808", True, 1.5, None]
)
def test_parse_timestamp_invalid(raw):
    with pytest.raises(ValueError):
        parse_timestamp(raw)


def test_to_epoch_millis():
    assert to_epoch_millis(NEW_YEAR) == 1704067200000
    assert to_epoch_millis(NEW_YEAR + timedelta(microseconds=1999)) == 1704067200001
    assert to_epoch_millis(datetime(1970, 1, 1, tzinfo=timezone.utc)) == 0


def test_format_like_keeps_the_representation():
    moment = NEW_YEAR + timedelta(minutes=5, milliseconds=7)

    assert format_like(moment, 1) == 1704067500007
    assert format_like(moment, "1") == "1704067500007"
    assert format_like(moment, "2023-06-01T00:00:00Z") == "2024-01-01T00:05:00.007Z"


@pytest.mark.parametrize(
    "raw", [1704085140000, "1704085140000", "2024-01-01T16:31:00Z", "2024-01-01T16:31:00.123Z"]
)
def test_format_like_is_lossless_at_millisecond_precision(raw):
    moment = parse_timestamp(raw)
    assert parse_timestamp(format_like(moment, raw)) == moment


@pytest.mark.parametrize(
    "value,seconds",
    [
        ("60s", 60.0),
        ("500ms", 0.5),
        ("2m", 120.0),
        ("1h", 3600.0),
        ("1d", 86400.0),
        (" 30S ", 30.0),
        ("0s", 0.0),
    ],
)
def test_parse_time_value(value, seconds):
    assert parse_time_value(value, "client.socket.timeout") == pytest.approx(seconds)


@pytest.mark.parametrize("value", ["", "60", "sixty seconds", "-1s", "1.5s", "10y"])
def test_parse_time_value_invalid(value):
    with pytest.raises(OpenSearchConfigurationError) as error:
        parse_time_value(value, "client.socket.timeout")

    assert "client.socket.timeout" in error.value.message
