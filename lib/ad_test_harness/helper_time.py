# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Utility functions for timestamps and time values."""
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

from ad_test_harness.opensearch_exceptions import OpenSearchConfigurationError

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_LONG_MIN = -(2**63)
_LONG_MAX = 2**63 - 1
_LONG_PATTERN = re.compile(r"^[+-]?\d+$")
_TIME_VALUE_PATTERN = re.compile(r"^(-?\d+)\s*(nanos|micros|ms|s|m|h|d)$")
_TIME_UNITS = {
    "nanos": 1e-9,
    "micros": 1e-6,
    "ms": 1e-3,
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 24 * 60 * 60,
}


def can_be_parsed_as_long(value: Optional[str]) -> bool:
    """Returns whether the given string holds a signed 64-bit integer."""
    if not isinstance(value, str) or not _LONG_PATTERN.match(value):
        return False

    return _LONG_MIN <= int(value) <= _LONG_MAX


def parse_timestamp(raw: Union[int, str]) -> datetime:
    """Parse a fixture timestamp into a UTC datetime.

    Integers, and strings holding a 64-bit integer, are epoch milliseconds.
    Anything else must be an ISO-8601 instant.

    Raises:
        ValueError: if the value is neither.
    """
    if isinstance(raw, bool):
        raise ValueError(f"Unsupported timestamp: {raw!r}")

    if isinstance(raw, int):
        raw = str(raw)

    if can_be_parsed_as_long(raw):
        try:
            return _EPOCH + timedelta(milliseconds=int(raw))
        except OverflowError as e:
            raise ValueError(f"Timestamp out of range: {raw!r}") from e

    if not isinstance(raw, str):
        raise ValueError(f"Unsupported timestamp: {raw!r}")

    iso = f"{raw[:-1]}+00:00" if raw.endswith(("Z", "z")) else raw
    parsed = datetime.fromisoformat(iso)
    if parsed.tzinfo is None:
        raise ValueError(f"Timestamp has no offset: {raw!r}")

    return parsed.astimezone(timezone.utc)


def to_epoch_millis(moment: datetime) -> int:
    """Epoch milliseconds of an aware datetime."""
    delta = moment - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def format_like(moment: datetime, raw: Any) -> Union[int, str]:
    """Format a datetime in the same representation class as a raw fixture timestamp."""
    if isinstance(raw, int) and not isinstance(raw, bool):
        return to_epoch_millis(moment)
    if isinstance(raw, str) and can_be_parsed_as_long(raw):
        return str(to_epoch_millis(moment))

    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def parse_time_value(value: str, setting: str) -> float:
    """Parse an OpenSearch time value such as ``60s`` or ``500ms`` into seconds."""
    match = _TIME_VALUE_PATTERN.match(value.strip().lower()) if value else None
    if not match:
        raise OpenSearchConfigurationError(
            f"failed to parse setting [{setting}] with value [{value}] as a time value"
        )

    amount, unit = match.groups()
    if int(amount) < 0:
        raise OpenSearchConfigurationError(
            f"failed to parse setting [{setting}] with value [{value}]: negative time value"
        )

    return int(amount) * _TIME_UNITS[unit]
