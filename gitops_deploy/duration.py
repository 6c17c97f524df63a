"""Parsing of duration strings such as `30s`, `1m` or `1h30m`.

The format matches the one used by kubernetes tooling: an optional sign
followed by one or more decimal numbers, each with a unit suffix. Valid units
are `ns`, `us` (or `µs`), `ms`, `s`, `m` and `h`. A bare `0` is also valid.
Durations must fit in signed 64-bit nanoseconds, a little over 2562047h.
"""

import datetime
from decimal import Decimal
import re

from .exceptions import ConfigError

__all__ = ["parse_duration"]

_NANOSECONDS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_MAX_NANOSECONDS = 2**63 - 1
_COMPONENT = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(value: str) -> datetime.timedelta:
    """Parse a duration string into a timedelta.

    Raises:
        ConfigError: If the string is not a valid duration or is out of range.
    """
    text = value
    sign = 1
    if text[:1] in ("-", "+"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return datetime.timedelta()
    if not text:
        raise ConfigError(f"Invalid duration {value!r}")
    nanoseconds = Decimal(0)
    pos = 0
    while pos < len(text):
        if not (match := _COMPONENT.match(text, pos)):
            raise ConfigError(f"Invalid duration {value!r}")
        number, unit = match.groups()
        nanoseconds += Decimal(number) * _NANOSECONDS[unit]
        if nanoseconds > _MAX_NANOSECONDS:
            raise ConfigError(f"Invalid duration {value!r}: out of range")
        pos = match.end()
    # timedelta has microsecond resolution
    return sign * datetime.timedelta(microseconds=int(nanoseconds) // 1000)
