"""Datetime helpers."""

from __future__ import annotations

import os

import pendulum

DEFAULT_TZ = "America/Los_Angeles"


def timezone_name() -> str:
    return os.environ.get("TIMEZONE", DEFAULT_TZ)


def check_timezone(name: str) -> str:
    """Return ``name`` unchanged, raising ``InvalidTimezone`` for an unknown zone."""
    pendulum.timezone(name)
    return name


def now_utc() -> pendulum.DateTime:
    return pendulum.now("UTC")


def _offset_seconds(instant: pendulum.DateTime, tz: str) -> int:
    return instant.in_timezone(tz).offset


def zoned_time_to_utc(
    year: int,
    month: int,
    day: int,
    hour: int = 0,
    minute: int = 0,
    second: int = 0,
    *,
    tz: str,
) -> pendulum.DateTime:
    """Return the UTC instant whose wall clock in ``tz`` reads the given fields.

    The first pass treats the fields as UTC and subtracts the zone offset
    observed at that guess. If the offset at the corrected instant differs
    (the guess crossed a DST boundary), the second offset is applied to the
    original fields instead.
    """
    naive = pendulum.datetime(year, month, day, hour, minute, second, tz="UTC")
    first = _offset_seconds(naive, tz)
    guess = naive.subtract(seconds=first)
    second_offset = _offset_seconds(guess, tz)
    if second_offset != first:
        guess = naive.subtract(seconds=second_offset)
    return guess


def to_iso_utc(value: pendulum.DateTime) -> str:
    utc = value.in_timezone("UTC")
    return f"{utc.strftime('%Y-%m-%dT%H:%M:%S')}.{utc.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> pendulum.DateTime | None:
    if not value:
        return None
    try:
        parsed = pendulum.parse(value)
    except ValueError:
        return None
    if not isinstance(parsed, pendulum.DateTime):
        return None
    return parsed


def parse_loose(value: str) -> pendulum.DateTime | None:
    """Best-effort parse of an arbitrary date string, UTC when no zone is given."""
    try:
        parsed = pendulum.parse(value, strict=False)
    except (ValueError, OverflowError):
        return None
    if isinstance(parsed, pendulum.DateTime):
        return parsed
    if isinstance(parsed, pendulum.Date):
        return pendulum.datetime(parsed.year, parsed.month, parsed.day, tz="UTC")
    return None
