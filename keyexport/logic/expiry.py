"""Expiry date resolution for entitlements.

Stored entitlements either carry an ``expiry_date`` field or mention the
deadline in their redemption instructions ("Offer expires January 5th,
2024 by 11:59 PM PST"). Both are turned into a UTC ISO timestamp; a
date without a time is returned as a bare ``YYYY-MM-DD`` so no precision
is invented.
"""

from __future__ import annotations

import functools
import pathlib
import re

import yaml

from keyexport.utils.dates import (
    check_timezone,
    parse_loose,
    parse_timestamp,
    timezone_name,
    to_iso_utc,
    zoned_time_to_utc,
)
from keyexport.utils.html import html_to_text

ALIASES_PATH = pathlib.Path(__file__).with_name("timezones.yml")

MONTHS = {
    "january": 1,
    "february": 2,
    "march": 3,
    "april": 4,
    "may": 5,
    "june": 6,
    "july": 7,
    "august": 8,
    "september": 9,
    "october": 10,
    "november": 11,
    "december": 12,
}

OFFSET_RE = re.compile(r"[zZ]$|[+-]\d{2}:?\d{2}$")
DATE_ONLY_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
DATE_TIME_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})[ T](\d{2}):(\d{2})(?::(\d{2}))?")
EXPIRY_TEXT_RE = re.compile(
    r"\b(" + "|".join(MONTHS) + r")\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})(?:\s+(?:by|at)\s+([^.;]+))?",
    re.IGNORECASE,
)
TIME_RE = re.compile(r"(\d{1,2})(?::(\d{2}))?(?::(\d{2}))?\s*(AM|PM)\s*(.*)", re.IGNORECASE)


@functools.lru_cache(maxsize=1)
def load_timezone_aliases() -> tuple[tuple[str, str], ...]:
    data = yaml.safe_load(ALIASES_PATH.read_text())
    return tuple((item["alias"], item["tz"]) for item in data)


def pick_timezone(text: str, default_tz: str | None = None) -> str:
    default = default_tz or timezone_name()
    cleaned = text.replace("(", "").replace(")", "").strip()
    if not cleaned:
        return default
    for alias, tz in load_timezone_aliases():
        if re.search(rf"\b{re.escape(alias)}\b", cleaned):
            return tz
    return default


def resolve_expiry(
    expiry_date: str | None,
    instructions_html: str | None = None,
    *,
    default_tz: str | None = None,
) -> str:
    direct = (expiry_date or "").strip()
    if direct:
        return normalize_expiry(direct, default_tz=default_tz)
    html = (instructions_html or "").strip()
    if not html:
        return ""
    return parse_expiry_text(html_to_text(html), default_tz=default_tz)


def normalize_expiry(value: str, *, default_tz: str | None = None) -> str:
    tz = default_tz or timezone_name()
    if OFFSET_RE.search(value):
        parsed = parse_timestamp(value) or parse_loose(value)
        return to_iso_utc(parsed) if parsed else ""

    match = DATE_ONLY_RE.match(value)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return _zoned_iso(year, month, day, 23, 59, 59, tz=tz, fallback=value)

    match = DATE_TIME_RE.match(value)
    if match:
        year, month, day, hour, minute = (int(part) for part in match.groups()[:5])
        second = int(match.group(6) or 0)
        return _zoned_iso(year, month, day, hour, minute, second, tz=tz, fallback=value)

    parsed = parse_loose(value)
    return to_iso_utc(parsed) if parsed else ""


def parse_expiry_text(text: str, *, default_tz: str | None = None) -> str:
    match = EXPIRY_TEXT_RE.search(text)
    if not match:
        return ""
    month_name, day_text, year_text, tail = match.groups()
    year, month, day = int(year_text), MONTHS[month_name.lower()], int(day_text)
    date_only = f"{year:04d}-{month:02d}-{day:02d}"
    if not tail:
        return date_only

    time_match = TIME_RE.search(tail.strip())
    if not time_match:
        return date_only
    hour_text, minute_text, second_text, meridiem, tz_text = time_match.groups()
    hour = int(hour_text) % 12
    if meridiem.upper() == "PM":
        hour += 12
    tz = pick_timezone(tz_text or "", default_tz)
    return _zoned_iso(year, month, day, hour, int(minute_text or 0), int(second_text or 0), tz=tz, fallback="")


def _zoned_iso(
    year: int, month: int, day: int, hour: int, minute: int, second: int, *, tz: str, fallback: str
) -> str:
    tz = check_timezone(tz)
    try:
        return to_iso_utc(zoned_time_to_utc(year, month, day, hour, minute, second, tz=tz))
    except ValueError:
        # Out-of-range fields such as 2024-02-30.
        parsed = parse_loose(fallback) if fallback else None
        return to_iso_utc(parsed) if parsed else ""
