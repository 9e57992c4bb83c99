"""Timestamp helpers shared by the parser, the budget engine and the store.

Stored timestamps are canonical UTC ISO-8601 strings with millisecond
precision (2026-10-18T09:30:00.000Z). Older records and notification
payloads may carry epoch milliseconds, as a number or a numeric string;
parse_timestamp() accepts all three.
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone, tzinfo

_NUMERIC = re.compile(r"[+-]?\d+(?:\.\d+)?")


def local_now() -> datetime:
    """Current instant as an aware datetime in the system timezone."""
    return datetime.now().astimezone()


def _from_epoch_ms(value: float) -> datetime | None:
    if not math.isfinite(value):
        return None
    try:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _from_iso(value: str) -> datetime | None:
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        # Offset-less ISO strings are wall-clock local time
        parsed = parsed.astimezone()
    return parsed


def parse_timestamp(value) -> datetime | None:
    """Resolve a stored timestamp to an aware datetime.

    Accepts epoch milliseconds (int/float or numeric string), ISO-8601
    strings and datetime instances. Returns None for anything that does
    not resolve to a finite instant; callers decide what an invalid
    timestamp means, this never substitutes the current time.

    A string made only of digits is always epoch milliseconds, never an
    ISO date: "2026" is 2 ms after the epoch, not the year 2026. Stored
    timestamps are either to_iso() output or a notification's numeric
    `time`, so a bare numeric string is only ever the latter.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.astimezone()
    if isinstance(value, (int, float)):
        return _from_epoch_ms(float(value))
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    if _NUMERIC.fullmatch(text):
        return _from_epoch_ms(float(text))
    return _from_iso(text)


def to_iso(dt: datetime) -> str:
    """Canonical stored form: UTC, milliseconds, 'Z' suffix."""
    if dt.tzinfo is None:
        dt = dt.astimezone()
    utc = dt.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def day_key(value, tz: tzinfo | None = None) -> str | None:
    """Local calendar day of a timestamp as zero-padded YYYY-MM-DD.

    tz defaults to the system timezone.
    """
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    local = parsed.astimezone(tz) if tz is not None else parsed.astimezone()
    return f"{local.year:04d}-{local.month:02d}-{local.day:02d}"
