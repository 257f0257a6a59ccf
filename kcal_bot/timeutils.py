"""Time conversions and small text helpers used by the stat messages."""

from __future__ import annotations

import math
import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from .errors import FormatError, ParseError


STORAGE_FORMAT = "%Y-%m-%d %H:%M:%S"
STORAGE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}")

# Decimal separator may be "," or "."; no exponent, no grouping.
NUMBER_PATTERN = re.compile(r"[+-]?(?:\d+(?:[.,]\d*)?|[.,]\d+)")

MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


class DisplayPattern(str, Enum):
    SHORT = "short"
    LONG = "long"


def utc_now() -> datetime:
    """Current UTC instant truncated to whole seconds."""

    return datetime.now(timezone.utc).replace(microsecond=0)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_storage_format(value: datetime) -> str:
    """Encode an instant as ``YYYY-MM-DD HH:MM:SS`` in UTC.

    Naive datetimes are taken to be UTC already.
    """

    return _as_utc(value).strftime(STORAGE_FORMAT)


def from_storage_format(text: str) -> datetime:
    """Decode a storage timestamp into an aware UTC datetime."""

    if not isinstance(text, str) or not STORAGE_PATTERN.fullmatch(text):
        raise FormatError(f"Timestamp {text!r} does not match {STORAGE_FORMAT!r}")
    try:
        parsed = datetime.strptime(text, STORAGE_FORMAT)
    except ValueError as exc:
        raise FormatError(f"Timestamp {text!r} is not a valid date") from exc
    return parsed.replace(tzinfo=timezone.utc)


def to_user_local_display(value: datetime, offset_hours: int, pattern: DisplayPattern) -> str:
    """Render a UTC instant in the user's local time."""

    local = _as_utc(value) + timedelta(hours=offset_hours)
    if pattern is DisplayPattern.SHORT:
        return local.strftime("%H:%M")
    if pattern is DisplayPattern.LONG:
        return f"{local.day:02d} {MONTHS[local.month - 1]} {local:%H:%M}"
    raise ValueError(f"Unsupported display pattern: {pattern}")


def user_day_start_utc(offset_hours: int, now: Optional[datetime] = None) -> datetime:
    """Return the UTC instant of local midnight for the user's current day."""

    if now is None:
        now = utc_now()
    shift = timedelta(hours=offset_hours)
    local = _as_utc(now) + shift
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight - shift


def parse_lenient_double(text: str) -> float:
    """Parse a number written with either ``,`` or ``.`` as decimal separator."""

    candidate = (text or "").strip()
    if not candidate:
        raise ParseError("Empty number")
    if not NUMBER_PATTERN.fullmatch(candidate):
        raise ParseError(f"Not a number: {text!r}")
    value = float(candidate.replace(",", "."))
    if not math.isfinite(value):
        raise ParseError(f"Number out of range: {text!r}")
    return value


def chunk_text(text: str, max_len: int) -> list[str]:
    if max_len < 1:
        raise ValueError("max_len must be at least 1")
    return [text[i : i + max_len] for i in range(0, len(text), max_len)]


def format_offset(hours: int) -> str:
    return f"{hours:+d}"


def format_kcal(value: Optional[float]) -> str:
    """Format a calorie value with at most one decimal digit."""

    if value is None:
        return "-"
    text = f"{value:.1f}"
    if text.endswith(".0"):
        text = text[:-2]
    if text == "-0":
        text = "0"
    return text
