"""Shared utility functions used by every scoring stage.

clamp / round_half_up:   bounded arithmetic (NaN and infinities collapse to the minimum)
parse_iso / to_iso:      UTC timestamp handling, millisecond precision with a "Z" suffix
normalize_iso:           never raises, falls back to the epoch
iso_week_key:            ISO-8601 "YYYY-Www" week identifier
norm / tokenize:         text normalisation for keyword matching
stable_hash:             32-bit FNV-1a rendered in base 36, used for deterministic ids
"""
import math
from datetime import date, datetime, timezone

EPOCH_ISO = "1970-01-01T00:00:00.000Z"
DAY_SECONDS = 24 * 60 * 60

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


# ── Numbers ──────────────────────────────────────────────────────────────


def is_finite_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def to_float(value, default=None):
    """Coerce *value* to a finite float, or return *default*."""
    if isinstance(value, bool) or value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def clamp(value, minimum, maximum):
    """Bound *value* to [minimum, maximum]; non-finite input maps to *minimum*."""
    if not is_finite_number(value):
        return minimum
    if value < minimum:
        return minimum
    if value > maximum:
        return maximum
    return value


def round_half_up(value) -> int:
    """Round half towards +infinity (2.5 -> 3, -2.5 -> -2)."""
    if not is_finite_number(value):
        return 0
    return int(math.floor(value + 0.5))


def round1(value) -> float:
    return round_half_up(value * 10) / 10


# ── Timestamps ───────────────────────────────────────────────────────────


def parse_iso(value):
    """Parse an ISO-8601 string or datetime into an aware UTC datetime.

    Returns None for empty/invalid input. Naive values are read as UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso(moment: datetime) -> str:
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def normalize_iso(value, fallback: str = EPOCH_ISO) -> str:
    parsed = parse_iso(value)
    return to_iso(parsed) if parsed is not None else fallback


def to_millis(value):
    """Milliseconds since the epoch, or None when *value* does not parse."""
    parsed = parse_iso(value)
    if parsed is None:
        return None
    return int((parsed - _EPOCH).total_seconds() * 1000)


def days_between(earlier, later):
    """Fractional days from *earlier* to *later*; None if either is invalid."""
    start = to_millis(earlier)
    end = to_millis(later)
    if start is None or end is None:
        return None
    return (end - start) / (DAY_SECONDS * 1000)


def iso_week_key(value) -> str:
    """ISO week key such as "2026-W02"; the week-year follows the Thursday rule."""
    parsed = parse_iso(value) or _EPOCH
    year, week, _ = parsed.date().isocalendar()
    return f"{year}-W{min(max(week, 1), 53):02d}"


# ── Text ─────────────────────────────────────────────────────────────────


def norm(text) -> str:
    return " ".join(str(text or "").lower().split())


def tokenize(text) -> list:
    """Lower-case alphanumeric tokens of at least 3 characters."""
    out = []
    current = []
    for ch in str(text or "").lower():
        if ("a" <= ch <= "z") or ("0" <= ch <= "9"):
            current.append(ch)
            continue
        if len(current) >= 3:
            out.append("".join(current))
        current = []
    if len(current) >= 3:
        out.append("".join(current))
    return out


def unique_sorted(items) -> list:
    return sorted(set(items))


def stable_hash(text: str) -> str:
    """32-bit FNV-1a over UTF-16 code units, rendered in base 36."""
    value = 0x811C9DC5
    raw = str(text).encode("utf-16-le")
    for index in range(0, len(raw), 2):
        value ^= raw[index] | (raw[index + 1] << 8)
        value = (value * 0x01000193) & 0xFFFFFFFF
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))
