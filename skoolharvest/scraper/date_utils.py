from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

# Months and years are approximated as 30 and 365 days.
UNIT_SECONDS: dict[str, int] = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
    "week": 7 * 86400,
    "month": 30 * 86400,
    "year": 365 * 86400,
}

_UNIT_ALIASES: dict[str, str] = {
    "sec": "second",
    "secs": "second",
    "min": "minute",
    "mins": "minute",
    "hr": "hour",
    "hrs": "hour",
}

_RELATIVE_RE = re.compile(
    r"\b(?P<amount>\d+|an?|one)\s*(?P<unit>second|sec|minute|min|hour|hr|day|week|month|year)s?\s+ago",
    re.IGNORECASE,
)
_LEADING_WORDS_RE = re.compile(r"^(?:last\s+)?(?:joined|active|posted|updated|on)\b[:\s]*", re.IGNORECASE)

_DATE_FORMATS: Iterable[str] = (
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%Y-%m-%d",
    "%m/%d/%Y",
)


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_relative(text: str, now: datetime) -> Optional[datetime]:
    """Resolve ``"<n> <unit>s ago"`` against ``now``; ``None`` if not relative."""

    match = _RELATIVE_RE.search(text or "")
    if not match:
        return None
    raw_amount = match.group("amount").lower()
    amount = 1 if raw_amount in {"a", "an", "one"} else int(raw_amount)
    unit = match.group("unit").lower()
    unit = _UNIT_ALIASES.get(unit, unit)
    return now - timedelta(seconds=amount * UNIT_SECONDS[unit])


def parse_absolute(text: str) -> Optional[datetime]:
    candidate = _LEADING_WORDS_RE.sub("", (text or "").strip()).strip()
    if not candidate:
        return None

    try:
        return _utc(datetime.fromisoformat(candidate.replace("Z", "+00:00")))
    except ValueError:
        pass

    for fmt in _DATE_FORMATS:
        try:
            return _utc(datetime.strptime(candidate, fmt))
        except ValueError:
            continue
    return None


def normalize_timestamp(text: Optional[str], now: Optional[datetime] = None) -> datetime:
    """Turn a human readable timestamp into an absolute UTC datetime.

    Relative expressions ("2 days ago") are computed against ``now`` (the
    extraction wall-clock time). Text that cannot be parsed resolves to
    ``now`` instead of failing the record.
    """

    now = _utc(now) if now is not None else datetime.now(timezone.utc)
    value = (text or "").strip()
    if not value:
        return now

    lowered = value.lower()
    if lowered in {"now", "just now"}:
        return now
    if lowered == "yesterday":
        return now - timedelta(days=1)

    relative = parse_relative(value, now)
    if relative is not None:
        return relative

    absolute = parse_absolute(value)
    return absolute if absolute is not None else now


__all__ = ["UNIT_SECONDS", "normalize_timestamp", "parse_relative", "parse_absolute"]
