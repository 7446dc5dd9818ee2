from __future__ import annotations

import re
from datetime import date


MINUTES_PER_DAY = 24 * 60
_HHMM_RE = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)$')


def is_hhmm(value: str | None) -> bool:
    return bool(_HHMM_RE.match((value or '').strip()))


def parse_hhmm(value: str) -> int:
    """Minutes since midnight for an ``HH:MM`` string."""
    match = _HHMM_RE.match((value or '').strip())
    if not match:
        raise ValueError(f'Invalid time {value!r}, expected HH:MM')
    return int(match.group(1)) * 60 + int(match.group(2))


def format_hhmm(total_minutes: int) -> str:
    wrapped = total_minutes % MINUTES_PER_DAY
    return f'{wrapped // 60:02d}:{wrapped % 60:02d}'


def add_minutes(hhmm: str, minutes: int) -> str:
    return format_hhmm(parse_hhmm(hhmm) + int(minutes))


def parse_iso_date(value) -> date | None:
    if value is None:
        return None
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None
