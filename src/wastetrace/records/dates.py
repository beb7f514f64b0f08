"""Day-granularity date helpers.

The records API speaks dd/mm/yyyy. Values entered in the wizard may be
date, datetime or string (ISO or dd/mm/yyyy).
"""

from __future__ import annotations

import re
from datetime import date, datetime

_DDMMYYYY = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")

DateLike = date | datetime | str


def parse_date(value: DateLike | None) -> date | None:
    """Parse a date from date/datetime/ISO string/dd-mm-yyyy string.

    Returns None for empty or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    m = _DDMMYYYY.match(text)
    if m:
        day, month, year = (int(g) for g in m.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return None

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def format_ddmmyyyy(value: DateLike | None) -> str | None:
    d = parse_date(value)
    if d is None:
        return None
    return f"{d.day:02d}/{d.month:02d}/{d.year:04d}"


def submission_month(value: DateLike | None) -> str | None:
    """First day of the value's month, formatted dd/mm/yyyy."""
    d = parse_date(value)
    if d is None:
        return None
    return format_ddmmyyyy(d.replace(day=1))
