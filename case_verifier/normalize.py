"""
Text normalization — canonical forms for names and calendar months.

Names: "Smith, John" and "john smith" both become "john smith" (tokens are
lower-cased, stripped of commas and periods, then sorted) so that comparisons
are order- and punctuation-insensitive.

Months: every month is an integer key `year * 12 + month`. Keys are monotonic,
so timeline arithmetic is plain integer arithmetic: the month after `k` is
`k + 1`, and two rows are adjacent when `next.start == prev.end + 1`.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Optional

from .models import DobPrecision

_NAME_PUNCTUATION = re.compile(r"[,.]")
_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})(?:-(\d{2}))?$")
_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MONTH_ONLY_RE = re.compile(r"^\d{4}-\d{2}$")

OPEN_ENDED: frozenset[str] = frozenset({"PRESENT", "CURRENT"})

_MONTH_NAMES = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


# ─── Names ───────────────────────────────────────────────────────────


def normalize_name(name: Optional[str]) -> str:
    """Lower-case, drop commas/periods, sort tokens alphabetically, rejoin."""
    if not name:
        return ""
    tokens = _NAME_PUNCTUATION.sub(" ", name.lower()).split()
    return " ".join(sorted(tokens))


def name_tokens(name: Optional[str]) -> set[str]:
    normalized = normalize_name(name)
    return set(normalized.split()) if normalized else set()


# ─── Month Keys ──────────────────────────────────────────────────────


def month_key(year: int, month: int) -> int:
    return year * 12 + month


def month_key_from_date(value: date) -> int:
    return month_key(value.year, value.month)


def current_month_key(today: Optional[date] = None) -> int:
    return month_key_from_date(today or date.today())


def is_open_ended(value: Optional[str]) -> bool:
    return value is not None and value.strip().upper() in OPEN_ENDED


def parse_month(value: Optional[str], today: Optional[date] = None) -> Optional[int]:
    """Parse YYYY-MM / YYYY-MM-DD / PRESENT into a month key.

    Returns None for anything else — a malformed endpoint makes the row
    unusable, it never becomes a guessed month.
    """
    if not value:
        return None
    text = value.strip()
    if text.upper() in OPEN_ENDED:
        return current_month_key(today)

    match = _MONTH_RE.match(text)
    if not match:
        return None
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        return None
    return month_key(year, month)


def split_month_key(key: int) -> tuple[int, int]:
    """Inverse of month_key: 24241 → (2020, 1)."""
    return (key - 1) // 12, (key - 1) % 12 + 1


def month_to_str(key: int) -> str:
    """24243 → '2020-03'."""
    year, month = split_month_key(key)
    return f"{year:04d}-{month:02d}"


def format_month(key: int) -> str:
    """24243 → 'Mar 2020' (display form for messages)."""
    year, month = split_month_key(key)
    return f"{_MONTH_NAMES[month - 1]} {year}"


# ─── Dates of Birth ─────────────────────────────────────────────────


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse YYYY-MM-DD, or YYYY-MM as the first of that month."""
    if not value:
        return None
    match = _MONTH_RE.match(value.strip())
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3) or 1))
    except ValueError:
        return None


def dob_precision(dob: Optional[str]) -> DobPrecision:
    if not dob:
        return DobPrecision.UNKNOWN
    if _DAY_RE.match(dob):
        return DobPrecision.DAY
    if _MONTH_ONLY_RE.match(dob):
        return DobPrecision.MONTH
    return DobPrecision.UNKNOWN


def calculate_age(dob: Optional[str], today: Optional[date] = None) -> Optional[int]:
    """Age in whole years, or None if the DOB is unusable or in the future."""
    born = parse_date(dob)
    if born is None:
        return None
    today = today or date.today()
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age if age >= 0 else None
