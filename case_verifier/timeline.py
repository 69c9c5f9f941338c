"""
Timeline algorithms at MONTH granularity — gaps, overlaps and year totals.

All endpoints are converted to integer month keys (see normalize.py) before
any comparison, and "PRESENT" is resolved to the current month. Every function
here is a pure transformation of its arguments.

Gap semantics:
  - A gap is a maximal run of window months covered by no row.
  - Rows that touch (Dec 2022 → Jan 2023) or overlap never produce a gap.
  - No usable rows ⇒ no gaps. Whether "nothing declared" deserves a finding
    is the caller's decision.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from itertools import combinations
from typing import Optional, Sequence

from .models import IntervalRow, Member
from .normalize import (
    calculate_age,
    format_month,
    month_key_from_date,
    month_to_str,
    parse_date,
    parse_month,
)


# ─── Data Structures ────────────────────────────────────────────────


@dataclass(frozen=True)
class Interval:
    """A timeline row resolved to inclusive month keys."""

    start: int
    end: int
    label: str
    index: int  # Position of the row in its section
    row: IntervalRow


@dataclass(frozen=True)
class Gap:
    """An uncovered, inclusive [start, end] month-key range."""

    start: int
    end: int

    @property
    def months(self) -> int:
        return self.end - self.start + 1

    def as_dict(self) -> dict[str, str]:
        return {"start": month_to_str(self.start), "end": month_to_str(self.end)}

    def describe(self) -> tuple[str, str]:
        return format_month(self.start), format_month(self.end)


@dataclass(frozen=True)
class Overlap:
    first: Interval
    second: Interval

    @property
    def start(self) -> int:
        return max(self.first.start, self.second.start)

    @property
    def end(self) -> int:
        return min(self.first.end, self.second.end)


# ─── Conversion ─────────────────────────────────────────────────────


def to_intervals(rows: Sequence[IntervalRow], today: Optional[date] = None) -> list[Interval]:
    """Resolve rows to month keys, dropping rows missing either endpoint or
    ending before they start."""
    intervals: list[Interval] = []
    for index, row in enumerate(rows):
        start = parse_month(row.from_month, today)
        end = parse_month(row.to_month, today)
        if start is None or end is None or start > end:
            continue
        intervals.append(Interval(start=start, end=end, label=row.label(), index=index, row=row))
    return intervals


# ─── Gap Detection ──────────────────────────────────────────────────


def find_gaps(
    rows: Sequence[IntervalRow],
    window_start: date,
    window_end: date,
    today: Optional[date] = None,
) -> list[Gap]:
    """Find uncovered month ranges of [window_start, window_end].

    Rows are sorted by start month; coverage is tracked as the furthest end
    seen so far, so a short row nested inside a long one cannot open a
    phantom gap. Gaps are clipped to the window.
    """
    intervals = sorted(to_intervals(rows, today), key=lambda i: (i.start, i.end))
    if not intervals:
        return []

    first_month = month_key_from_date(window_start)
    last_month = month_key_from_date(window_end)
    gaps: list[Gap] = []

    def _emit(start: int, end: int) -> None:
        start, end = max(start, first_month), min(end, last_month)
        if start <= end:
            gaps.append(Gap(start, end))

    # Before the first row
    if first_month < intervals[0].start:
        _emit(first_month, intervals[0].start - 1)

    # Between rows: next.start must be beyond covered_end + 1
    covered_end = intervals[0].end
    for interval in intervals[1:]:
        if interval.start > covered_end + 1:
            _emit(covered_end + 1, interval.start - 1)
        covered_end = max(covered_end, interval.end)

    # After the last row
    if covered_end < last_month:
        _emit(covered_end + 1, last_month)

    return gaps


def gap_window(
    member: Member, today: date, history_years: int = 10, adult_age: int = 18
) -> tuple[date, date]:
    """Observation window for a member's history: the later of their 18th
    birthday month and `history_years` ago, through the current month."""
    window_start = date(today.year - history_years, today.month, 1)
    born = parse_date(member.dob)
    # A DOB in the future is unusable
    if born is not None and born <= today:
        came_of_age = date(born.year + adult_age, born.month, 1)
        if came_of_age > window_start:
            window_start = came_of_age
    return window_start, today


def is_minor(member: Member, today: Optional[date] = None, adult_age: int = 18) -> bool:
    """Minors are exempt from history checks. Unknown age means adult."""
    age = member.age if member.age is not None else calculate_age(member.dob, today)
    return age is not None and age < adult_age


# ─── Overlap Detection ──────────────────────────────────────────────


def is_comparable(a: Interval, b: Interval, category: str) -> bool:
    """Only rows that both belong to `category` can conflict with each other."""
    needle = category.lower()
    return needle in a.label.lower() and needle in b.label.lower()


def find_overlaps(
    rows: Sequence[IntervalRow], category: str, today: Optional[date] = None
) -> list[Overlap]:
    """Compare every unordered pair of usable rows; keep same-category overlaps."""
    overlaps: list[Overlap] = []
    for a, b in combinations(to_intervals(rows, today), 2):
        if max(a.start, b.start) <= min(a.end, b.end) and is_comparable(a, b, category):
            overlaps.append(Overlap(a, b))
    return overlaps


# ─── Year Totals ────────────────────────────────────────────────────


def education_years(rows: Sequence[IntervalRow], today: Optional[date] = None) -> int:
    """Whole years across rows: sum of positive (end - start) month spans, floored."""
    total_months = 0
    for interval in to_intervals(rows, today):
        span = interval.end - interval.start
        if span > 0:
            total_months += span
    return total_months // 12
