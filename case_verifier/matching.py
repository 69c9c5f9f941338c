"""
Fuzzy matching for names and date ranges.

Names are compared in three escalating tiers:
  1. EXACT      — normalized forms are identical ("Smith, John" == "John Smith")
  2. SUBSTRING  — one normalized form contains the other
  3. FUZZY      — token-overlap (Jaccard) score at or above the threshold

A match at any tier counts as "the same person" for verification. Roster
lookup ranks candidates EXACT > SUBSTRING > FUZZY, which is why the tier is
reported rather than collapsed into a bool.

Date ranges are compared by overlap ratio with a ±N month tolerance band,
so an off-by-one-month transcription still scores as a perfect match.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from .normalize import name_tokens, normalize_name, parse_month

# Minimum token-overlap score for two names to be the same person
FUZZY_THRESHOLD = 0.8


class MatchTier(str, Enum):
    EXACT = "exact"
    SUBSTRING = "substring"
    FUZZY = "fuzzy"
    NONE = "none"


@dataclass
class NameMatch:
    """Result of comparing two names."""

    left: str
    right: str
    tier: MatchTier
    score: float  # token-overlap score, 0.0-1.0

    @property
    def matched(self) -> bool:
        return self.tier is not MatchTier.NONE


# ─── Names ───────────────────────────────────────────────────────────


def token_overlap_score(a: Optional[str], b: Optional[str]) -> float:
    """|intersection| / |union| of normalized name tokens; 0.0 if either is empty."""
    tokens_a = name_tokens(a)
    tokens_b = name_tokens(b)
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def match_names(a: Optional[str], b: Optional[str], threshold: float = FUZZY_THRESHOLD) -> NameMatch:
    """Classify how (if at all) two names refer to the same person."""
    norm_a = normalize_name(a)
    norm_b = normalize_name(b)
    score = token_overlap_score(a, b)

    if not norm_a or not norm_b:
        tier = MatchTier.NONE
    elif norm_a == norm_b:
        tier = MatchTier.EXACT
    elif norm_a in norm_b or norm_b in norm_a:
        tier = MatchTier.SUBSTRING
    elif score >= threshold:
        tier = MatchTier.FUZZY
    else:
        tier = MatchTier.NONE

    return NameMatch(left=a or "", right=b or "", tier=tier, score=round(score, 3))


def names_match(a: Optional[str], b: Optional[str], threshold: float = FUZZY_THRESHOLD) -> bool:
    return match_names(a, b, threshold).matched


# ─── Dates of Birth ─────────────────────────────────────────────────


def dob_matches(a: Optional[str], b: Optional[str]) -> bool:
    """Equal, or one is a prefix of the other ("1990-04" vs "1990-04-12")."""
    if not a or not b:
        return False
    a, b = a.strip(), b.strip()
    return a == b or a.startswith(b) or b.startswith(a)


# ─── Date Ranges ────────────────────────────────────────────────────


def date_range_overlap(
    row_from: Optional[str],
    row_to: Optional[str],
    claim_from: Optional[str],
    claim_to: Optional[str],
    tolerance: int = 1,
    today: Optional[date] = None,
) -> float:
    """Overlap ratio of two month ranges, 0.0-1.0.

    - Disjoint ranges score 0.0.
    - Start and end both within ±tolerance months score 1.0.
    - Otherwise: overlapping months / the longer of the two spans.
    """
    row_start = parse_month(row_from, today)
    row_end = parse_month(row_to, today)
    claim_start = parse_month(claim_from, today)
    claim_end = parse_month(claim_to, today)
    if row_start is None or row_end is None or claim_start is None or claim_end is None:
        return 0.0

    if row_end < claim_start or claim_end < row_start:
        return 0.0

    if abs(row_start - claim_start) <= tolerance and abs(row_end - claim_end) <= tolerance:
        return 1.0

    overlap_months = min(row_end, claim_end) - max(row_start, claim_start) + 1
    longest_span = max(row_end - row_start + 1, claim_end - claim_start + 1)
    if overlap_months <= 0 or longest_span <= 0:
        return 0.0
    return min(1.0, overlap_months / longest_span)
