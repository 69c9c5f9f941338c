"""
Family roster reconciliation — who are the members of this case?

The family information form is the source of truth for the roster. The same
person is often written twice ("Smith, John" as applicant and "John Smith"
on a child's line when a form is filled in twice), so raw entries are merged
before they become members:

  1. normalized names are identical,
  2. token overlap reaches the fuzzy threshold, or
  3. DOBs are identical and one normalized name contains the other.

A merge keeps the stronger relationship (PA > SPOUSE > CHILD > OTHER) and
records the other spelling as an alias.

Every function here returns new objects; no input is modified.
"""

from __future__ import annotations

import uuid
from typing import Mapping, Optional, Sequence

from .config import EngineSettings
from .matching import MatchTier, match_names, token_overlap_score
from .models import (
    ApplicantType,
    FamilyInfoExtract,
    FamilyMemberRow,
    Member,
    Relationship,
    ScheduleAExtract,
)
from .normalize import calculate_age, dob_precision, normalize_name

_RELATIONSHIP_RANK: dict[Relationship, int] = {
    Relationship.PA: 3,
    Relationship.SPOUSE: 2,
    Relationship.CHILD: 1,
    Relationship.OTHER: 0,
}


def _rank(relationship: Relationship) -> int:
    return _RELATIONSHIP_RANK.get(relationship, 0)


def _new_member(row: FamilyMemberRow, relationship: Relationship, settings: EngineSettings) -> Member:
    return Member(
        id=str(uuid.uuid4()),
        full_name=row.name,
        relationship=relationship,
        dob=row.dob or None,
        dob_precision=dob_precision(row.dob),
        age=calculate_age(row.dob, settings.current_date()),
    )


def _same_person(a: Member, b: Member, threshold: float) -> bool:
    norm_a, norm_b = normalize_name(a.full_name), normalize_name(b.full_name)
    if norm_a == norm_b:
        return True
    if token_overlap_score(a.full_name, b.full_name) >= threshold:
        return True
    same_dob = bool(a.dob and b.dob and a.dob == b.dob)
    return same_dob and (norm_a in norm_b or norm_b in norm_a)


# ─── Roster Construction ────────────────────────────────────────────


def deduplicate_members(members: Sequence[Member], threshold: float = 0.8) -> list[Member]:
    """Merge entries that describe the same person; first occurrence wins the id."""
    merged: list[Member] = []
    for member in members:
        index = next(
            (i for i, existing in enumerate(merged) if _same_person(member, existing, threshold)),
            None,
        )
        if index is None:
            merged.append(member)
            continue

        existing = merged[index]
        update: dict = {}
        if _rank(member.relationship) > _rank(existing.relationship):
            update["relationship"] = member.relationship
        if member.full_name != existing.full_name and member.full_name not in existing.aliases:
            update["aliases"] = [*existing.aliases, member.full_name]
        if update:
            merged[index] = existing.model_copy(update=update)
    return merged


def build_members_from_family_info(
    extract: FamilyInfoExtract, settings: Optional[EngineSettings] = None
) -> list[Member]:
    """Applicant, spouse and children of a family information form, deduplicated.

    Rows without a name are skipped; parents and siblings are not case members.
    """
    settings = settings or EngineSettings()
    raw: list[Member] = []

    if extract.applicant and extract.applicant.name:
        raw.append(_new_member(extract.applicant, Relationship.PA, settings))
    if extract.spouse and extract.spouse.name:
        raw.append(_new_member(extract.spouse, Relationship.SPOUSE, settings))
    for child in extract.children:
        if child.name:
            raw.append(_new_member(child, Relationship.CHILD, settings))

    return deduplicate_members(raw, settings.fuzzy_threshold)


# ─── Lookup ──────────────────────────────────────────────────────────


# Lower is stronger; NONE never reaches the ranking
_TIER_RANK: dict[MatchTier, int] = {
    MatchTier.EXACT: 0,
    MatchTier.SUBSTRING: 1,
    MatchTier.FUZZY: 2,
}


def find_member_by_name(
    members: Sequence[Member], name: Optional[str], threshold: float = 0.8
) -> Optional[Member]:
    """Best-matching member by name or alias.

    Every candidate is scored; an exact or substring match beats a fuzzy one
    regardless of roster order. Within a tier the higher token-overlap score
    wins, then the earlier member.
    """
    if not normalize_name(name):
        return None

    best: Optional[Member] = None
    best_key: Optional[tuple[int, float]] = None
    for member in members:
        for candidate in (member.full_name, *member.aliases):
            result = match_names(candidate, name, threshold)
            if not result.matched:
                continue
            key = (_TIER_RANK[result.tier], -result.score)
            if best_key is None or key < best_key:
                best, best_key = member, key
    return best


def match_person_to_member(
    members: Sequence[Member],
    name: Optional[str],
    dob: Optional[str] = None,
    threshold: float = 0.8,
) -> Optional[Member]:
    """Same DOB and matching name first; then name alone."""
    if not name:
        return None

    if dob:
        same_dob = [m for m in members if m.dob == dob]
        match = find_member_by_name(same_dob, name, threshold)
        if match is not None:
            return match

    return find_member_by_name(members, name, threshold)


def match_schedule_a_to_member(
    members: Sequence[Member], extract: ScheduleAExtract, threshold: float = 0.8
) -> Optional[Member]:
    identity = extract.identity
    if identity is None:
        return None
    return match_person_to_member(members, identity.name, identity.dob, threshold)


# ─── Principal Applicant ────────────────────────────────────────────


def assign_principal_applicant(
    members: Sequence[Member], schedule_a_by_member: Mapping[str, ScheduleAExtract]
) -> list[Member]:
    """Make the member whose Schedule A declares PRINCIPAL_APPLICANT the PA.

    Any other PA is demoted to OTHER. Without such a declaration the roster
    is returned unchanged (as a new list).
    """
    known = {m.id for m in members}
    principal_id = next(
        (
            member_id
            for member_id, extract in schedule_a_by_member.items()
            if extract.applicant_type is ApplicantType.PRINCIPAL_APPLICANT and member_id in known
        ),
        None,
    )
    if principal_id is None:
        return list(members)

    result: list[Member] = []
    for member in members:
        if member.id == principal_id:
            result.append(member.model_copy(update={"relationship": Relationship.PA}))
        elif member.relationship is Relationship.PA:
            result.append(member.model_copy(update={"relationship": Relationship.OTHER}))
        else:
            result.append(member)
    return result
