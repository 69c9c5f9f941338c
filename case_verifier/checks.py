"""
Deterministic rule checks — one pure function per rule kind.

Each check:
  - Takes the case snapshot, its typed rule and the engine settings
  - Returns a list of Finding objects (FAIL for problems, INFO/PASS for
    what was verified)
  - Never mutates the snapshot and never raises for missing data: absent
    DOBs, years boxes or evidence mean "nothing to compare", not an error

The dispatcher in engine.py routes rules here by their `type`.
"""

from __future__ import annotations

import re
import uuid
from typing import Any, Optional, Sequence

from .config import EngineSettings
from .evidence import find_best_match, rank_candidates
from .forms import FORM_LABELS, linked_form_documents, member_form_presence
from .matching import MatchTier, NameMatch, dob_matches, match_names
from .models import (
    AddressRow,
    CaseSnapshot,
    EducationEvidenceClaim,
    EducationRow,
    FamilyInfoExtract,
    FamilyMemberRow,
    Finding,
    FindingStatus,
    HistoryRow,
    IntervalRow,
    Member,
    Severity,
    SupportingExtract,
)
from .normalize import calculate_age, format_month, is_open_ended, month_key_from_date
from .rules import (
    CompletenessRule,
    DateMatchRule,
    GapCheckRule,
    IdentityMatchRule,
    OverlapCheckRule,
    RequiredDocRule,
    RuleBase,
    TimelineSection,
    YearsBoxRule,
)
from .timeline import education_years, find_gaps, find_overlaps, gap_window, is_minor, to_intervals

# Supporting document types that can corroborate each section
_EVIDENCE_DOC_TYPES: dict[TimelineSection, str] = {
    TimelineSection.PERSONAL_HISTORY: r"employment|reference|letter|work",
    TimelineSection.EDUCATION: r"degree|diploma|transcript|certificate",
}

_FAMILY_FIELD_LABELS: dict[str, str] = {
    "name": "name",
    "dob": "date of birth",
    "country_of_birth": "country of birth",
    "address": "address",
    "marital_status": "marital status",
}

_TIER_RANK: dict[MatchTier, int] = {
    MatchTier.EXACT: 3,
    MatchTier.SUBSTRING: 2,
    MatchTier.FUZZY: 1,
    MatchTier.NONE: 0,
}


# ─── Finding Construction ───────────────────────────────────────────


def _finding(
    rule: RuleBase,
    member: Optional[Member],
    *,
    summary: str,
    recommendation: str,
    client_message: str,
    status: FindingStatus = FindingStatus.FAIL,
    severity: Optional[Severity] = None,
    section: Optional[str] = None,
    form_type: Optional[str] = None,
    doc_ids: Optional[list[str]] = None,
    details: Optional[dict[str, Any]] = None,
    include_in_email: Optional[bool] = None,
) -> Finding:
    """FAIL findings carry the rule's severity; verified ones default to INFO."""
    if severity is None:
        severity = rule.severity if status is FindingStatus.FAIL else Severity.INFO
    return Finding(
        id=str(uuid.uuid4()),
        rule_id=rule.id,
        status=status,
        severity=severity,
        member_id=member.id if member else None,
        member_name=member.full_name if member else None,
        section=section,
        form_type=form_type,
        summary=summary,
        recommendation=recommendation,
        client_message=client_message,
        doc_ids=doc_ids or [],
        details=details or {},
        include_in_email=include_in_email,
    )


def _describe_row(row: IntervalRow) -> str:
    """Short human label for a timeline row, used in messages."""
    if isinstance(row, HistoryRow):
        parts = [p for p in (row.activity_type, row.employer_or_company) if p]
        return " at ".join(parts) if parts else "specified period"
    if isinstance(row, EducationRow):
        return row.institution or row.field_of_study or "specified period"
    if isinstance(row, AddressRow):
        return row.full_address or row.city or "specified address"
    return "specified period"


def _row_dump(row: IntervalRow) -> dict[str, Any]:
    return row.model_dump(mode="json", by_alias=True)


# ─── Gap Check ───────────────────────────────────────────────────────


def check_gaps(case: CaseSnapshot, rule: GapCheckRule, settings: EngineSettings) -> list[Finding]:
    """Flag uncovered months in a timeline section for every adult member.

    The window runs from the later of the member's 18th birthday and
    `history_window_years` ago, through the current month.
    """
    findings: list[Finding] = []
    today = settings.current_date()
    section = rule.config.section

    for member in case.members:
        extract = case.schedule_a(member.id)
        if extract is None or is_minor(member, today, settings.adult_age):
            continue

        rows = extract.section_rows(section.value)
        usable = to_intervals(rows, today)
        window_start, window_end = gap_window(
            member, today, settings.history_window_years, settings.adult_age
        )
        window = {"start": window_start.isoformat(), "end": window_end.isoformat()}

        if not usable:
            if rule.config.flag_empty:
                findings.append(
                    _finding(
                        rule,
                        member,
                        section=section.value,
                        summary=f"No dated entries in {section.display}",
                        recommendation=f"Ask for a complete {section.display} timeline.",
                        client_message=rule.render(
                            member=member.full_name,
                            section=section.display,
                            start=format_month(month_key_from_date(window_start)),
                            end=format_month(month_key_from_date(window_end)),
                        ),
                        details={"window": window, "rows": len(rows)},
                    )
                )
            continue

        gaps = find_gaps(rows, window_start, window_end, today)
        for gap in gaps:
            start, end = gap.describe()
            findings.append(
                _finding(
                    rule,
                    member,
                    section=section.value,
                    summary=f"Gap in {section.display}",
                    recommendation=f"Provide details for the period from {start} to {end}.",
                    client_message=rule.render(
                        member=member.full_name, section=section.display, start=start, end=end
                    ),
                    details={"gap": gap.as_dict(), "months": gap.months, "window": window},
                )
            )

        if not gaps:
            findings.append(
                _finding(
                    rule,
                    member,
                    status=FindingStatus.PASS,
                    section=section.value,
                    summary=f"Verified: No gaps in {section.display}",
                    recommendation="Information matches requirements.",
                    client_message=f"Your {section.display} is continuous.",
                    details={"window": window, "rows": len(usable)},
                )
            )

    return findings


# ─── Overlap Check ───────────────────────────────────────────────────


def check_overlaps(
    case: CaseSnapshot, rule: OverlapCheckRule, settings: EngineSettings
) -> list[Finding]:
    """Flag two same-category rows held at the same time.

    Only rows whose labels both contain the configured category conflict:
    studying while employed is not flagged, two jobs at once is.
    """
    findings: list[Finding] = []
    today = settings.current_date()
    section = rule.config.section
    category = rule.config.category

    for member in case.members:
        extract = case.schedule_a(member.id)
        if extract is None:
            continue
        rows = extract.section_rows(section.value)
        if not rows:
            continue

        overlaps = find_overlaps(rows, category, today)
        for overlap in overlaps:
            start, end = format_month(overlap.start), format_month(overlap.end)
            first, second = _describe_row(overlap.first.row), _describe_row(overlap.second.row)
            findings.append(
                _finding(
                    rule,
                    member,
                    section=section.value,
                    summary=f"Overlapping {category} periods",
                    recommendation="Explain how these two roles were held simultaneously.",
                    client_message=rule.render(
                        member=member.full_name, start=start, end=end, first=first, second=second
                    ),
                    details={
                        "overlap": {"start": start, "end": end},
                        "rows": [_row_dump(overlap.first.row), _row_dump(overlap.second.row)],
                        "row_indexes": [overlap.first.index, overlap.second.index],
                    },
                )
            )

        if not overlaps:
            findings.append(
                _finding(
                    rule,
                    member,
                    status=FindingStatus.PASS,
                    section=section.value,
                    summary=f"Verified: No {section.display} overlaps",
                    recommendation="Roles are continuous/sequential.",
                    client_message=f"No significant overlaps found in {section.display}.",
                )
            )

    return findings


# ─── Required Document Check ────────────────────────────────────────


def check_required_docs(
    case: CaseSnapshot, rule: RequiredDocRule, settings: EngineSettings
) -> list[Finding]:
    """Every adult member must have the required form; minors are exempt."""
    findings: list[Finding] = []
    today = settings.current_date()
    form = rule.config.required_form
    label = FORM_LABELS[form]

    for member in case.members:
        if is_minor(member, today, settings.adult_age):
            age = member.age if member.age is not None else calculate_age(member.dob, today)
            findings.append(
                _finding(
                    rule,
                    member,
                    status=FindingStatus.PASS,
                    form_type=form.value,
                    summary=f"Verified: Minor - no {form.value} required",
                    recommendation=f"Member age is under {settings.adult_age}.",
                    client_message=(
                        f"{member.full_name} is a minor ({age if age is not None else 'age unknown'}), "
                        f"so {label} is not required."
                    ),
                    details={"age": age},
                )
            )
            continue

        if not member_form_presence(case, member.id).has(form):
            findings.append(
                _finding(
                    rule,
                    member,
                    form_type=form.value,
                    summary=f"Missing form: {form.value}",
                    recommendation=f"Please upload {label} for {member.full_name}.",
                    client_message=rule.render(member=member.full_name, form=label),
                )
            )
        else:
            findings.append(
                _finding(
                    rule,
                    member,
                    status=FindingStatus.PASS,
                    form_type=form.value,
                    summary=f"Verified: {form.value} present",
                    recommendation="Form found and processed.",
                    client_message=f"{label} for {member.full_name} has been identified.",
                    doc_ids=linked_form_documents(case, member.id, form),
                )
            )

    return findings


# ─── Date Match Check ────────────────────────────────────────────────


def _corroborating_dates(row: IntervalRow, dates: Sequence[str]) -> list[str]:
    """Evidence dates that line up with a row's endpoints (same month or year)."""
    endpoints = [
        value
        for value in (row.from_month, row.to_month)
        if value and not is_open_ended(value)
    ]
    hits: list[str] = []
    for value in dates:
        for endpoint in endpoints:
            if value == endpoint or value.startswith(endpoint) or endpoint[:4] in value:
                hits.append(value)
                break
    return hits


def check_date_match(
    case: CaseSnapshot, rule: DateMatchRule, settings: EngineSettings
) -> list[Finding]:
    """Corroborate each timeline row with supporting evidence.

    Per row, in order:
      1. Education claims scoring at or above the threshold ⇒ verified.
      2. A relevant supporting document whose dates line up ⇒ verified.
      3. Claims that scored, but below threshold ⇒ WARNING listing the top
         candidates for a human to judge.
      4. Otherwise ⇒ unverified, at the rule's severity.
    A member with no relevant evidence at all is skipped.
    """
    findings: list[Finding] = []
    section = TimelineSection(rule.config.section)
    threshold = rule.config.match_threshold
    if threshold is None:
        threshold = settings.education_match_threshold
    doc_type_re = re.compile(rule.config.doc_type_pattern or _EVIDENCE_DOC_TYPES[section], re.I)

    for member in case.members:
        extract = case.schedule_a(member.id)
        if extract is None:
            continue
        rows = extract.section_rows(section.value)
        claims = case.education_claims(member.id) if section is TimelineSection.EDUCATION else []
        documents = [
            ext
            for ext in case.supporting(member.id)
            if ext.doc_type and doc_type_re.search(ext.doc_type)
        ]
        if not rows or (not claims and not documents):
            continue

        for index, row in enumerate(rows):
            if not row.from_month and not row.to_month:
                continue
            findings.append(
                _verify_row(rule, member, section, index, row, claims, documents, threshold, settings)
            )

    return findings


def _verify_row(
    rule: DateMatchRule,
    member: Member,
    section: TimelineSection,
    index: int,
    row: IntervalRow,
    claims: Sequence[EducationEvidenceClaim],
    documents: Sequence[SupportingExtract],
    threshold: float,
    settings: EngineSettings,
) -> Finding:
    entry = _describe_row(row)
    declared = {"index": index, "row": _row_dump(row)}
    kind = "Education" if section is TimelineSection.EDUCATION else "Work History"

    if claims and isinstance(row, EducationRow):
        best = find_best_match(row, claims, threshold, settings)
        if best is not None:
            claim = best.claim
            return _finding(
                rule,
                member,
                status=FindingStatus.PASS,
                section=section.value,
                summary=f"Verified: {kind} match",
                recommendation=f"Matched evidence claim (score {best.score:.2f}).",
                client_message=(
                    f"{claim.credential or 'Credential'} from "
                    f"{claim.institution or 'the institution'} confirms the entry for {entry}."
                ),
                doc_ids=[claim.document_id] if claim.document_id else [],
                details={
                    **declared,
                    "match": best.as_dict(),
                    "anchor": {"snippet": claim.anchor_snippet, "kind": claim.anchor_kind.value},
                },
            )

    for ext in documents:
        hits = _corroborating_dates(row, ext.dates or [])
        if hits:
            return _finding(
                rule,
                member,
                status=FindingStatus.PASS,
                section=section.value,
                summary=f"Verified: {kind} match",
                recommendation=f"Found evidence in {ext.doc_type}.",
                client_message=f"Dates in {ext.doc_type} confirm the entry for {entry}.",
                doc_ids=[ext.document_id] if ext.document_id else [],
                details={**declared, "evidence_dates": hits, "doc_type": ext.doc_type},
            )

    candidates = (
        rank_candidates(row, claims, limit=settings.ambiguous_candidates, settings=settings)
        if claims and isinstance(row, EducationRow)
        else []
    )
    if candidates:
        listing = "; ".join(
            f"{c.claim.institution or c.claim.credential or 'unnamed claim'} ({c.score:.2f})"
            for c in candidates
        )
        return _finding(
            rule,
            member,
            severity=Severity.WARNING,
            section=section.value,
            summary=f"Ambiguous {section.display} evidence",
            recommendation=f"No claim reached {threshold:.2f}; review candidates: {listing}.",
            client_message=rule.render(
                member=member.full_name, section=section.display, entry=entry
            ),
            doc_ids=[c.claim.document_id for c in candidates if c.claim.document_id],
            details={
                **declared,
                "threshold": threshold,
                "candidates": [c.as_dict() for c in candidates],
            },
        )

    return _finding(
        rule,
        member,
        section=section.value,
        summary=f"Unverified {section.display} entry",
        recommendation=f"No supporting evidence corroborates '{entry}'.",
        client_message=rule.render(member=member.full_name, section=section.display, entry=entry),
        details={**declared, "evidence_checked": len(claims) + len(documents)},
    )


# ─── Years Box Check ─────────────────────────────────────────────────


def _format_years(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def check_years_box(case: CaseSnapshot, rule: YearsBoxRule, settings: EngineSettings) -> list[Finding]:
    """Compare computed years of study against the member's self-declared box."""
    findings: list[Finding] = []
    today = settings.current_date()
    level = rule.config.level
    keywords = [k for k in rule.config.keywords if k]
    keyword_re = (
        re.compile("|".join(re.escape(k) for k in keywords), re.I) if keywords else None
    )

    for member in case.members:
        extract = case.schedule_a(member.id)
        education = extract.education if extract else None
        if education is None or education.years_boxes is None:
            continue
        declared = getattr(education.years_boxes, level)
        if declared is None:
            continue

        rows = [
            row
            for row in education.rows
            if keyword_re is None
            or keyword_re.search(f"{row.institution or ''} {row.field_of_study or ''}")
        ]
        computed = education_years(rows, today)
        details = {"computed": computed, "declared": declared, "rows": len(rows)}

        if abs(computed - declared) > rule.config.tolerance:
            findings.append(
                _finding(
                    rule,
                    member,
                    section="education",
                    summary=f"Education years mismatch ({level.title()})",
                    recommendation="Check if years are summed correctly or if dates overlap.",
                    client_message=rule.render(
                        member=member.full_name,
                        level=level,
                        computed=_format_years(computed),
                        declared=_format_years(declared),
                    ),
                    details=details,
                )
            )
        else:
            findings.append(
                _finding(
                    rule,
                    member,
                    status=FindingStatus.PASS,
                    section="education",
                    summary=f"Verified: {level.title()} years match",
                    recommendation="Calculated years match declared boxes.",
                    client_message=(
                        f"Education years check for {member.full_name} passed for {level.title()}."
                    ),
                    details=details,
                )
            )

    return findings


# ─── Completeness Check ──────────────────────────────────────────────


def _family_rows(extract: FamilyInfoExtract, section: str) -> list[tuple[int, FamilyMemberRow]]:
    value = getattr(extract, section)
    if value is None:
        return []
    if isinstance(value, FamilyMemberRow):
        return [(1, value)]
    return list(enumerate(value, start=1))


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def check_completeness(
    case: CaseSnapshot, rule: CompletenessRule, settings: EngineSettings
) -> list[Finding]:
    """Flag family roster entries missing required sub-fields.

    Entirely empty rows (an unused spouse block) are not people and are skipped.
    """
    findings: list[Finding] = []
    required = rule.config.required_fields

    for member in case.members:
        extract = case.family_info(member.id)
        if extract is None:
            continue

        incomplete = 0
        for section in rule.config.sections:
            for position, person in _family_rows(extract, section):
                values = person.model_dump()
                if all(_is_blank(v) for v in values.values()):
                    continue
                missing = [f for f in required if _is_blank(values.get(f))]
                if not missing:
                    continue

                incomplete += 1
                label = person.name or f"{section} #{position}"
                fields = ", ".join(_FAMILY_FIELD_LABELS[f] for f in missing)
                findings.append(
                    _finding(
                        rule,
                        member,
                        section=section,
                        form_type="FAMILY_INFO",
                        summary=f"Incomplete family information: {label}",
                        recommendation=f"Ask for the missing {fields} of {label}.",
                        client_message=rule.render(
                            member=member.full_name, person=label, fields=fields
                        ),
                        details={"section": section, "position": position, "missing": missing},
                    )
                )

        if incomplete == 0:
            findings.append(
                _finding(
                    rule,
                    member,
                    status=FindingStatus.PASS,
                    form_type="FAMILY_INFO",
                    summary="Verified: Family information complete",
                    recommendation="All required family fields are present.",
                    client_message=f"Family information for {member.full_name} is complete.",
                )
            )

    return findings


# ─── Identity Match Check ────────────────────────────────────────────


def _best_name_match(names: Sequence[str], candidate: str, threshold: float) -> NameMatch:
    """Best tier (then score) of `candidate` against a member's name and aliases."""
    matches = [match_names(name, candidate, threshold) for name in names if name]
    return max(matches, key=lambda m: (_TIER_RANK[m.tier], m.score))


def check_identity_match(
    case: CaseSnapshot, rule: IdentityMatchRule, settings: EngineSettings
) -> list[Finding]:
    """Names and dates of birth must agree across forms and documents.

    Names match at any tier (exact, substring, fuzzy). A DOB mismatch is only
    a failure on identity documents: a reference letter's dates are not DOBs.
    """
    findings: list[Finding] = []
    id_doc_re = re.compile(rule.config.id_doc_pattern, re.I)
    threshold = settings.fuzzy_threshold
    relationships = set(rule.config.relationships)

    for member in case.members:
        if member.relationship not in relationships:
            continue
        extracts = case.supporting(member.id)
        names = [member.full_name, *member.aliases]

        # ── Supporting documents vs member profile ──────────────────
        for ext in extracts:
            document = ext.doc_type or "supporting document"
            doc_ids = [ext.document_id] if ext.document_id else []
            is_id_doc = bool(ext.doc_type and id_doc_re.search(ext.doc_type))

            if ext.person_name and member.full_name:
                match = _best_name_match(names, ext.person_name, threshold)
                details = {
                    "extracted": ext.person_name,
                    "expected": member.full_name,
                    "tier": match.tier.value,
                    "score": match.score,
                }
                if match.matched:
                    findings.append(
                        _finding(
                            rule,
                            member,
                            status=FindingStatus.PASS,
                            summary="Verified: Name match",
                            recommendation=f"Name correctly matches in {document}.",
                            client_message=f"Name on {document} matches your core profile.",
                            doc_ids=doc_ids,
                            details=details,
                        )
                    )
                else:
                    findings.append(
                        _finding(
                            rule,
                            member,
                            summary="Name inconsistency",
                            recommendation=f"Verify name spelling in {document}.",
                            client_message=rule.render(
                                member=member.full_name, document=document, field="name"
                            ),
                            doc_ids=doc_ids,
                            details=details,
                            include_in_email=True,
                        )
                    )

            if ext.dates and member.dob:
                details = {"extracted": list(ext.dates), "expected": member.dob}
                if any(dob_matches(member.dob, value) for value in ext.dates):
                    findings.append(
                        _finding(
                            rule,
                            member,
                            status=FindingStatus.PASS,
                            summary="Verified: DOB match",
                            recommendation=f"DOB matches in {document}.",
                            client_message=f"DOB in {document} matches core profile.",
                            doc_ids=doc_ids,
                            details=details,
                        )
                    )
                elif is_id_doc:
                    findings.append(
                        _finding(
                            rule,
                            member,
                            summary="DOB inconsistency",
                            recommendation=f"Verify Date of Birth in {document}.",
                            client_message=rule.render(
                                member=member.full_name, document=document, field="date of birth"
                            ),
                            doc_ids=doc_ids,
                            details=details,
                            include_in_email=True,
                        )
                    )

        # ── Schedule A identity vs identity documents ───────────────
        schedule_a = case.schedule_a(member.id)
        identity = schedule_a.identity if schedule_a else None
        if identity is None:
            continue

        for ext in extracts:
            if not (ext.doc_type and id_doc_re.search(ext.doc_type)):
                continue
            doc_ids = [ext.document_id] if ext.document_id else []

            if identity.name and ext.person_name:
                match = match_names(identity.name, ext.person_name, threshold)
                details = {
                    "schedule_a": identity.name,
                    "document": ext.person_name,
                    "tier": match.tier.value,
                    "score": match.score,
                }
                if match.matched:
                    findings.append(
                        _finding(
                            rule,
                            member,
                            status=FindingStatus.PASS,
                            form_type="SCHEDULE_A",
                            summary="Verified: Schedule A name matches ID",
                            recommendation=f"Verified against {ext.doc_type}.",
                            client_message=f"Name on Schedule A matches {ext.doc_type}.",
                            doc_ids=doc_ids,
                            details=details,
                        )
                    )
                else:
                    findings.append(
                        _finding(
                            rule,
                            member,
                            form_type="SCHEDULE_A",
                            summary="Schedule A name differs from ID",
                            recommendation=f"Compare the Schedule A name with {ext.doc_type}.",
                            client_message=rule.render(
                                member=member.full_name, document=ext.doc_type, field="name"
                            ),
                            doc_ids=doc_ids,
                            details=details,
                            include_in_email=True,
                        )
                    )

            if identity.dob and ext.dates:
                details = {"schedule_a": identity.dob, "document": list(ext.dates)}
                if any(dob_matches(identity.dob, value) for value in ext.dates):
                    findings.append(
                        _finding(
                            rule,
                            member,
                            status=FindingStatus.PASS,
                            form_type="SCHEDULE_A",
                            summary="Verified: Schedule A DOB matches ID",
                            recommendation=f"Verified against {ext.doc_type}.",
                            client_message=f"DOB on Schedule A matches {ext.doc_type}.",
                            doc_ids=doc_ids,
                            details=details,
                        )
                    )
                else:
                    findings.append(
                        _finding(
                            rule,
                            member,
                            form_type="SCHEDULE_A",
                            summary="Schedule A DOB differs from ID",
                            recommendation=f"Compare the Schedule A date of birth with {ext.doc_type}.",
                            client_message=rule.render(
                                member=member.full_name,
                                document=ext.doc_type,
                                field="date of birth",
                            ),
                            doc_ids=doc_ids,
                            details=details,
                            include_in_email=True,
                        )
                    )

    return findings
