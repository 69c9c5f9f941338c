"""
Tests for the seven rule checks, each run in isolation against small cases.

The clock is pinned to 2025-06-15 by the `settings` fixture, so the gap
window for an adult born before 1997 is Jun 2015 → Jun 2025.

Run: pytest tests/ -v
"""

from __future__ import annotations

import copy
from typing import Any

from case_verifier.checks import (
    check_completeness,
    check_date_match,
    check_gaps,
    check_identity_match,
    check_overlaps,
    check_required_docs,
    check_years_box,
)
from case_verifier.config import EngineSettings
from case_verifier.models import CaseSnapshot, Finding, FindingStatus, Severity
from case_verifier.rules import DEFAULT_RULE_DEFINITIONS, RuleBase, parse_rules

# ─── Test Data ───────────────────────────────────────────────────────

PA = {"id": "m-pa", "full_name": "Priya Raman", "relationship": "PA", "dob": "1985-01-10"}
SPOUSE = {"id": "m-sp", "full_name": "Arjun Raman", "relationship": "SPOUSE", "dob": "1984-05-02"}
CHILD = {"id": "m-ch", "full_name": "Meera Raman", "relationship": "CHILD", "dob": "2015-07-21"}


def _rule(rule_id: str, **config: Any) -> RuleBase:
    """A built-in rule, with its config entries overridden."""
    definition = copy.deepcopy(next(d for d in DEFAULT_RULE_DEFINITIONS if d["id"] == rule_id))
    definition["config"].update(config)
    (rule,) = parse_rules([definition])
    return rule


def _case(
    members: list[dict] | None = None,
    schedule_a: dict | None = None,
    family_info: dict | None = None,
    supporting: dict | None = None,
    claims: dict | None = None,
    documents: list[dict] | None = None,
) -> CaseSnapshot:
    """Factory for case snapshots; extract maps are keyed by member id."""
    return CaseSnapshot.model_validate(
        {
            "id": "case-1",
            "members": members if members is not None else [PA],
            "documents": documents or [],
            "extracted": {
                "schedule_a_by_member": schedule_a or {},
                "family_info_by_member": family_info or {},
                "supporting_by_member": supporting or {},
                "education_claims_by_member": claims or {},
            },
        }
    )


def _history(*rows: tuple[str, str, str]) -> dict:
    return {
        "personal_history": {
            "rows": [
                {"from": start, "to": end, "activity_type": activity, "employer_or_company": "Acme"}
                for start, end, activity in rows
            ]
        }
    }


def _education(rows: list[dict], years: dict | None = None) -> dict:
    return {"education": {"rows": rows, "years_boxes": years}}


def _failures(findings: list[Finding]) -> list[Finding]:
    return [f for f in findings if f.status is FindingStatus.FAIL]


def _passes(findings: list[Finding]) -> list[Finding]:
    return [f for f in findings if f.status is FindingStatus.PASS]


UOFT_ROW = {
    "from": "2004-09",
    "to": "2008-06",
    "institution": "University of Toronto",
    "field_of_study": "Computer Science",
}


# ═══════════════════════════════════════════════════════════════════
# Gap Check
# ═══════════════════════════════════════════════════════════════════


class TestGapCheck:
    def test_gap_is_reported_with_month_range(self, settings: EngineSettings) -> None:
        case = _case(
            schedule_a={
                "m-pa": _history(("2015-01", "2018-12", "Employment"), ("2019-03", "PRESENT", "Employment"))
            }
        )
        findings = check_gaps(case, _rule("history-gaps"), settings)
        assert len(findings) == 1
        gap = findings[0]
        assert gap.status is FindingStatus.FAIL
        assert gap.severity is Severity.ERROR
        assert gap.member_id == "m-pa"
        assert gap.details["gap"] == {"start": "2019-01", "end": "2019-02"}
        assert "Jan 2019" in gap.client_message and "Feb 2019" in gap.client_message

    def test_continuous_history_is_verified(self, settings: EngineSettings) -> None:
        case = _case(schedule_a={"m-pa": _history(("2010-01", "PRESENT", "Employment"))})
        findings = check_gaps(case, _rule("history-gaps"), settings)
        assert [f.status for f in findings] == [FindingStatus.PASS]
        assert findings[0].severity is Severity.INFO

    def test_history_before_window_is_ignored(self, settings: EngineSettings) -> None:
        case = _case(
            schedule_a={
                "m-pa": _history(("2005-01", "2006-01", "Education"), ("2014-01", "PRESENT", "Employment"))
            }
        )
        assert _failures(check_gaps(case, _rule("history-gaps"), settings)) == []

    def test_minors_are_exempt(self, settings: EngineSettings) -> None:
        case = _case(members=[CHILD], schedule_a={"m-ch": _history(("2024-01", "2024-02", "School"))})
        assert check_gaps(case, _rule("history-gaps"), settings) == []

    def test_no_rows_yields_nothing(self, settings: EngineSettings) -> None:
        case = _case(schedule_a={"m-pa": {"personal_history": {"rows": []}}})
        assert check_gaps(case, _rule("history-gaps"), settings) == []

    def test_no_rows_flagged_when_configured(self, settings: EngineSettings) -> None:
        case = _case(schedule_a={"m-pa": {"personal_history": {"rows": []}}})
        findings = check_gaps(case, _rule("history-gaps", flagEmpty=True), settings)
        assert len(_failures(findings)) == 1

    def test_member_without_schedule_a_is_skipped(self, settings: EngineSettings) -> None:
        assert check_gaps(_case(), _rule("history-gaps"), settings) == []

    def test_implausible_dob_does_not_hide_other_members(self, settings: EngineSettings) -> None:
        typo = {**SPOUSE, "dob": "9984-05-02"}
        history = _history(("2015-01", "2018-12", "Employment"), ("2019-03", "PRESENT", "Employment"))
        case = _case(members=[PA, typo], schedule_a={"m-pa": history, "m-sp": history})
        findings = _failures(check_gaps(case, _rule("history-gaps"), settings))
        assert sorted(f.member_id for f in findings) == ["m-pa", "m-sp"]

    def test_address_section(self, settings: EngineSettings) -> None:
        case = _case(
            schedule_a={
                "m-pa": {
                    "addresses": {
                        "rows": [
                            {"from": "2010-01", "to": "2020-12", "full_address": "1 Main St"},
                            {"from": "2021-03", "to": "PRESENT", "full_address": "2 Side St"},
                        ]
                    }
                }
            }
        )
        (finding,) = check_gaps(case, _rule("address-gaps"), settings)
        assert finding.section == "addresses"
        assert finding.details["gap"] == {"start": "2021-01", "end": "2021-02"}


# ═══════════════════════════════════════════════════════════════════
# Overlap Check
# ═══════════════════════════════════════════════════════════════════


class TestOverlapCheck:
    def test_two_jobs_at_once(self, settings: EngineSettings) -> None:
        case = _case(
            schedule_a={
                "m-pa": _history(("2018-01", "2019-06", "Employment"), ("2019-01", "2020-12", "Employment"))
            }
        )
        (finding,) = check_overlaps(case, _rule("history-overlaps"), settings)
        assert finding.status is FindingStatus.FAIL
        assert finding.severity is Severity.WARNING
        assert finding.details["overlap"] == {"start": "Jan 2019", "end": "Jun 2019"}
        assert finding.details["row_indexes"] == [0, 1]

    def test_study_while_working_is_verified(self, settings: EngineSettings) -> None:
        case = _case(
            schedule_a={
                "m-pa": _history(("2018-01", "2019-06", "Employment"), ("2019-01", "2020-12", "Education"))
            }
        )
        findings = check_overlaps(case, _rule("history-overlaps"), settings)
        assert [f.status for f in findings] == [FindingStatus.PASS]

    def test_category_is_configurable(self, settings: EngineSettings) -> None:
        case = _case(
            schedule_a={
                "m-pa": _history(("2018-01", "2019-06", "Education"), ("2019-01", "2020-12", "Education"))
            }
        )
        findings = check_overlaps(case, _rule("history-overlaps", category="education"), settings)
        assert len(_failures(findings)) == 1

    def test_rows_without_usable_dates_are_verified(self, settings: EngineSettings) -> None:
        case = _case(
            schedule_a={"m-pa": _history(("2018-01", "", "Employment"), ("sometime", "2019-01", "Employment"))}
        )
        findings = check_overlaps(case, _rule("history-overlaps"), settings)
        assert [f.status for f in findings] == [FindingStatus.PASS]

    def test_empty_section_is_skipped(self, settings: EngineSettings) -> None:
        case = _case(schedule_a={"m-pa": _history()})
        assert check_overlaps(case, _rule("history-overlaps"), settings) == []


# ═══════════════════════════════════════════════════════════════════
# Required Document Check
# ═══════════════════════════════════════════════════════════════════


class TestRequiredDocCheck:
    def test_missing_form_for_adult(self, settings: EngineSettings) -> None:
        case = _case(schedule_a={"m-pa": {}})
        (finding,) = check_required_docs(case, _rule("family-info-required"), settings)
        assert finding.status is FindingStatus.FAIL
        assert finding.form_type == "FAMILY_INFO"
        assert "Family Information (IMM 5406)" in finding.client_message

    def test_extracted_form_is_present(self, settings: EngineSettings) -> None:
        case = _case(schedule_a={"m-pa": {}})
        (finding,) = check_required_docs(case, _rule("schedule-a-required"), settings)
        assert finding.status is FindingStatus.PASS

    def test_linked_document_counts_as_present(self, settings: EngineSettings) -> None:
        case = _case(
            documents=[
                {"id": "d-1", "filename": "family.pdf", "kind": "FORM",
                 "form_type": "IMM5406", "person_id": "m-pa"},
            ]
        )
        (finding,) = check_required_docs(case, _rule("family-info-required"), settings)
        assert finding.status is FindingStatus.PASS
        assert finding.doc_ids == ["d-1"]

    def test_minor_is_exempt(self, settings: EngineSettings) -> None:
        (finding,) = check_required_docs(_case(members=[CHILD]), _rule("schedule-a-required"), settings)
        assert finding.status is FindingStatus.PASS
        assert finding.severity is Severity.INFO
        assert finding.details["age"] == 9

    def test_every_member_is_checked(self, settings: EngineSettings) -> None:
        case = _case(members=[PA, SPOUSE, CHILD], schedule_a={"m-pa": {}})
        findings = check_required_docs(case, _rule("schedule-a-required"), settings)
        assert [(f.member_id, f.status) for f in findings] == [
            ("m-pa", FindingStatus.PASS),
            ("m-sp", FindingStatus.FAIL),
            ("m-ch", FindingStatus.PASS),
        ]


# ═══════════════════════════════════════════════════════════════════
# Date Match Check
# ═══════════════════════════════════════════════════════════════════


class TestDateMatchCheck:
    def test_matching_claim_verifies_row(self, settings: EngineSettings) -> None:
        case = _case(
            schedule_a={"m-pa": _education([UOFT_ROW])},
            claims={
                "m-pa": [
                    {"credential": "BSc", "institution": "University of Toronto",
                     "field_of_study": "Computer Science", "from_month": "2004-09",
                     "to_month": "2008-05", "document_id": "d-degree"}
                ]
            },
        )
        (finding,) = check_date_match(case, _rule("education-evidence"), settings)
        assert finding.status is FindingStatus.PASS
        assert finding.doc_ids == ["d-degree"]
        assert finding.details["match"]["score"] == 1.0

    def test_weak_claims_are_listed_as_candidates(self, settings: EngineSettings) -> None:
        case = _case(
            schedule_a={"m-pa": _education([UOFT_ROW])},
            claims={
                "m-pa": [
                    {"credential": "Diploma", "institution": "York University",
                     "from_month": "2004-09", "to_month": "2008-06", "document_id": "d-york"}
                ]
            },
        )
        (finding,) = check_date_match(case, _rule("education-evidence"), settings)
        assert finding.status is FindingStatus.FAIL
        assert finding.severity is Severity.WARNING
        assert finding.summary.startswith("Ambiguous")
        assert [c["claim"]["document_id"] for c in finding.details["candidates"]] == ["d-york"]

    def test_supporting_document_dates_verify_row(self, settings: EngineSettings) -> None:
        case = _case(
            schedule_a={"m-pa": _education([UOFT_ROW])},
            supporting={
                "m-pa": [{"doc_type": "Degree Certificate", "dates": ["2008-06-12"], "document_id": "d-cert"}]
            },
        )
        (finding,) = check_date_match(case, _rule("education-evidence"), settings)
        assert finding.status is FindingStatus.PASS
        assert finding.details["evidence_dates"] == ["2008-06-12"]

    def test_evidence_that_does_not_line_up(self, settings: EngineSettings) -> None:
        case = _case(
            schedule_a={"m-pa": _education([UOFT_ROW])},
            supporting={"m-pa": [{"doc_type": "Transcript", "dates": ["1999-01-01"]}]},
        )
        (finding,) = check_date_match(case, _rule("education-evidence"), settings)
        assert finding.status is FindingStatus.FAIL
        assert finding.summary.startswith("Unverified")
        assert "University of Toronto" in finding.client_message

    def test_no_evidence_yields_nothing(self, settings: EngineSettings) -> None:
        case = _case(
            schedule_a={"m-pa": _education([UOFT_ROW])},
            supporting={"m-pa": [{"doc_type": "Passport", "dates": ["2008-06-12"]}]},
        )
        assert check_date_match(case, _rule("education-evidence"), settings) == []

    def test_reference_letter_verifies_employment(self, settings: EngineSettings) -> None:
        case = _case(
            schedule_a={"m-pa": _history(("2018-03", "2020-01", "Employment"))},
            supporting={"m-pa": [{"doc_type": "Employment Letter", "dates": ["2018-03-01"]}]},
        )
        (finding,) = check_date_match(case, _rule("employment-evidence"), settings)
        assert finding.status is FindingStatus.PASS
        assert finding.section == "personal_history"


# ═══════════════════════════════════════════════════════════════════
# Years Box Check
# ═══════════════════════════════════════════════════════════════════


class TestYearsBoxCheck:
    def test_declared_years_disagree(self, settings: EngineSettings) -> None:
        case = _case(schedule_a={"m-pa": _education([UOFT_ROW], {"university": 6})})
        (finding,) = check_years_box(case, _rule("university-years"), settings)
        assert finding.status is FindingStatus.FAIL
        assert finding.details["computed"] == 3
        assert finding.details["declared"] == 6
        assert "declared 6 year(s)" in finding.client_message

    def test_declared_years_agree(self, settings: EngineSettings) -> None:
        case = _case(schedule_a={"m-pa": _education([UOFT_ROW], {"university": 3})})
        (finding,) = check_years_box(case, _rule("university-years"), settings)
        assert finding.status is FindingStatus.PASS

    def test_non_university_rows_are_excluded(self, settings: EngineSettings) -> None:
        school = {"from": "1998-09", "to": "2004-06", "institution": "Springfield High School"}
        case = _case(schedule_a={"m-pa": _education([school, UOFT_ROW], {"university": 3})})
        (finding,) = check_years_box(case, _rule("university-years"), settings)
        assert finding.status is FindingStatus.PASS
        assert finding.details["rows"] == 1

    def test_missing_box_is_skipped(self, settings: EngineSettings) -> None:
        case = _case(schedule_a={"m-pa": _education([UOFT_ROW], {"secondary": 4})})
        assert check_years_box(case, _rule("university-years"), settings) == []


# ═══════════════════════════════════════════════════════════════════
# Completeness Check
# ═══════════════════════════════════════════════════════════════════


class TestCompletenessCheck:
    def test_missing_fields_are_named(self, settings: EngineSettings) -> None:
        case = _case(
            family_info={
                "m-pa": {
                    "applicant": {"name": "Priya Raman", "dob": "1985-01-10", "country_of_birth": "India"},
                    "spouse": {"name": "Arjun Raman"},
                }
            }
        )
        (finding,) = check_completeness(case, _rule("family-completeness"), settings)
        assert finding.status is FindingStatus.FAIL
        assert finding.details["missing"] == ["dob", "country_of_birth"]
        assert finding.client_message == (
            "Family information for Arjun Raman is missing: date of birth, country of birth."
        )

    def test_unnamed_child_is_labelled_by_position(self, settings: EngineSettings) -> None:
        case = _case(family_info={"m-pa": {"children": [{"dob": "2015-07-21", "country_of_birth": "India"}]}})
        (finding,) = check_completeness(case, _rule("family-completeness"), settings)
        assert "children #1" in finding.client_message

    def test_empty_rows_are_not_people(self, settings: EngineSettings) -> None:
        case = _case(
            family_info={
                "m-pa": {
                    "applicant": {"name": "Priya Raman", "dob": "1985-01-10", "country_of_birth": "India"},
                    "spouse": {"name": "", "dob": None},
                }
            }
        )
        findings = check_completeness(case, _rule("family-completeness"), settings)
        assert [f.status for f in findings] == [FindingStatus.PASS]


# ═══════════════════════════════════════════════════════════════════
# Identity Match Check
# ═══════════════════════════════════════════════════════════════════


def _passport(name: str, dob: str, doc_type: str = "Passport") -> dict:
    return {"doc_type": doc_type, "person_name": name, "dates": [dob], "document_id": "d-pp"}


class TestIdentityMatchCheck:
    def test_reordered_name_and_same_dob_verify(self, settings: EngineSettings) -> None:
        case = _case(supporting={"m-pa": [_passport("RAMAN, PRIYA", "1985-01-10")]})
        findings = check_identity_match(case, _rule("identity-consistency"), settings)
        assert [f.summary for f in findings] == ["Verified: Name match", "Verified: DOB match"]

    def test_name_mismatch_goes_to_email(self, settings: EngineSettings) -> None:
        case = _case(supporting={"m-pa": [_passport("John Doe", "1985-01-10")]})
        (failure,) = _failures(check_identity_match(case, _rule("identity-consistency"), settings))
        assert failure.severity is Severity.ERROR
        assert failure.include_in_email is True
        assert failure.details["tier"] == "none"
        assert failure.doc_ids == ["d-pp"]

    def test_alias_is_accepted(self, settings: EngineSettings) -> None:
        member = {**PA, "aliases": ["Priya Subramanian"]}
        case = _case(members=[member], supporting={"m-pa": [_passport("Priya Subramanian", "1985-01-10")]})
        assert _failures(check_identity_match(case, _rule("identity-consistency"), settings)) == []

    def test_dob_mismatch_on_id_document(self, settings: EngineSettings) -> None:
        case = _case(supporting={"m-pa": [_passport("Priya Raman", "1986-01-10")]})
        (failure,) = _failures(check_identity_match(case, _rule("identity-consistency"), settings))
        assert failure.summary == "DOB inconsistency"
        assert "date of birth" in failure.client_message

    def test_other_documents_dates_are_not_dobs(self, settings: EngineSettings) -> None:
        letter = _passport("Priya Raman", "2019-03-01", doc_type="Reference Letter")
        case = _case(supporting={"m-pa": [letter]})
        assert _failures(check_identity_match(case, _rule("identity-consistency"), settings)) == []

    def test_schedule_a_identity_against_id_document(self, settings: EngineSettings) -> None:
        case = _case(
            schedule_a={"m-pa": {"identity": {"name": "Priya Ramen", "dob": "1985-01-10"}}},
            supporting={"m-pa": [_passport("Priya Raman", "1985-01-10")]},
        )
        findings = check_identity_match(case, _rule("identity-consistency"), settings)
        (failure,) = _failures(findings)
        assert failure.form_type == "SCHEDULE_A"
        assert failure.summary == "Schedule A name differs from ID"
        assert "Verified: Schedule A DOB matches ID" in [f.summary for f in _passes(findings)]

    def test_relationships_outside_scope_are_skipped(self, settings: EngineSettings) -> None:
        parent = {**PA, "relationship": "PARENT"}
        case = _case(members=[parent], supporting={"m-pa": [_passport("John Doe", "1950-01-01")]})
        assert check_identity_match(case, _rule("identity-consistency"), settings) == []
