#!/usr/bin/env python3
"""
Case File Verifier — Entry Point
=================================

Runs the built-in rule set against a case snapshot and prints the findings.

Usage:
    python main.py                          # Bundled sample case
    python main.py case.json                # Your own snapshot
    python main.py case.json rules.json     # ...with your own rules
    CASE_VERIFIER_FUZZY_THRESHOLD=0.9 python main.py
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from case_verifier.config import EngineSettings
from case_verifier.engine import RuleEngine
from case_verifier.exceptions import CaseVerificationError, SnapshotError
from case_verifier.models import CaseReport, CaseSnapshot, FindingStatus, Severity
from case_verifier.rules import default_rules, load_rules

load_dotenv()


# ─── Sample Case — Flawed on Purpose ────────────────────────────────

SAMPLE_CASE = {
    "id": "CASE-2024-0117",
    "members": [
        {
            "id": "m-pa",
            "full_name": "Priya Raman",
            "relationship": "PA",
            "dob": "1988-03-14",
            "dob_precision": "DAY",
        },
        {
            "id": "m-spouse",
            "full_name": "Arjun Raman",
            "relationship": "SPOUSE",
            "dob": "1986-11-02",
            "dob_precision": "DAY",
        },
        {
            "id": "m-child",
            "full_name": "Meera Raman",
            "relationship": "CHILD",
            "dob": "2015-07-21",
            "dob_precision": "DAY",
        },
    ],
    "documents": [
        {"id": "d-1", "filename": "imm5669_priya.pdf", "kind": "FORM",
         "form_type": "IMM 5669", "person_id": "m-pa"},
        {"id": "d-2", "filename": "imm5406_priya.pdf", "kind": "FORM",
         "form_type": "IMM 5406", "person_id": "m-pa"},
        {"id": "d-3", "filename": "passport_priya.pdf", "kind": "SUPPORTING",
         "support_type": "PASSPORT", "person_id": "m-pa"},
        {"id": "d-4", "filename": "bsc_degree.pdf", "kind": "SUPPORTING",
         "support_type": "DEGREE", "person_id": "m-pa"},
        {"id": "d-5", "filename": "scan_0042.jpg", "kind": "SUPPORTING"},
    ],
    "extracted": {
        "schedule_a_by_member": {
            "m-pa": {
                "identity": {"name": "Raman, Priya", "dob": "1988-03-14"},
                "applicant_type": "PRINCIPAL_APPLICANT",
                "education": {
                    "rows": [
                        {"from": "2006-08", "to": "2010-05",
                         "institution": "University of Madras",
                         "field_of_study": "Computer Science"},
                    ],
                    "years_boxes": {"university": 6},
                },
                "personal_history": {
                    "rows": [
                        {"from": "2014-01", "to": "2019-06",
                         "activity_type": "Employment",
                         "employer_or_company": "Infosys"},
                        {"from": "2019-01", "to": "2020-02",
                         "activity_type": "Employment",
                         "employer_or_company": "Wipro"},
                        {"from": "2020-09", "to": "PRESENT",
                         "activity_type": "Employment",
                         "employer_or_company": "TCS"},
                    ]
                },
                "addresses": {
                    "rows": [
                        {"from": "2010-01", "to": "PRESENT",
                         "full_address": "12 Lake View Road, Chennai"},
                    ]
                },
            }
        },
        "family_info_by_member": {
            "m-pa": {
                "applicant": {"name": "Priya Raman", "dob": "1988-03-14",
                              "country_of_birth": "India"},
                "spouse": {"name": "Arjun Raman", "dob": "1986-11-02"},
                "children": [
                    {"name": "Meera Raman", "dob": "2015-07-21",
                     "country_of_birth": "India"},
                ],
            }
        },
        "supporting_by_member": {
            "m-pa": [
                {"doc_type": "Passport", "person_name": "PRIYA RAMAN",
                 "dates": ["1988-03-14"], "document_id": "d-3"},
            ]
        },
        "education_claims_by_member": {
            "m-pa": [
                {"credential": "Bachelor of Science in Computer Science",
                 "institution": "University of Madras",
                 "from_month": "2006-07", "to_month": "2010-05",
                 "anchor_snippet": "July 2006 - May 2010",
                 "document_id": "d-4"},
            ]
        },
    },
}


# ─── ANSI Color Constants ───────────────────────────────────────────

_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"
_BOLD = "\033[1m"
_RESET = "\033[0m"
_WIDTH = 72


# ─── Pretty Printer Helpers ─────────────────────────────────────────


def _print_failures(findings, color: str, label: str) -> None:
    """Print a group of failed findings with their client-facing message."""
    if not findings:
        return
    print(f"\n  {color}{_BOLD}{label} ({len(findings)}){_RESET}")
    for f in findings:
        who = f" — {f.member_name}" if f.member_name else ""
        print(f"    {color}[{f.rule_id}]{_RESET}{who}")
        print(f"    {f.summary}")
        print(f"    {_DIM}Client: {f.client_message}{_RESET}")
        print(f"    {_DIM}Action: {f.recommendation}{_RESET}")
        print()


def _print_verified(findings) -> None:
    """Print verified findings (compact format)."""
    if not findings:
        return
    print(f"  {_CYAN}VERIFIED ({len(findings)}){_RESET}")
    for f in findings:
        who = f"{f.member_name}: " if f.member_name else ""
        print(f"    [{f.rule_id}] {who}{f.summary}")
    print()


# ─── Pretty Printer ─────────────────────────────────────────────────


def print_report(report: CaseReport, case: CaseSnapshot) -> int:
    """Pretty-print the case report with ANSI color codes.

    Returns:
        0 if the case passed, 1 if any ERROR check failed.
    """
    print(f"\n{'=' * _WIDTH}")
    print(f"{_BOLD}{_CYAN}  CASE VERIFICATION REPORT{_RESET}")
    print(f"{'=' * _WIDTH}")
    print(f"  Case:        {report.case_id}")
    print(f"  Members:     {', '.join(f'{m.full_name} ({m.relationship.value})' for m in case.members)}")
    print(f"  Documents:   {len(case.documents)}")
    print(f"{'─' * _WIDTH}")

    failures = [f for f in report.findings if f.status is FindingStatus.FAIL]
    errors = [f for f in failures if f.severity is Severity.ERROR]
    warnings = [f for f in failures if f.severity is not Severity.ERROR]
    verified = [f for f in report.findings if f.status is FindingStatus.PASS]

    _print_failures(errors, _RED, "ERRORS")
    _print_failures(warnings, _YELLOW, "WARNINGS")
    _print_verified(verified)

    print(f"{'=' * _WIDTH}")
    if report.passed:
        print(f"  {_GREEN}{_BOLD}CASE PASSED ALL ERROR CHECKS{_RESET}")
    else:
        print(f"  {_RED}{_BOLD}CASE BLOCKED  --  {report.error_count} error(s) found{_RESET}")
    print(f"{'=' * _WIDTH}\n")

    return 0 if report.passed else 1


# ─── Main ────────────────────────────────────────────────────────────


def load_case(path: str | None) -> CaseSnapshot:
    """The bundled sample, or a snapshot read from a JSON file."""
    if path is None:
        return CaseSnapshot.model_validate(SAMPLE_CASE)
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return CaseSnapshot.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        raise SnapshotError(f"Cannot load case snapshot {path}: {exc}") from exc


def main(argv: list[str] | None = None):
    """Evaluate a case and print the report."""
    args = sys.argv[1:] if argv is None else argv
    print("\n  Starting Case File Verifier...")

    try:
        case = load_case(args[0] if args else None)
        rules = load_rules(args[1]) if len(args) > 1 else default_rules()
        settings = EngineSettings.from_env()
    except (CaseVerificationError, ValidationError) as exc:
        print(f"  {_RED}{exc}{_RESET}", file=sys.stderr)
        sys.exit(2)

    print(f"  Evaluating {len(rules)} rule(s)...\n")
    report = RuleEngine(rules, settings).run(case)
    sys.exit(print_report(report, case))


if __name__ == "__main__":
    main()
