"""
Case File Verifier — deterministic compliance checks for applicant case files.

Architecture: Case snapshot + Rule set → Dispatcher → Checks → Findings
Philosophy:  Extraction is someone else's job. We only reason over what we are given.

Public API:
  RuleEngine / evaluate / build_report   run a rule set over a CaseSnapshot
  build_members_from_family_info         turn a family form into a roster
  deduplicate_members                    merge entries for the same person
  match_person_to_member                 attach a document's person to the roster
  match_schedule_a_to_member             attach a Schedule A to the roster
  assign_principal_applicant             honour a Schedule A PA declaration

The roster helpers are for callers assembling a snapshot; the engine itself
only reads the members it is given.
"""

from .engine import RuleEngine, build_report, evaluate
from .roster import (
    assign_principal_applicant,
    build_members_from_family_info,
    deduplicate_members,
    find_member_by_name,
    match_person_to_member,
    match_schedule_a_to_member,
)

__version__ = "1.0.0"

__all__ = [
    "RuleEngine",
    "assign_principal_applicant",
    "build_members_from_family_info",
    "build_report",
    "deduplicate_members",
    "evaluate",
    "find_member_by_name",
    "match_person_to_member",
    "match_schedule_a_to_member",
]
