"""
Rule dispatcher — runs every active rule against a case snapshot.

Flow:
  ┌──────────────┐
  │ CaseSnapshot │   ← frozen, read-only
  └──────┬───────┘
         │
  ┌──────▼───────┐
  │  Unassigned  │   ← standing WARNING per document nobody owns
  │  documents   │
  └──────┬───────┘
         │
  ┌──────▼───────┐
  │ Active rules │   ← in order, dispatched by `type` through CHECKS
  └──────┬───────┘
         │
  ┌──────▼───────┐
  │ Post-process │   ← include_in_email defaults to "is an ERROR"
  └──────┬───────┘
         │
  ┌──────▼───────┐
  │  CaseReport  │
  └──────────────┘

Design principles:
  - One broken rule never sinks the run: its exception is logged with the
    rule id and it contributes no findings.
  - Unknown rule types are skipped, not fatal.
  - Running twice on the same snapshot gives the same findings (ids aside).
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable, Iterable, Optional

from .checks import (
    check_completeness,
    check_date_match,
    check_gaps,
    check_identity_match,
    check_overlaps,
    check_required_docs,
    check_years_box,
)
from .config import EngineSettings
from .models import CaseReport, CaseSnapshot, Finding, FindingStatus, Severity
from .rules import RuleBase, default_rules

logger = logging.getLogger(__name__)

CheckFn = Callable[[CaseSnapshot, RuleBase, EngineSettings], list[Finding]]

CHECKS: dict[str, CheckFn] = {
    "gap_check": check_gaps,
    "overlap_check": check_overlaps,
    "required_doc_check": check_required_docs,
    "date_match_check": check_date_match,
    "years_box_check": check_years_box,
    "completeness_check": check_completeness,
    "identity_match_check": check_identity_match,
}

UNASSIGNED_RULE_ID = "unassigned_document"


# ─── Standing Findings ──────────────────────────────────────────────


def check_unassigned_documents(case: CaseSnapshot) -> list[Finding]:
    """Documents not linked to any member always surface, whatever the rules."""
    findings: list[Finding] = []
    for doc in case.documents:
        if not doc.is_unassigned:
            continue
        findings.append(
            Finding(
                id=str(uuid.uuid4()),
                rule_id=UNASSIGNED_RULE_ID,
                severity=Severity.WARNING,
                summary="Document not assigned to a member",
                recommendation=f"Assign '{doc.filename}' to a member so it can be verified.",
                client_message=f"We could not tell who '{doc.filename}' belongs to.",
                doc_ids=[doc.id],
                details={"filename": doc.filename, "kind": doc.kind.value},
                include_in_email=False,
            )
        )
    return findings


# ─── Dispatch ────────────────────────────────────────────────────────


def _apply_default_inclusion(findings: list[Finding]) -> list[Finding]:
    return [
        f
        if f.include_in_email is not None
        else f.model_copy(update={"include_in_email": f.severity is Severity.ERROR})
        for f in findings
    ]


def evaluate(
    case: CaseSnapshot,
    rules: Iterable[RuleBase],
    settings: Optional[EngineSettings] = None,
) -> list[Finding]:
    """Run `rules` against `case` and return every finding, in rule order."""
    settings = settings or EngineSettings()
    findings = check_unassigned_documents(case)
    ran = failed = 0

    for rule in rules:
        if not rule.active:
            continue
        check = CHECKS.get(rule.type)
        if check is None:
            logger.info("Skipping rule %s: no check for type %r", rule.id, rule.type)
            continue

        ran += 1
        try:
            findings.extend(check(case, rule, settings))
        except Exception:
            failed += 1
            logger.exception("Rule %s (%s) failed on case %s", rule.id, rule.type, case.id)

    findings = _apply_default_inclusion(findings)
    logger.info(
        "Case %s: %d rule(s) run, %d failed, %d finding(s)",
        case.id, ran, failed, len(findings),
    )
    return findings


def build_report(case: CaseSnapshot, findings: list[Finding]) -> CaseReport:
    """Summarise findings; the case passes when no ERROR-severity check failed."""
    failures = [f for f in findings if f.status is FindingStatus.FAIL]
    return CaseReport(
        case_id=case.id,
        passed=not any(f.severity is Severity.ERROR for f in failures),
        error_count=sum(1 for f in failures if f.severity is Severity.ERROR),
        warning_count=sum(1 for f in failures if f.severity is Severity.WARNING),
        verified_count=sum(1 for f in findings if f.status is FindingStatus.PASS),
        findings=findings,
    )


class RuleEngine:
    """Holds a rule set and settings; evaluates cases against them.

    Usage:
        engine = RuleEngine()                 # built-in rules
        report = engine.run(case)
        if not report.passed:
            for finding in report.findings:
                print(finding.summary)
    """

    def __init__(
        self,
        rules: Optional[list[RuleBase]] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.rules = list(rules) if rules is not None else default_rules()
        self.settings = settings or EngineSettings()

    def evaluate(self, case: CaseSnapshot) -> list[Finding]:
        return evaluate(case, self.rules, self.settings)

    def run(self, case: CaseSnapshot) -> CaseReport:
        return build_report(case, self.evaluate(case))
