"""
Education evidence scoring — how well does a diploma back up a declared row?

A declared education row and an extracted evidence claim are compared on
three independent dimensions, each scored 0.0-1.0 and weighted:

    institution    token overlap                         × 0.4
    field of study token overlap                         × 0.3
                   (or 0.15 flat if no explicit field but the
                    declared field appears in the credential)
    dates          overlap ratio with ±1 month tolerance × 0.3

The design favours recall for near-matches: a transcript that says
"Sept 2015" against a declared "2015-10" still earns full date credit.
Weights, tolerance and threshold come from EngineSettings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

from .config import EngineSettings
from .matching import date_range_overlap, token_overlap_score
from .models import EducationEvidenceClaim, EducationRow
from .normalize import normalize_name


@dataclass
class EvidenceMatch:
    """A scored claim, with the per-dimension breakdown for the audit trail."""

    claim: EducationEvidenceClaim
    score: float
    components: dict[str, float] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "score": round(self.score, 3),
            "components": {k: round(v, 3) for k, v in self.components.items()},
            "claim": self.claim.model_dump(mode="json"),
        }


# ─── Scoring ─────────────────────────────────────────────────────────


def score_components(
    row: EducationRow, claim: EducationEvidenceClaim, settings: Optional[EngineSettings] = None
) -> dict[str, float]:
    """Weighted contribution of each dimension (already multiplied by its weight)."""
    settings = settings or EngineSettings()
    components = {"institution": 0.0, "field": 0.0, "dates": 0.0}

    if row.institution and claim.institution:
        components["institution"] = (
            token_overlap_score(row.institution, claim.institution) * settings.institution_weight
        )

    if row.field_of_study and claim.field_of_study:
        components["field"] = (
            token_overlap_score(row.field_of_study, claim.field_of_study) * settings.field_weight
        )
    elif row.field_of_study and claim.credential:
        # No explicit field: half credit if the field is spelled out in the credential
        field_norm = normalize_name(row.field_of_study)
        credential_norm = normalize_name(claim.credential)
        if field_norm and credential_norm and (
            field_norm in credential_norm or credential_norm in field_norm
        ):
            components["field"] = settings.field_fallback_credit

    if row.from_month and row.to_month and claim.from_month and claim.to_month:
        components["dates"] = (
            date_range_overlap(
                row.from_month,
                row.to_month,
                claim.from_month,
                claim.to_month,
                tolerance=settings.date_tolerance_months,
                today=settings.today,
            )
            * settings.date_weight
        )

    return components


def score_education_match(
    row: EducationRow, claim: EducationEvidenceClaim, settings: Optional[EngineSettings] = None
) -> float:
    """Weighted match score in [0, 1] between a declared row and a claim."""
    total = sum(score_components(row, claim, settings).values())
    return max(0.0, min(1.0, total))


# ─── Selection ───────────────────────────────────────────────────────


def rank_candidates(
    row: EducationRow,
    claims: Sequence[EducationEvidenceClaim],
    limit: Optional[int] = None,
    settings: Optional[EngineSettings] = None,
) -> list[EvidenceMatch]:
    """All claims with a non-zero score, best first (stable on ties)."""
    scored: list[EvidenceMatch] = []
    for claim in claims:
        components = score_components(row, claim, settings)
        score = max(0.0, min(1.0, sum(components.values())))
        if score > 0:
            scored.append(EvidenceMatch(claim=claim, score=score, components=components))
    scored.sort(key=lambda m: m.score, reverse=True)
    return scored[:limit] if limit is not None else scored


def find_best_match(
    row: EducationRow,
    claims: Sequence[EducationEvidenceClaim],
    threshold: Optional[float] = None,
    settings: Optional[EngineSettings] = None,
) -> Optional[EvidenceMatch]:
    """Highest-scoring claim at or above `threshold` (default 0.70), else None.

    On a tie the earlier claim wins.
    """
    settings = settings or EngineSettings()
    if threshold is None:
        threshold = settings.education_match_threshold

    ranked = rank_candidates(row, claims, settings=settings)
    if ranked and ranked[0].score >= threshold:
        return ranked[0]
    return None
