"""
Engine configuration — one explicit settings object instead of module constants.

The thresholds below are empirical (they came out of reviewing real case files,
not out of a derivation), so every one of them is overridable. Entry points
build settings with `EngineSettings.from_env()` after loading `.env`; tests
build them directly with a pinned `today`.
"""

from __future__ import annotations

import os
from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, model_validator

ENV_PREFIX = "CASE_VERIFIER_"


class EngineSettings(BaseModel):
    """Tunable constants for the matcher, the evidence scorer and the timeline checks."""

    model_config = {"frozen": True}

    # ── Fuzzy matching ──────────────────────────────────────────────
    fuzzy_threshold: float = Field(0.8, ge=0.0, le=1.0)

    # ── Evidence scoring ────────────────────────────────────────────
    education_match_threshold: float = Field(0.70, ge=0.0, le=1.0)
    date_tolerance_months: int = Field(1, ge=0)
    institution_weight: float = Field(0.4, ge=0.0, le=1.0)
    field_weight: float = Field(0.3, ge=0.0, le=1.0)
    date_weight: float = Field(0.3, ge=0.0, le=1.0)
    field_fallback_credit: float = Field(0.15, ge=0.0, le=1.0)
    ambiguous_candidates: int = Field(3, ge=1)

    # ── Timeline windows ────────────────────────────────────────────
    history_window_years: int = Field(10, ge=1)
    adult_age: int = Field(18, ge=0)

    # Pinned clock; None means "ask the system clock".
    today: Optional[date] = None

    @model_validator(mode="after")
    def _weights_fit_unit_interval(self) -> "EngineSettings":
        total = self.institution_weight + self.field_weight + self.date_weight
        if total > 1.0 + 1e-9:
            raise ValueError(f"Evidence weights must sum to at most 1.0 (got {total:.2f})")
        if self.field_fallback_credit > self.field_weight:
            raise ValueError("field_fallback_credit cannot exceed field_weight")
        return self

    def current_date(self) -> date:
        return self.today or date.today()

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "EngineSettings":
        """Build settings from CASE_VERIFIER_* variables (e.g. CASE_VERIFIER_FUZZY_THRESHOLD)."""
        env = os.environ if environ is None else environ
        overrides: dict[str, str] = {}
        for name in cls.model_fields:
            value = env.get(f"{ENV_PREFIX}{name.upper()}")
            if value is not None and value.strip():
                overrides[name] = value.strip()
        return cls.model_validate(overrides)
