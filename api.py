"""
Case File Verifier — FastAPI Server
====================================

RESTful API around the rule engine. Stateless: the caller sends the case
snapshot (and optionally its own rules) with every request.

Endpoints:
    POST /evaluate          Evaluate a case snapshot, return findings
    POST /rules/validate    Check rule definitions without running them
    GET  /rules             The built-in rule set
    GET  /health            Health check / readiness probe

Run:
    uvicorn api:app --reload              # Dev (http://localhost:8000)
    uvicorn api:app --host 0.0.0.0        # Production

Docs:
    http://localhost:8000/docs             # Swagger UI (auto-generated)
    http://localhost:8000/redoc            # ReDoc (alternative)
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from case_verifier import __version__
from case_verifier.config import EngineSettings
from case_verifier.engine import RuleEngine
from case_verifier.exceptions import CaseVerificationError
from case_verifier.models import CaseReport, CaseSnapshot
from case_verifier.rules import DEFAULT_RULE_DEFINITIONS, parse_rules

load_dotenv()

logger = logging.getLogger(__name__)


# ─── Application Lifespan (pre-build engine) ────────────────────────

_engine: RuleEngine | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load settings from the environment and build the default engine on startup."""
    global _engine  # noqa: PLW0603
    _engine = RuleEngine(settings=EngineSettings.from_env())
    yield
    _engine = None


# ─── FastAPI App ─────────────────────────────────────────────────────

app = FastAPI(
    title="Case File Verifier API",
    description=(
        "Deterministic compliance checks over an extracted immigration case file: "
        "timeline gaps and overlaps, required forms, evidence corroboration, "
        "education years and identity consistency."
    ),
    version=__version__,
    lifespan=lifespan,
)


# ─── Request / Response Schemas ─────────────────────────────────────


class EvaluateRequest(BaseModel):
    """Request body for the /evaluate endpoint."""

    case: CaseSnapshot
    rules: Optional[list[dict[str, Any]]] = Field(
        None,
        description="Rule definitions to run instead of the built-in set.",
    )


class RulesRequest(BaseModel):
    rules: list[dict[str, Any]]


class RulesValidationResponse(BaseModel):
    valid: bool
    rule_ids: list[str] = Field(default_factory=list)
    skipped: int = Field(0, description="Definitions of a rule type this engine does not know")


class HealthResponse(BaseModel):
    status: str
    version: str
    rules_loaded: int


# ─── Helpers ─────────────────────────────────────────────────────────


def _get_engine() -> RuleEngine:
    if _engine is None:
        raise HTTPException(status_code=503, detail="Engine not initialised")
    return _engine


def _parse_or_422(definitions: list[dict[str, Any]]):
    try:
        return parse_rules(definitions)
    except CaseVerificationError as exc:
        raise HTTPException(
            status_code=422,
            detail={"code": exc.code, "message": str(exc), "details": exc.details},
        ) from exc


# ─── Endpoints ───────────────────────────────────────────────────────


@app.post(
    "/evaluate",
    summary="Evaluate a case snapshot",
    tags=["Verification"],
    responses={
        422: {"description": "Invalid snapshot or rule definitions"},
        503: {"description": "Engine not yet initialised"},
    },
)
async def evaluate_case(request: EvaluateRequest) -> CaseReport:
    """Run every active rule against the case.

    Returns a report with:
    - **passed**: `true` unless an ERROR-severity check failed
    - **findings**: failed and verified checks, each with a client message
    - **error_count / warning_count / verified_count**
    """
    engine = _get_engine()
    if request.rules is not None:
        engine = RuleEngine(_parse_or_422(request.rules), engine.settings)

    logger.info("Evaluating case %s with %d rule(s)", request.case.id, len(engine.rules))
    return await asyncio.to_thread(engine.run, request.case)


@app.post(
    "/rules/validate",
    summary="Validate rule definitions",
    tags=["Rules"],
    responses={422: {"description": "A rule definition is invalid"}},
)
def validate_rules(request: RulesRequest) -> RulesValidationResponse:
    """Parse rule definitions exactly as /evaluate would, without running them."""
    rules = _parse_or_422(request.rules)
    return RulesValidationResponse(
        valid=True,
        rule_ids=[rule.id for rule in rules],
        skipped=len(request.rules) - len(rules),
    )


@app.get("/rules", summary="Built-in rule set", tags=["Rules"])
def list_rules() -> list[dict[str, Any]]:
    """The default rule definitions, in the same JSON shape /evaluate accepts."""
    return DEFAULT_RULE_DEFINITIONS


@app.get(
    "/health",
    summary="Health check",
    tags=["System"],
    responses={503: {"description": "Engine not yet initialised"}},
)
def health_check() -> HealthResponse:
    """Returns service status and configuration info."""
    engine = _get_engine()
    return HealthResponse(status="healthy", version=__version__, rules_loaded=len(engine.rules))
