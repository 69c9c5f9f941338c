"""
Rule definitions — one strongly-typed model per rule kind.

Rules arrive as JSON (edited by reviewers, persisted elsewhere). Each kind is
a pydantic model discriminated on `type` and carries its own typed `config`,
so a gap rule without a `section` fails at load time instead of silently
producing nothing at run time.

Message templates use `{placeholder}` substitution. The placeholders a check
can fill are fixed per rule kind and templates are validated against them on
construction: an unknown placeholder would otherwise leak into a client
message as a literal "{typo}".

Unknown rule types are skipped (logged) by `parse_rules` — a newer rule file
must still load in an older engine.
"""

from __future__ import annotations

import json
import logging
import re
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, ClassVar, Iterable, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from .exceptions import RuleConfigError, RuleTemplateError
from .forms import FormType
from .models import Relationship, Severity

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


class TimelineSection(str, Enum):
    PERSONAL_HISTORY = "personal_history"
    EDUCATION = "education"
    ADDRESSES = "addresses"

    @property
    def display(self) -> str:
        return self.value.replace("_", " ")


def template_placeholders(template: str) -> set[str]:
    return set(_PLACEHOLDER_RE.findall(template))


def _check_pattern(pattern: str) -> None:
    try:
        re.compile(pattern)
    except re.error as exc:
        raise ValueError(f"Invalid regular expression {pattern!r}: {exc}") from exc


# ─── Typed Configs ──────────────────────────────────────────────────


class _RuleConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class GapCheckConfig(_RuleConfig):
    section: TimelineSection
    flag_empty: bool = Field(False, alias="flagEmpty")  # Treat "no rows" as a failure


class OverlapCheckConfig(_RuleConfig):
    section: TimelineSection = TimelineSection.PERSONAL_HISTORY
    category: str = "employment"  # Only rows whose label contains this conflict


class RequiredDocConfig(_RuleConfig):
    required_form: FormType = Field(..., alias="requiredForm")

    @field_validator("required_form")
    @classmethod
    def _known_form(cls, form: FormType) -> FormType:
        if form is FormType.UNKNOWN:
            raise ValueError("requiredForm must name a concrete form")
        return form


class DateMatchConfig(_RuleConfig):
    section: Literal["personal_history", "education"]
    match_threshold: Optional[float] = Field(None, alias="matchThreshold", ge=0.0, le=1.0)
    doc_type_pattern: Optional[str] = Field(None, alias="docTypePattern")

    @field_validator("doc_type_pattern")
    @classmethod
    def _pattern_compiles(cls, pattern: Optional[str]) -> Optional[str]:
        if pattern is not None:
            _check_pattern(pattern)
        return pattern


class YearsBoxConfig(_RuleConfig):
    tolerance: float = Field(0.5, ge=0.0)
    level: Literal["university"] = "university"
    keywords: list[str] = Field(
        default_factory=lambda: [
            "university", "college", "bachelor", "master", "phd", "bsc", "msc", "mba",
        ]
    )


FamilySection = Literal["applicant", "spouse", "children", "parents", "siblings"]
FamilyField = Literal["name", "dob", "country_of_birth", "address", "marital_status"]


class CompletenessConfig(_RuleConfig):
    sections: list[FamilySection] = Field(
        default_factory=lambda: ["applicant", "spouse", "children"]
    )
    required_fields: list[FamilyField] = Field(
        default_factory=lambda: ["name", "dob", "country_of_birth"], alias="requiredFields"
    )


class IdentityMatchConfig(_RuleConfig):
    relationships: list[Relationship] = Field(
        default_factory=lambda: [Relationship.PA, Relationship.SPOUSE, Relationship.CHILD]
    )
    id_doc_pattern: str = Field(r"passport|\bid\b|identity|birth|national", alias="idDocPattern")

    @field_validator("id_doc_pattern")
    @classmethod
    def _pattern_compiles(cls, pattern: str) -> str:
        _check_pattern(pattern)
        return pattern


# ─── Rule Models ────────────────────────────────────────────────────


class RuleBase(BaseModel):
    """Fields shared by every rule kind."""

    model_config = ConfigDict(populate_by_name=True)

    # Placeholders the matching check fills in when rendering the template
    placeholders: ClassVar[frozenset[str]] = frozenset({"member"})

    id: str
    type: str
    name: str = ""
    description: str = ""
    active: bool = True
    severity: Severity
    message_template: str = Field(..., alias="messageTemplate")

    @model_validator(mode="after")
    def _template_placeholders_known(self) -> "RuleBase":
        unknown = template_placeholders(self.message_template) - self.placeholders
        if unknown:
            raise RuleTemplateError(
                f"Template of rule '{self.id}' uses unknown placeholder(s) "
                f"{', '.join('{' + p + '}' for p in sorted(unknown))}; "
                f"allowed: {', '.join(sorted(self.placeholders))}",
                details={"rule_id": self.id, "unknown": sorted(unknown)},
            )
        return self

    def render(self, **values: Any) -> str:
        """Substitute `{placeholder}` tokens with the given values."""
        return _PLACEHOLDER_RE.sub(
            lambda m: str(values[m.group(1)]) if m.group(1) in values else m.group(0),
            self.message_template,
        )


class GapCheckRule(RuleBase):
    placeholders: ClassVar[frozenset[str]] = frozenset({"member", "section", "start", "end"})
    type: Literal["gap_check"] = "gap_check"
    config: GapCheckConfig


class OverlapCheckRule(RuleBase):
    placeholders: ClassVar[frozenset[str]] = frozenset(
        {"member", "start", "end", "first", "second"}
    )
    type: Literal["overlap_check"] = "overlap_check"
    config: OverlapCheckConfig = Field(default_factory=OverlapCheckConfig)


class RequiredDocRule(RuleBase):
    placeholders: ClassVar[frozenset[str]] = frozenset({"member", "form"})
    type: Literal["required_doc_check"] = "required_doc_check"
    config: RequiredDocConfig


class DateMatchRule(RuleBase):
    placeholders: ClassVar[frozenset[str]] = frozenset({"member", "section", "entry"})
    type: Literal["date_match_check"] = "date_match_check"
    config: DateMatchConfig


class YearsBoxRule(RuleBase):
    placeholders: ClassVar[frozenset[str]] = frozenset(
        {"member", "level", "computed", "declared"}
    )
    type: Literal["years_box_check"] = "years_box_check"
    config: YearsBoxConfig = Field(default_factory=YearsBoxConfig)


class CompletenessRule(RuleBase):
    placeholders: ClassVar[frozenset[str]] = frozenset({"member", "person", "fields"})
    type: Literal["completeness_check"] = "completeness_check"
    config: CompletenessConfig = Field(default_factory=CompletenessConfig)


class IdentityMatchRule(RuleBase):
    placeholders: ClassVar[frozenset[str]] = frozenset({"member", "document", "field"})
    type: Literal["identity_match_check"] = "identity_match_check"
    config: IdentityMatchConfig = Field(default_factory=IdentityMatchConfig)


Rule = Annotated[
    Union[
        GapCheckRule,
        OverlapCheckRule,
        RequiredDocRule,
        DateMatchRule,
        YearsBoxRule,
        CompletenessRule,
        IdentityMatchRule,
    ],
    Field(discriminator="type"),
]

RULE_MODELS: dict[str, type[RuleBase]] = {
    "gap_check": GapCheckRule,
    "overlap_check": OverlapCheckRule,
    "required_doc_check": RequiredDocRule,
    "date_match_check": DateMatchRule,
    "years_box_check": YearsBoxRule,
    "completeness_check": CompletenessRule,
    "identity_match_check": IdentityMatchRule,
}

_RULE_ADAPTER: TypeAdapter[Rule] = TypeAdapter(Rule)


# ─── Loading ─────────────────────────────────────────────────────────


def parse_rules(raw: Iterable[Any]) -> list[RuleBase]:
    """Validate rule definitions, skipping kinds this engine doesn't know.

    Raises:
        RuleConfigError: a known rule kind has an invalid definition.
    """
    rules: list[RuleBase] = []
    for index, item in enumerate(raw):
        if isinstance(item, RuleBase):
            rules.append(item)
            continue
        if not isinstance(item, dict):
            raise RuleConfigError(
                f"Rule #{index} must be an object, got {type(item).__name__}",
                details={"index": index},
            )

        rule_type = item.get("type")
        if rule_type not in RULE_MODELS:
            logger.info("Skipping rule %s: unknown type %r", item.get("id", f"#{index}"), rule_type)
            continue

        try:
            rules.append(_RULE_ADAPTER.validate_python(item))
        except ValidationError as exc:
            raise RuleConfigError(
                f"Rule #{index} ({item.get('id', '?')}) is invalid: "
                f"{exc.error_count()} error(s)",
                details={
                    "index": index,
                    "rule_id": item.get("id"),
                    "errors": exc.errors(include_url=False, include_context=False),
                },
            ) from exc
    return rules


def load_rules(path: str | Path) -> list[RuleBase]:
    """Load rules from a JSON file holding a list (or {"rules": [...]})."""
    resolved = Path(path)
    try:
        with resolved.open(encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise RuleConfigError(f"Cannot read rule file {resolved}: {exc}") from exc

    if isinstance(data, dict):
        data = data.get("rules")
    if not isinstance(data, list):
        raise RuleConfigError(f"Rule file {resolved} must contain a list of rules")
    return parse_rules(data)


# ─── Built-in Rule Set ──────────────────────────────────────────────

DEFAULT_RULE_DEFINITIONS: list[dict[str, Any]] = [
    {
        "id": "history-gaps",
        "name": "Personal history gaps",
        "description": "Personal history must be continuous for the last 10 years or since age 18.",
        "severity": "ERROR",
        "type": "gap_check",
        "config": {"section": "personal_history"},
        "messageTemplate": (
            "Please explain what {member} was doing between {start} and {end} "
            "(missing {section})."
        ),
    },
    {
        "id": "address-gaps",
        "name": "Address history gaps",
        "description": "Addresses must be continuous for the last 10 years or since age 18.",
        "severity": "ERROR",
        "type": "gap_check",
        "config": {"section": "addresses"},
        "messageTemplate": "Please provide {member}'s address from {start} to {end}.",
    },
    {
        "id": "history-overlaps",
        "name": "Overlapping employment",
        "description": "Two employment periods should not overlap without explanation.",
        "severity": "WARNING",
        "type": "overlap_check",
        "config": {"section": "personal_history", "category": "employment"},
        "messageTemplate": (
            "{member}'s history shows '{first}' and '{second}' at the same time "
            "({start} to {end}). Please explain how both were held."
        ),
    },
    {
        "id": "schedule-a-required",
        "name": "Schedule A required",
        "description": "Every adult member must submit Schedule A (IMM 5669).",
        "severity": "ERROR",
        "type": "required_doc_check",
        "config": {"requiredForm": "SCHEDULE_A"},
        "messageTemplate": "Please submit the {form} form for {member}.",
    },
    {
        "id": "family-info-required",
        "name": "Family information required",
        "description": "Every adult member must submit Family Information (IMM 5406).",
        "severity": "ERROR",
        "type": "required_doc_check",
        "config": {"requiredForm": "FAMILY_INFO"},
        "messageTemplate": "Please submit the {form} form for {member}.",
    },
    {
        "id": "education-evidence",
        "name": "Education evidence",
        "description": "Declared education should be supported by a diploma or transcript.",
        "severity": "WARNING",
        "type": "date_match_check",
        "config": {"section": "education"},
        "messageTemplate": (
            "We could not find a diploma or transcript confirming {member}'s "
            "{section} entry '{entry}'. Please provide one."
        ),
    },
    {
        "id": "employment-evidence",
        "name": "Employment evidence",
        "description": "Declared employment should be supported by a reference letter.",
        "severity": "WARNING",
        "type": "date_match_check",
        "config": {"section": "personal_history"},
        "messageTemplate": (
            "Please provide a reference letter confirming {member}'s "
            "{section} entry '{entry}'."
        ),
    },
    {
        "id": "university-years",
        "name": "University years box",
        "description": "Declared university years should match the education rows.",
        "severity": "WARNING",
        "type": "years_box_check",
        "config": {"tolerance": 0.5},
        "messageTemplate": (
            "{member} declared {declared} year(s) of {level} education, but the "
            "listed studies add up to {computed}. Please review."
        ),
    },
    {
        "id": "family-completeness",
        "name": "Family information completeness",
        "description": "Each family member entry needs a name, date and country of birth.",
        "severity": "WARNING",
        "type": "completeness_check",
        "config": {},
        "messageTemplate": "Family information for {person} is missing: {fields}.",
    },
    {
        "id": "identity-consistency",
        "name": "Identity consistency",
        "description": "Names and dates of birth must agree across documents.",
        "severity": "ERROR",
        "type": "identity_match_check",
        "config": {},
        "messageTemplate": (
            "The {field} on {member}'s {document} does not match the information "
            "in the forms."
        ),
    },
]


def default_rules() -> list[RuleBase]:
    return parse_rules(DEFAULT_RULE_DEFINITIONS)
