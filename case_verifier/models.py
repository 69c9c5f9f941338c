"""
Pydantic models for case data — strict typing as our first line of defense.

The upstream extraction pipeline produces loosely-shaped records; they are
validated into these models at the boundary. Extraction fields are Optional
because any of them may be missing. The engine only ever sees data that
already fits these shapes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNASSIGNED_MEMBER = "UNASSIGNED"


# ─── Enumerations ───────────────────────────────────────────────────


class Severity(str, Enum):
    """Severity of a finding."""

    ERROR = "ERROR"  # Must be resolved before submission
    WARNING = "WARNING"  # Needs human review
    INFO = "INFO"  # Informational / verified


class FindingStatus(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"


class Relationship(str, Enum):
    PA = "PA"  # Principal applicant
    SPOUSE = "SPOUSE"
    CHILD = "CHILD"
    PARENT = "PARENT"
    SIBLING = "SIBLING"
    OTHER = "OTHER"


class DobPrecision(str, Enum):
    DAY = "DAY"
    MONTH = "MONTH"
    UNKNOWN = "UNKNOWN"


class DocumentKind(str, Enum):
    FORM = "FORM"
    SUPPORTING = "SUPPORTING"


class ApplicantType(str, Enum):
    PRINCIPAL_APPLICANT = "PRINCIPAL_APPLICANT"
    SPOUSE_DEPENDENT_18PLUS = "SPOUSE_DEPENDENT_18PLUS"
    UNKNOWN = "UNKNOWN"


class AnchorKind(str, Enum):
    """How the dates of an education claim were anchored in its document."""

    EXACT_DATES = "exact_dates"
    YEAR_RANGE = "year_range"
    COMPLETION_DATE = "completion_date"
    ACADEMIC_YEAR = "academic_year"


# ─── Timeline Rows ──────────────────────────────────────────────────


class IntervalRow(BaseModel):
    """A dated row of a timeline section.

    `from`/`to` are YYYY-MM (YYYY-MM-DD tolerated); `to` may be "PRESENT".
    """

    model_config = ConfigDict(populate_by_name=True)

    from_month: Optional[str] = Field(None, alias="from")
    to_month: Optional[str] = Field(None, alias="to")
    city: Optional[str] = None
    country: Optional[str] = None

    def label(self) -> str:
        """Free-text activity/category label used for comparability."""
        return ""


class EducationRow(IntervalRow):
    field_of_study: Optional[str] = None
    institution: Optional[str] = None

    def label(self) -> str:
        return self.institution or self.field_of_study or ""


class HistoryRow(IntervalRow):
    activity_type: Optional[str] = None
    employer_or_company: Optional[str] = None

    def label(self) -> str:
        return self.activity_type or ""


class AddressRow(IntervalRow):
    full_address: Optional[str] = None

    def label(self) -> str:
        return self.full_address or ""


# ─── Primary Identity Form (Schedule A) ─────────────────────────────


class IdentityBlock(BaseModel):
    name: Optional[str] = None
    dob: Optional[str] = None
    passport_no: Optional[str] = None


class YearsBoxes(BaseModel):
    """Self-declared years of schooling per level."""

    elementary: Optional[float] = None
    secondary: Optional[float] = None
    university: Optional[float] = None
    trade: Optional[float] = None


class EducationSection(BaseModel):
    rows: list[EducationRow] = Field(default_factory=list)
    years_boxes: Optional[YearsBoxes] = None


class HistorySection(BaseModel):
    rows: list[HistoryRow] = Field(default_factory=list)


class AddressSection(BaseModel):
    rows: list[AddressRow] = Field(default_factory=list)


class ScheduleAExtract(BaseModel):
    identity: Optional[IdentityBlock] = None
    applicant_type: ApplicantType = ApplicantType.UNKNOWN
    education: Optional[EducationSection] = None
    personal_history: Optional[HistorySection] = None
    addresses: Optional[AddressSection] = None

    def section_rows(self, section: str) -> list[IntervalRow]:
        """Rows of a named timeline section; empty when the section is absent."""
        block = getattr(self, section, None)
        if block is None:
            return []
        return list(block.rows)


# ─── Family Roster Form (Family Info) ───────────────────────────────


class FamilyMemberRow(BaseModel):
    name: Optional[str] = None
    relationship: Optional[str] = None
    dob: Optional[str] = None
    country_of_birth: Optional[str] = None
    address: Optional[str] = None
    marital_status: Optional[str] = None


class FamilyInfoExtract(BaseModel):
    applicant: Optional[FamilyMemberRow] = None
    spouse: Optional[FamilyMemberRow] = None
    children: list[FamilyMemberRow] = Field(default_factory=list)
    parents: list[FamilyMemberRow] = Field(default_factory=list)
    siblings: list[FamilyMemberRow] = Field(default_factory=list)


# ─── Supporting Evidence ────────────────────────────────────────────


class SupportingExtract(BaseModel):
    doc_type: Optional[str] = None  # e.g. "Passport", "Degree", "Reference Letter"
    person_name: Optional[str] = None
    dates: Optional[list[str]] = None  # YYYY-MM-DD or YYYY-MM
    issuer: Optional[str] = None
    identifiers: Optional[list[str]] = None
    summary: Optional[str] = None
    document_id: Optional[str] = None


class EducationEvidenceClaim(BaseModel):
    """A credential claim extracted from a diploma, transcript or letter."""

    credential: Optional[str] = None  # "Bachelor of Science"
    field_of_study: Optional[str] = None
    institution: Optional[str] = None
    from_month: Optional[str] = None  # YYYY-MM
    to_month: Optional[str] = None  # YYYY-MM or "PRESENT"
    anchor_snippet: Optional[str] = None  # "Sept 2015 - June 2019"
    anchor_kind: AnchorKind = AnchorKind.EXACT_DATES
    document_id: Optional[str] = None


# ─── Case Snapshot ──────────────────────────────────────────────────


class Member(BaseModel):
    id: str
    full_name: str
    relationship: Relationship
    dob: Optional[str] = None  # YYYY-MM-DD or YYYY-MM
    dob_precision: DobPrecision = DobPrecision.UNKNOWN
    age: Optional[int] = None
    aliases: list[str] = Field(default_factory=list)


class Document(BaseModel):
    id: str
    filename: str
    mime_type: Optional[str] = None
    kind: DocumentKind
    form_type: Optional[str] = None  # "IMM5669", "IMM5406"
    support_type: Optional[str] = None  # "PASSPORT", "DEGREE", ...
    person_id: str = UNASSIGNED_MEMBER
    pages: Optional[int] = None

    @property
    def is_unassigned(self) -> bool:
        return self.person_id == UNASSIGNED_MEMBER


class ExtractedCaseData(BaseModel):
    schedule_a_by_member: dict[str, ScheduleAExtract] = Field(default_factory=dict)
    family_info_by_member: dict[str, FamilyInfoExtract] = Field(default_factory=dict)
    supporting_by_member: dict[str, list[SupportingExtract]] = Field(default_factory=dict)
    education_claims_by_member: dict[str, list[EducationEvidenceClaim]] = Field(
        default_factory=dict
    )


class CaseSnapshot(BaseModel):
    """Everything the engine reads. Frozen: one run never changes it."""

    model_config = ConfigDict(frozen=True)

    id: str
    members: list[Member] = Field(default_factory=list)
    documents: list[Document] = Field(default_factory=list)
    extracted: ExtractedCaseData = Field(default_factory=ExtractedCaseData)

    @field_validator("members")
    @classmethod
    def _unique_member_ids(cls, members: list[Member]) -> list[Member]:
        seen: set[str] = set()
        for member in members:
            if member.id in seen:
                raise ValueError(f"Duplicate member id '{member.id}'")
            seen.add(member.id)
        return members

    def member(self, member_id: str) -> Optional[Member]:
        return next((m for m in self.members if m.id == member_id), None)

    def schedule_a(self, member_id: str) -> Optional[ScheduleAExtract]:
        return self.extracted.schedule_a_by_member.get(member_id)

    def family_info(self, member_id: str) -> Optional[FamilyInfoExtract]:
        return self.extracted.family_info_by_member.get(member_id)

    def supporting(self, member_id: str) -> list[SupportingExtract]:
        return self.extracted.supporting_by_member.get(member_id, [])

    def education_claims(self, member_id: str) -> list[EducationEvidenceClaim]:
        return self.extracted.education_claims_by_member.get(member_id, [])


# ─── Findings ───────────────────────────────────────────────────────


class Finding(BaseModel):
    """A single pass/fail verdict tied to a rule, a member and its evidence."""

    id: str
    rule_id: str
    status: FindingStatus = FindingStatus.FAIL
    severity: Severity
    member_id: Optional[str] = None
    member_name: Optional[str] = None
    section: Optional[str] = None
    form_type: Optional[str] = None
    summary: str  # Terse, internal
    recommendation: str  # What the reviewer should do
    client_message: str  # Worded for the applicant
    doc_ids: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)
    include_in_email: Optional[bool] = None  # None until post-processing


class CaseReport(BaseModel):
    """The engine's findings for one case, with verdict counts."""

    case_id: str
    passed: bool
    error_count: int = 0
    warning_count: int = 0
    verified_count: int = 0
    findings: list[Finding] = Field(default_factory=list)
