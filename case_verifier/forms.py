"""
Form type canonicalisation and per-member form presence.

Classifiers and filenames name the same form many ways ("IMM 5406",
"IMM5406", "Family Information"). Everything downstream works with the
canonical FormType only.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .models import CaseSnapshot


class FormType(str, Enum):
    SCHEDULE_A = "SCHEDULE_A"  # IMM 5669, primary identity form
    FAMILY_INFO = "FAMILY_INFO"  # IMM 5406, family roster form
    UNKNOWN = "UNKNOWN"


FORM_LABELS: dict[FormType, str] = {
    FormType.SCHEDULE_A: "Schedule A (IMM 5669)",
    FormType.FAMILY_INFO: "Family Information (IMM 5406)",
    FormType.UNKNOWN: "unknown form",
}


_NON_ALNUM = re.compile(r"[^A-Z0-9]")


def canonical_form_type(value: Optional[str]) -> FormType:
    """Map any spelling of a form name to its FormType."""
    if not value:
        return FormType.UNKNOWN

    normalized = _NON_ALNUM.sub("", value.upper())
    if "5406" in normalized or "FAMILYINFO" in normalized:
        return FormType.FAMILY_INFO
    if "5669" in normalized or "SCHEDULEA" in normalized:
        return FormType.SCHEDULE_A
    return FormType.UNKNOWN


@dataclass(frozen=True)
class FormPresence:
    has_schedule_a: bool
    has_family_info: bool

    def has(self, form: FormType) -> bool:
        if form is FormType.SCHEDULE_A:
            return self.has_schedule_a
        if form is FormType.FAMILY_INFO:
            return self.has_family_info
        return False


def member_form_presence(case: CaseSnapshot, member_id: str) -> FormPresence:
    """A form counts as present if it was extracted for the member, or if a
    form document of that type is linked to the member."""
    linked = {
        canonical_form_type(doc.form_type)
        for doc in case.documents
        if doc.person_id == member_id
    }
    return FormPresence(
        has_schedule_a=(
            case.schedule_a(member_id) is not None or FormType.SCHEDULE_A in linked
        ),
        has_family_info=(
            case.family_info(member_id) is not None or FormType.FAMILY_INFO in linked
        ),
    )


def linked_form_documents(case: CaseSnapshot, member_id: str, form: FormType) -> list[str]:
    """Ids of documents of `form` assigned to the member."""
    return [
        doc.id
        for doc in case.documents
        if doc.person_id == member_id and canonical_form_type(doc.form_type) is form
    ]
