"""
Custom exception hierarchy for case verification.

Checks never raise for missing data — absence is a valid state. These
exceptions describe problems with the *inputs to* the engine (rule
definitions, snapshots), which must fail loudly at the boundary.
"""

from __future__ import annotations


class CaseVerificationError(Exception):
    """Base exception for all case verification failures."""

    def __init__(self, code: str, message: str, details: dict | None = None):
        self.code = code
        self.details = details or {}
        super().__init__(message)


class RuleTemplateError(CaseVerificationError):
    """A rule's message template references a placeholder its check never supplies."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("RULE_TEMPLATE_INVALID", message, details)


class RuleConfigError(CaseVerificationError):
    """A rule definition (or rule file) cannot be loaded."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("RULE_CONFIG_INVALID", message, details)


class SnapshotError(CaseVerificationError):
    """A case snapshot cannot be loaded or does not fit the data model."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("SNAPSHOT_INVALID", message, details)
