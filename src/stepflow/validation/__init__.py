"""Validation subsystem: results, rules and the pre-flight collector."""

from stepflow.validation.result import ValidationIssue, ValidationResult
from stepflow.validation.rules import CATALOG_KEYS, RuleSet, ValidationRule, resolve_field
from stepflow.validation.validator import Codes, WorkflowValidator

__all__ = [
    "ValidationIssue",
    "ValidationResult",
    "ValidationRule",
    "RuleSet",
    "CATALOG_KEYS",
    "resolve_field",
    "Codes",
    "WorkflowValidator",
]
