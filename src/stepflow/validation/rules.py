"""Validation rules: named, field-scoped precondition checks.

A ``ValidationRule`` reads one field out of a data mapping and runs either
a catalog check or a custom callable against it.  Rules never raise: a
validator that blows up is reported as a ``VALIDATOR_EXCEPTION`` error.

Catalog keys::

    required                      value present and non-empty
    string number boolean         type checks (bool is not a number)
    array object
    email url uuid date           format checks (date accepts ISO strings)
    min max                       numeric bounds        params={"value": n}
    minLength maxLength           length bounds         params={"value": n}
    pattern                       regex search          params={"pattern": r"..."}
    enum                          membership            params={"values": [...]}
    custom                        callable              params={"validator": fn}

Every check except ``required`` skips absent values, so combine
``required`` with a format rule when a field must be present *and* well
formed.

Example::

    rules = RuleSet([
        ValidationRule("name-required", "name", "required"),
        ValidationRule("name-length", "name", "maxLength", params={"value": 50}),
        ValidationRule("email", "owner.email", "email", level="warning"),
    ])
    result = rules.validate({"name": "lint", "owner": {"email": "nope"}})
    result.is_valid          # True (email failure is a warning)

Tags:
    stepflow, validation, rules, catalog
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import date, datetime
from typing import Any
from urllib.parse import urlparse

from stepflow.core.errors import ConfigurationError, describe_error
from stepflow.core.logging import get_logger
from stepflow.validation.result import IssueLevel, ValidationResult

logger = get_logger(__name__)

MISSING: Any = object()

RuleValidator = Callable[[Any, Any], "bool | str | ValidationResult | None"]

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def resolve_field(data: Any, path: str) -> Any:
    """Read a dotted *path* out of nested mappings or attributes.

    Returns ``MISSING`` when any segment is absent.  An empty path returns
    *data* itself.
    """
    if not path:
        return data
    current = data
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, Sequence) and not isinstance(current, str) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return MISSING
            current = current[index]
        elif hasattr(current, part):
            current = getattr(current, part)
        else:
            return MISSING
    return current


def _is_empty(value: Any) -> bool:
    if value is MISSING or value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


# =============================================================================
# Catalog checks: (value, params) -> error message or None
# =============================================================================


def _check_required(value: Any, params: Mapping[str, Any]) -> str | None:
    return "is required" if _is_empty(value) else None


def _check_string(value: Any, params: Mapping[str, Any]) -> str | None:
    return None if isinstance(value, str) else "must be a string"


def _check_number(value: Any, params: Mapping[str, Any]) -> str | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return "must be a number"
    return None


def _check_boolean(value: Any, params: Mapping[str, Any]) -> str | None:
    return None if isinstance(value, bool) else "must be a boolean"


def _check_array(value: Any, params: Mapping[str, Any]) -> str | None:
    return None if isinstance(value, (list, tuple)) else "must be an array"


def _check_object(value: Any, params: Mapping[str, Any]) -> str | None:
    return None if isinstance(value, Mapping) else "must be an object"


def _check_email(value: Any, params: Mapping[str, Any]) -> str | None:
    if isinstance(value, str) and _EMAIL_RE.match(value):
        return None
    return "must be a valid email address"


def _check_url(value: Any, params: Mapping[str, Any]) -> str | None:
    if isinstance(value, str):
        parsed = urlparse(value)
        if parsed.scheme in ("http", "https", "ftp", "ssh", "git") and parsed.netloc:
            return None
    return "must be a valid URL"


def _check_uuid(value: Any, params: Mapping[str, Any]) -> str | None:
    if isinstance(value, uuid.UUID):
        return None
    try:
        uuid.UUID(str(value))
    except ValueError:
        return "must be a valid UUID"
    return None


def _check_date(value: Any, params: Mapping[str, Any]) -> str | None:
    if isinstance(value, (date, datetime)):
        return None
    if isinstance(value, str):
        try:
            datetime.fromisoformat(value)
        except ValueError:
            return "must be a valid date"
        return None
    return "must be a valid date"


def _bound(params: Mapping[str, Any], key: str) -> Any:
    if "value" in params:
        return params["value"]
    if key in params:
        return params[key]
    raise ConfigurationError(f"Rule parameter '{key}' is required", key=key)


def _check_min(value: Any, params: Mapping[str, Any]) -> str | None:
    if _check_number(value, params):
        return "must be a number"
    bound = _bound(params, "min")
    return f"must be >= {bound}" if value < bound else None


def _check_max(value: Any, params: Mapping[str, Any]) -> str | None:
    if _check_number(value, params):
        return "must be a number"
    bound = _bound(params, "max")
    return f"must be <= {bound}" if value > bound else None


def _check_min_length(value: Any, params: Mapping[str, Any]) -> str | None:
    bound = _bound(params, "min_length")
    try:
        size = len(value)
    except TypeError:
        return "has no length"
    return f"must have length >= {bound}" if size < bound else None


def _check_max_length(value: Any, params: Mapping[str, Any]) -> str | None:
    bound = _bound(params, "max_length")
    try:
        size = len(value)
    except TypeError:
        return "has no length"
    return f"must have length <= {bound}" if size > bound else None


def _check_pattern(value: Any, params: Mapping[str, Any]) -> str | None:
    pattern = params.get("pattern")
    if pattern is None:
        raise ConfigurationError("Rule parameter 'pattern' is required", key="pattern")
    if not isinstance(value, str) or not re.search(pattern, value):
        return f"must match pattern {pattern}"
    return None


def _check_enum(value: Any, params: Mapping[str, Any]) -> str | None:
    allowed = params.get("values")
    if allowed is None:
        raise ConfigurationError("Rule parameter 'values' is required", key="values")
    if value not in allowed:
        return f"must be one of: {', '.join(str(v) for v in allowed)}"
    return None


CATALOG: dict[str, tuple[Callable[[Any, Mapping[str, Any]], str | None], str]] = {
    "required": (_check_required, "REQUIRED"),
    "string": (_check_string, "TYPE_MISMATCH"),
    "number": (_check_number, "TYPE_MISMATCH"),
    "boolean": (_check_boolean, "TYPE_MISMATCH"),
    "array": (_check_array, "TYPE_MISMATCH"),
    "object": (_check_object, "TYPE_MISMATCH"),
    "email": (_check_email, "INVALID_FORMAT"),
    "url": (_check_url, "INVALID_FORMAT"),
    "uuid": (_check_uuid, "INVALID_FORMAT"),
    "date": (_check_date, "INVALID_FORMAT"),
    "min": (_check_min, "OUT_OF_RANGE"),
    "max": (_check_max, "OUT_OF_RANGE"),
    "minLength": (_check_min_length, "INVALID_LENGTH"),
    "maxLength": (_check_max_length, "INVALID_LENGTH"),
    "pattern": (_check_pattern, "PATTERN_MISMATCH"),
    "enum": (_check_enum, "INVALID_ENUM"),
}

CATALOG_KEYS = frozenset(CATALOG) | {"custom"}


class ValidationRule:
    """A named check over one field of a data mapping.

    Args:
        name: Rule name, recorded in issue metadata.
        field: Dotted path into the data (``"owner.email"``).
        validator: Catalog key or callable ``(value, data)``.  Callables
            return ``True``/``None`` for valid, ``False`` or a message
            string for invalid, or a ``ValidationResult`` to merge.
        params: Catalog parameters.
        message: Overrides the catalog message on failure.
        enabled: Disabled rules always pass.
        level: ``"warning"`` records failures as warnings.

    Raises:
        ConfigurationError: Unknown catalog key, or ``custom`` without a
            ``validator`` param.
    """

    def __init__(
        self,
        name: str,
        field: str,
        validator: str | RuleValidator,
        *,
        params: Mapping[str, Any] | None = None,
        message: str | None = None,
        enabled: bool = True,
        level: IssueLevel = "error",
    ) -> None:
        self.name = name
        self.field = field
        self.params = dict(params or {})
        self.message = message
        self.enabled = enabled
        self.level = level

        if isinstance(validator, str):
            if validator not in CATALOG_KEYS:
                raise ConfigurationError(
                    f"Unknown validator '{validator}' for rule '{name}'", key=validator
                )
            if validator == "custom":
                custom = self.params.get("validator")
                if not callable(custom):
                    raise ConfigurationError(
                        f"Rule '{name}' uses 'custom' without a callable 'validator' param",
                        key="validator",
                    )
                self._callable: RuleValidator | None = custom
            else:
                self._callable = None
            self.kind = validator
        elif callable(validator):
            self._callable = validator
            self.kind = "custom"
        else:
            raise ConfigurationError(f"Validator for rule '{name}' must be a key or callable")

    def validate(self, data: Any) -> ValidationResult:
        result = ValidationResult()
        if not self.enabled:
            return result

        value = resolve_field(data, self.field)
        try:
            if self._callable is not None:
                self._apply_callable(result, value, data)
            else:
                self._apply_catalog(result, value)
        except Exception as exc:
            logger.warning(
                "validation.rule.exception",
                rule=self.name,
                field=self.field,
                error=describe_error(exc),
            )
            result.add_error(
                self.field,
                f"Validator '{self.name}' raised: {describe_error(exc)}",
                code="VALIDATOR_EXCEPTION",
                rule=self.name,
            )
        return result

    def _apply_catalog(self, result: ValidationResult, value: Any) -> None:
        check, code = CATALOG[self.kind]
        if self.kind != "required" and value is MISSING:
            return
        problem = check(value, self.params)
        if problem is not None:
            self._record(result, self.message or f"{self.field} {problem}", code, value)

    def _apply_callable(self, result: ValidationResult, value: Any, data: Any) -> None:
        outcome = self._callable(None if value is MISSING else value, data)
        if outcome is None or outcome is True:
            return
        if isinstance(outcome, ValidationResult):
            result.merge(outcome)
            return
        if isinstance(outcome, str):
            self._record(result, self.message or outcome, "CUSTOM_VALIDATION", value)
            return
        if outcome is False:
            self._record(result, self.message or f"{self.field} is invalid", "CUSTOM_VALIDATION", value)
            return
        raise TypeError(f"Unsupported validator return type: {type(outcome).__name__}")

    def _record(self, result: ValidationResult, message: str, code: str, value: Any) -> None:
        value = None if value is MISSING else value
        if self.level == "warning":
            result.add_warning(self.field, message, code=code, value=value, rule=self.name)
        else:
            result.add_error(self.field, message, code=code, value=value, rule=self.name)

    def __repr__(self) -> str:
        return f"ValidationRule({self.name!r}, field={self.field!r}, kind={self.kind!r})"


class RuleSet(list):
    """Ordered list of rules validated together."""

    def __init__(self, rules: Iterable[ValidationRule] = ()) -> None:
        super().__init__(rules)

    def validate(self, data: Any) -> ValidationResult:
        result = ValidationResult()
        for rule in self:
            result.merge(rule.validate(data))
        return result


__all__ = [
    "MISSING",
    "CATALOG_KEYS",
    "RuleValidator",
    "ValidationRule",
    "RuleSet",
    "resolve_field",
]
