"""Tests for ValidationRule catalog checks and custom validators."""

import pytest

from stepflow.core.errors import ConfigurationError
from stepflow.validation import ValidationResult, ValidationRule
from stepflow.validation.rules import MISSING, RuleSet, resolve_field


class TestResolveField:
    def test_nested_mapping(self):
        assert resolve_field({"owner": {"email": "a@b.io"}}, "owner.email") == "a@b.io"

    def test_sequence_index(self):
        assert resolve_field({"items": ["x", "y"]}, "items.1") == "y"

    def test_missing(self):
        assert resolve_field({"owner": {}}, "owner.email") is MISSING

    def test_empty_path_returns_data(self):
        data = {"a": 1}
        assert resolve_field(data, "") is data


class TestCatalogRules:
    """Built-in validator keys."""

    def test_required_missing(self):
        result = ValidationRule("title-required", "title", "required").validate({})

        assert not result.is_valid
        assert result.errors[0].code == "REQUIRED"
        assert result.errors[0].message == "title is required"

    def test_required_blank_string(self):
        result = ValidationRule("r", "title", "required").validate({"title": "   "})

        assert not result.is_valid

    def test_absent_optional_field_passes(self):
        """Non-required checks skip fields that are not present."""
        assert ValidationRule("e", "email", "email").validate({}).is_valid

    @pytest.mark.parametrize(
        "validator,params,value,valid",
        [
            ("email", {}, "dev@example.com", True),
            ("email", {}, "not-an-email", False),
            ("url", {}, "https://github.com/org/repo", True),
            ("url", {}, "github.com", False),
            ("uuid", {}, "12345678-1234-5678-1234-567812345678", True),
            ("uuid", {}, "nope", False),
            ("date", {}, "2024-01-31", True),
            ("date", {}, "31/01/2024", False),
            ("number", {}, True, False),
            ("min", {"value": 1}, 0, False),
            ("max", {"max": 10}, 10, True),
            ("minLength", {"value": 3}, "ab", False),
            ("maxLength", {"value": 3}, "abc", True),
            ("pattern", {"pattern": r"^feature/"}, "feature/T-1", True),
            ("pattern", {"pattern": r"^feature/"}, "main", False),
            ("enum", {"values": ["low", "high"]}, "medium", False),
        ],
    )
    def test_catalog(self, validator, params, value, valid):
        rule = ValidationRule("r", "field", validator, params=params)

        assert rule.validate({"field": value}).is_valid is valid

    def test_custom_message(self):
        rule = ValidationRule("r", "priority", "enum", params={"values": ["low"]}, message="bad priority")

        assert rule.validate({"priority": "high"}).error_messages() == ["bad priority"]

    def test_warning_level(self):
        rule = ValidationRule("r", "title", "required", level="warning")
        result = rule.validate({})

        assert result.is_valid
        assert result.warnings[0].code == "REQUIRED"

    def test_disabled_rule_passes(self):
        assert ValidationRule("r", "title", "required", enabled=False).validate({}).is_valid

    def test_unknown_validator_rejected(self):
        with pytest.raises(ConfigurationError):
            ValidationRule("r", "title", "palindrome")

    def test_custom_without_callable_rejected(self):
        with pytest.raises(ConfigurationError):
            ValidationRule("r", "title", "custom")

    def test_missing_rule_param_reported_as_error(self):
        """A misconfigured bound is reported, not raised."""
        result = ValidationRule("r", "n", "min").validate({"n": 3})

        assert result.errors[0].code == "VALIDATOR_EXCEPTION"


class TestCallableRules:
    def test_false_means_invalid(self):
        rule = ValidationRule("even", "n", lambda value, data: value % 2 == 0)

        assert rule.validate({"n": 2}).is_valid
        assert rule.validate({"n": 3}).errors[0].code == "CUSTOM_VALIDATION"

    def test_string_is_message(self):
        rule = ValidationRule("r", "n", lambda value, data: "too big" if value > 5 else None)

        assert rule.validate({"n": 9}).error_messages() == ["too big"]

    def test_result_is_merged(self):
        def check(value, data):
            return ValidationResult().add_error("nested", "nested problem")

        result = ValidationRule("r", "n", check).validate({"n": 1})

        assert result.errors[0].field == "nested"

    def test_exception_becomes_error(self):
        def boom(value, data):
            raise RuntimeError("validator crashed")

        result = ValidationRule("r", "n", boom).validate({"n": 1})

        assert not result.is_valid
        assert result.errors[0].code == "VALIDATOR_EXCEPTION"
        assert "validator crashed" in result.errors[0].message

    def test_custom_key_with_param(self):
        rule = ValidationRule("r", "n", "custom", params={"validator": lambda v, d: v == 1})

        assert rule.validate({"n": 1}).is_valid


class TestRuleSet:
    def test_merges_all_rules(self):
        rules = RuleSet(
            [
                ValidationRule("a", "a", "required"),
                ValidationRule("b", "b", "required"),
            ]
        )

        result = rules.validate({})

        assert [issue.field for issue in result.errors] == ["a", "b"]
