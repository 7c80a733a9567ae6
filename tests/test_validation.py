# tests/test_validation.py
"""
Tests for field rules, business rules and the Validator.
"""

from datetime import datetime, timezone

import pytest

from conftest import john_dsr, stamped
from salesds.config import load_config
from salesds.schema import FieldType, Relationship, date_field, number_field, string_field
from salesds.validation import (
    Validator,
    achievement_rate,
    check_field,
    growth_rate,
    is_number,
)


def sales_record(**overrides):
    record = {"name": "Alice", "monthlyTarget": 1000, "mtdTarget": 500, "mtdActual": 400}
    record.update(overrides)
    return stamped(record)


# =============================================================================
# Helpers
# =============================================================================


class TestHelpers:

    def test_growth_rate_zero_baseline(self):
        assert growth_rate(50, 0) == 0.0

    def test_growth_rate(self):
        assert growth_rate(160, 100) == pytest.approx(0.6)
        assert growth_rate(80, 100) == pytest.approx(-0.2)

    def test_achievement_rate(self):
        assert achievement_rate(50, 200) == 25.0
        assert achievement_rate(50, 0) == 0.0

    @pytest.mark.parametrize("value,expected", [
        (1, True),
        (1.5, True),
        (True, False),
        ("1", False),
        (None, False),
    ])
    def test_is_number(self, value, expected):
        assert is_number(value) is expected

    def test_relationship_parse(self):
        rel = Relationship.parse("captainName -> sales.name")
        assert (rel.field, rel.target_store, rel.target_field) == ("captainName", "sales", "name")
        assert str(rel) == "captainName -> sales.name"

    def test_relationship_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            Relationship.parse("captainName sales")


# =============================================================================
# Field checks
# =============================================================================


class TestCheckField:

    def test_required_missing_and_empty(self):
        rule = string_field()
        assert check_field("name", rule, None) == "name is required"
        assert check_field("name", rule, "") == "name is required"

    def test_optional_missing_passes(self):
        assert check_field("note", string_field(required=False, min_length=5), None) is None

    def test_type_failure_short_circuits(self):
        rule = string_field(min_length=2, pattern=r"^x")
        assert check_field("name", rule, 42) == "name must be a string"

    def test_bool_is_not_a_number(self):
        assert check_field("total", number_field(), True) == "total must be a number"

    def test_length_bounds_inclusive(self):
        rule = string_field(min_length=2, max_length=3)
        assert check_field("name", rule, "ab") is None
        assert check_field("name", rule, "abc") is None
        assert check_field("name", rule, "a") == "name must be at least 2 characters"
        assert check_field("name", rule, "abcd") == "name must be at most 3 characters"

    def test_numeric_bounds_inclusive(self):
        rule = number_field(min=0, max=999999)
        assert check_field("total", rule, 0) is None
        assert check_field("total", rule, 999999) is None
        assert check_field("total", rule, -1) == "total must be at least 0"
        assert check_field("total", rule, 1000000) == "total must be at most 999999"

    def test_pattern(self):
        rule = string_field(pattern=r"^DSR\d{3}$")
        assert check_field("dsrId", rule, "DSR001") is None
        assert check_field("dsrId", rule, "DSR1") == "dsrId format is invalid"

    def test_enum_message_keeps_declared_order(self):
        rule = string_field(choices=("North", "South", "East", "West"))
        assert check_field("cluster", rule, "Central") == "cluster must be one of: North, South, East, West"

    def test_date_type(self):
        assert check_field("createdAt", date_field(), "yesterday") == "createdAt must be a date"
        assert check_field("createdAt", date_field(), datetime.now(timezone.utc)) is None


# =============================================================================
# Validator
# =============================================================================


class TestValidator:

    def test_valid_dsr_record(self, validator):
        result = validator.validate("dsr", stamped(john_dsr()))
        assert result.valid
        assert result.errors == []

    def test_zero_baseline_passes_growth_ceiling(self, validator):
        result = validator.validate("dsr", stamped(john_dsr(lastMonthActual=0, thisMonthActual=50)))
        assert result.valid

    def test_growth_above_ceiling_fails(self, validator):
        result = validator.validate("dsr", stamped(john_dsr(lastMonthActual=100, thisMonthActual=160)))
        assert not result.valid
        assert result.errors == ["Growth rate cannot exceed 50%"]

    def test_growth_at_ceiling_passes(self, validator):
        result = validator.validate("dsr", stamped(john_dsr(lastMonthActual=100, thisMonthActual=150)))
        assert result.valid

    def test_configured_ceiling(self, registry, tmp_path):
        config = load_config(overrides={"validation": {"growth_ceiling": 0.2},
                                        "storage": {"base_path": str(tmp_path)}})
        validator = Validator(registry, config=config)
        result = validator.validate("dsr", stamped(john_dsr(lastMonthActual=100, thisMonthActual=130)))
        assert result.errors == ["Growth rate cannot exceed 20%"]

    def test_missing_name(self, validator):
        record = stamped(john_dsr())
        del record["name"]
        result = validator.validate("dsr", record)
        assert not result.valid
        assert "name is required" in result.errors

    def test_all_fields_checked_in_schema_order(self, validator):
        record = stamped(john_dsr(name="J", dsrId="X1", cluster="Central"))
        result = validator.validate("dsr", record)
        assert result.errors == [
            "name must be at least 2 characters",
            "dsrId format is invalid",
            "cluster must be one of: North, South, East, West",
        ]

    def test_business_rules_run_after_field_checks(self, validator):
        record = stamped(john_dsr(slab="Platinum", lastMonthActual=100, thisMonthActual=200))
        result = validator.validate("dsr", record)
        assert result.errors == [
            "slab must be one of: Gold, Silver, Bronze",
            "Growth rate cannot exceed 50%",
        ]

    def test_sales_cross_field_rules(self, validator):
        assert validator.validate("sales", sales_record()).valid

        result = validator.validate("sales", sales_record(monthlyTarget=400, mtdTarget=500, mtdActual=300))
        assert result.errors == ["Monthly target must be greater than or equal to MTD target"]

        result = validator.validate("sales", sales_record(mtdActual=1500))
        assert result.errors == ["MTD actual cannot exceed monthly target"]

    def test_unknown_store(self, validator):
        result = validator.validate("nope", {})
        assert not result.valid
        assert result.errors == ["Store nope not found"]

    def test_custom_rule(self, validator):
        validator.add_rule("salesLog", lambda r: "total mismatch" if r.get("total") != 3 else None)
        record = stamped({"date": "1-Jan", "captainA": 1, "captainB": 1, "captainC": 1,
                          "captainD": 0, "total": 4})
        assert validator.validate("salesLog", record).errors == ["total mismatch"]

    def test_audit_fields_must_be_dates(self, validator):
        record = stamped(john_dsr())
        record["createdAt"] = datetime.now(timezone.utc).isoformat()
        assert validator.validate("dsr", record).errors == ["createdAt must be a date"]

    def test_field_types_are_tagged(self, registry):
        schema = registry.get("dsr").schema
        assert schema["lastMonthActual"].type is FieldType.NUMBER
        assert schema["cluster"].type is FieldType.STRING
        assert schema["updatedAt"].type is FieldType.DATE
