"""Tests for targeting rule evaluation."""

import pytest

from splitlab.experimentation import RuleOperator, TargetingRule
from splitlab.experimentation.targeting import evaluate_rule, evaluate_rules


def rule(attribute, operator, value):
    return TargetingRule(attribute=attribute, operator=RuleOperator(operator), value=value)


class TestEvaluateRule:
    """Tests for single-rule operators."""

    @pytest.mark.parametrize(
        "operator,value,attributes,expected",
        [
            ("equals", "US", {"country": "US"}, True),
            ("equals", "US", {"country": "FR"}, False),
            ("equals", "US", {}, False),
            ("not_equals", "US", {"country": "FR"}, True),
            ("not_equals", "US", {"country": "US"}, False),
            ("not_equals", "US", {}, True),
            ("contains", "US", {"country": "US-CA"}, True),
            ("contains", "US", {"country": ["US", "CA"]}, True),
            ("contains", "MX", {"country": ["US", "CA"]}, False),
            ("contains", "US", {"country": 42}, False),
            ("in", ["US", "CA"], {"country": "US"}, True),
            ("in", ["US", "CA"], {"country": "FR"}, False),
            ("in", "US", {"country": "US"}, False),
            ("not_in", ["US", "CA"], {"country": "FR"}, True),
            ("not_in", ["US", "CA"], {"country": "CA"}, False),
            ("not_in", "US", {"country": "FR"}, False),
        ],
    )
    def test_string_operators(self, operator, value, attributes, expected):
        """Test equality, containment and membership operators."""
        assert evaluate_rule(rule("country", operator, value), attributes) is expected

    @pytest.mark.parametrize(
        "operator,value,age,expected",
        [
            ("greater_than", 18, 21, True),
            ("greater_than", 18, 18, False),
            ("greater_than", "18", "30", True),
            ("less_than", 18, 12, True),
            ("less_than", 18, 18, False),
            ("greater_than", 18, "unknown", False),
            ("less_than", 18, None, False),
        ],
    )
    def test_numeric_operators(self, operator, value, age, expected):
        """Test ordering operators coerce numbers and reject non-numbers."""
        attributes = {"age": age} if age is not None else {}
        assert evaluate_rule(rule("age", operator, value), attributes) is expected


class TestEvaluateRules:
    """Tests for AND semantics."""

    def test_all_rules_must_pass(self):
        """Test a single failing rule makes the subject ineligible."""
        rules = [
            rule("country", "in", ["US", "CA"]),
            rule("age", "greater_than", 18),
        ]

        assert evaluate_rules(rules, {"country": "US", "age": 30})
        assert not evaluate_rules(rules, {"country": "US", "age": 15})
        assert not evaluate_rules(rules, {"country": "FR", "age": 30})

    def test_no_rules(self):
        """Test an empty rule list accepts everyone."""
        assert evaluate_rules([], {})


class TestTargetingRuleAccessors:
    """Tests for typed value accessors."""

    def test_value_list(self):
        """Test collection values are returned as lists."""
        assert rule("c", "in", ("US", "CA")).value_list() == ["US", "CA"]
        assert rule("c", "equals", "US").value_list() is None

    def test_value_number(self):
        """Test numeric coercion."""
        assert rule("a", "greater_than", "3.5").value_number() == 3.5
        assert rule("a", "greater_than", "abc").value_number() is None

    def test_round_trip_dict(self):
        """Test dictionary conversion preserves the rule."""
        original = rule("country", "in", ["US"])
        assert TargetingRule.from_dict(original.to_dict()) == original
