"""Targeting rule evaluation."""

from collections.abc import Mapping
from typing import Any

from loguru import logger

from splitlab.experimentation.models import RuleOperator, TargetingRule, to_number


def evaluate_rule(rule: TargetingRule, attributes: Mapping[str, Any]) -> bool:
    """Evaluate a single rule against subject attributes.

    A missing attribute compares as None: it never equals a concrete value
    and never satisfies an ordering or membership test.
    """
    actual = attributes.get(rule.attribute)
    operator = rule.operator

    if operator == RuleOperator.EQUALS:
        return actual == rule.value

    if operator == RuleOperator.NOT_EQUALS:
        return actual != rule.value

    if operator == RuleOperator.CONTAINS:
        if isinstance(actual, str):
            return str(rule.value) in actual
        if isinstance(actual, (list, tuple, set, frozenset)):
            return rule.value in actual
        return False

    if operator in (RuleOperator.GREATER_THAN, RuleOperator.LESS_THAN):
        left = to_number(actual)
        right = rule.value_number()
        if left is None or right is None:
            return False
        if operator == RuleOperator.GREATER_THAN:
            return left > right
        return left < right

    if operator in (RuleOperator.IN, RuleOperator.NOT_IN):
        candidates = rule.value_list()
        if candidates is None:
            logger.warning(
                f"Rule on '{rule.attribute}' uses {operator.value} with a non-list value"
            )
            return False
        if operator == RuleOperator.IN:
            return actual in candidates
        return actual not in candidates

    logger.warning(f"Unknown operator: {operator}")
    return False


def evaluate_rules(
    rules: list[TargetingRule],
    attributes: Mapping[str, Any],
) -> bool:
    """True if the subject satisfies every rule (AND semantics)."""
    for rule in rules:
        if not evaluate_rule(rule, attributes):
            logger.debug(
                f"Targeting rule failed: {rule.attribute} {rule.operator.value} {rule.value!r}"
            )
            return False
    return True
