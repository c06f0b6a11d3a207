# backend/icm/engine/custom_rules.py
from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional, Sequence

from ..core.errors import ValidationError
from ..schemas.kpi import KpiSection
from ..schemas.scheme import CustomRule, ImpactType, Operator, RuleCondition
from .operators import EMPTY_CATALOG, FieldCatalog, Record, matches


# ----------------- Evaluation -----------------
def evaluate(rule: CustomRule, record: Record, catalog: FieldCatalog = EMPTY_CATALOG) -> bool:
    """True iff every condition holds. A rule without conditions always holds."""
    return all(matches(c, record, catalog, KpiSection.CUSTOM_RULES) for c in rule.conditions)


def apply_impact(payout: float, rule: CustomRule) -> float:
    if rule.impact_type is ImpactType.PERCENTAGE:
        return payout * (1 + rule.impact_value / 100.0)
    return payout + rule.impact_value


def apply_custom_rules(
    payout: float,
    rules: Sequence[CustomRule],
    record: Record,
    catalog: FieldCatalog = EMPTY_CATALOG,
) -> float:
    """Active rules apply in authored order, each on the previous rule's output."""
    for rule in rules:
        if rule.active and evaluate(rule, record, catalog):
            payout = apply_impact(payout, rule)
    return payout


def fired_rules(rules: Sequence[CustomRule], record: Record, catalog: FieldCatalog = EMPTY_CATALOG) -> List[str]:
    return [r.name for r in rules if r.active and evaluate(r, record, catalog)]


# ----------------- Authoring -----------------
class RuleField(str, Enum):
    NAME = "name"
    DESCRIPTION = "description"
    IMPACT_TYPE = "impact_type"
    IMPACT_VALUE = "impact_value"
    ACTIVE = "active"


class ConditionField(str, Enum):
    FIELD = "field"
    OPERATOR = "operator"
    VALUE = "value"
    METRIC = "metric"
    PERIOD = "period"


def _enum(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Unknown field {value!r}", {"allowed": [f.value for f in enum_cls]})


def _rule_at(rules: Sequence[CustomRule], index: int) -> CustomRule:
    if not (0 <= index < len(rules)):
        raise ValidationError(f"No custom rule at index {index}", {"index": index, "size": len(rules)})
    return rules[index]


def _revalidate(model_cls, data: dict, what: str):
    try:
        return model_cls.model_validate(data)
    except ValueError as e:
        raise ValidationError(f"Invalid {what}", {"errors": str(e)})


def _unique_name(rules: Sequence[CustomRule], base: str) -> str:
    taken = {r.name for r in rules}
    if base not in taken:
        return base
    n = 2
    while f"{base} {n}" in taken:
        n += 1
    return f"{base} {n}"


def add_rule(rules: Sequence[CustomRule], name: Optional[str] = None) -> List[CustomRule]:
    rule = CustomRule(
        name=_unique_name(rules, name or "New Rule"),
        description="",
        conditions=[],
        impact_type=ImpactType.PERCENTAGE,
        impact_value=0,
        active=True,
    )
    return [*rules, rule]


def remove_rule(rules: Sequence[CustomRule], index: int) -> List[CustomRule]:
    _rule_at(rules, index)
    return [r for i, r in enumerate(rules) if i != index]


def update_rule(rules: Sequence[CustomRule], index: int, field: RuleField, value: Any) -> List[CustomRule]:
    current = _rule_at(rules, index)
    field = _enum(RuleField, field)
    if field is RuleField.NAME and any(r.name == value for i, r in enumerate(rules) if i != index):
        raise ValidationError(f"Custom rule name {value!r} is already used", {"index": index})

    data = current.model_dump()
    data[field.value] = value
    out = list(rules)
    out[index] = _revalidate(CustomRule, data, "custom rule")
    return out


def add_condition(
    rules: Sequence[CustomRule], rule_index: int, available_fields: Optional[Sequence[str]] = None
) -> List[CustomRule]:
    rule = _rule_at(rules, rule_index)
    cond = RuleCondition(field=available_fields[0] if available_fields else "", operator=Operator.GT, value=0)
    out = list(rules)
    out[rule_index] = rule.model_copy(update={"conditions": [*rule.conditions, cond]})
    return out


def remove_condition(rules: Sequence[CustomRule], rule_index: int, condition_index: int) -> List[CustomRule]:
    rule = _rule_at(rules, rule_index)
    if not (0 <= condition_index < len(rule.conditions)):
        raise ValidationError(
            f"No condition at index {condition_index}", {"ruleIndex": rule_index, "conditionIndex": condition_index}
        )
    conditions = [c for i, c in enumerate(rule.conditions) if i != condition_index]
    out = list(rules)
    out[rule_index] = rule.model_copy(update={"conditions": conditions})
    return out


def update_condition(
    rules: Sequence[CustomRule], rule_index: int, condition_index: int, field: ConditionField, value: Any
) -> List[CustomRule]:
    rule = _rule_at(rules, rule_index)
    if not (0 <= condition_index < len(rule.conditions)):
        raise ValidationError(
            f"No condition at index {condition_index}", {"ruleIndex": rule_index, "conditionIndex": condition_index}
        )
    field = _enum(ConditionField, field)
    data = rule.conditions[condition_index].model_dump()
    data[field.value] = value
    conditions = list(rule.conditions)
    conditions[condition_index] = _revalidate(RuleCondition, data, "rule condition")
    out = list(rules)
    out[rule_index] = rule.model_copy(update={"conditions": conditions})
    return out
