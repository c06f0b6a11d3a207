# backend/icm/engine/measurement.py
from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional, Sequence, TypeVar

from ..core.errors import ValidationError
from ..schemas.kpi import KpiSection
from ..schemas.scheme import (
    Adjustment,
    AdjustmentType,
    Exclusion,
    MeasurementRules,
    Operator,
    PrimaryMetric,
)
from .operators import EMPTY_CATALOG, FieldCatalog, Record, matches

# ----------------- Evaluation -----------------
def is_excluded(rules: MeasurementRules, record: Record, catalog: FieldCatalog = EMPTY_CATALOG) -> bool:
    """Any single matching exclusion drops the record."""
    return any(matches(ex, record, catalog, KpiSection.EX_CRI) for ex in rules.exclusions)


def meets_primary_metrics(rules: MeasurementRules, record: Record, catalog: FieldCatalog = EMPTY_CATALOG) -> bool:
    return all(matches(pm, record, catalog, KpiSection.QUAL_CRI) for pm in rules.primary_metrics)


def apply_adjustment(payout: float, adj: Adjustment) -> float:
    if adj.type is AdjustmentType.PERCENTAGE_BOOST:
        return payout * adj.factor
    # additive kinds fall back to factor when no explicit impact was authored
    return payout + (adj.impact if adj.impact is not None else adj.factor)


def apply_adjustments(
    payout: float,
    adjustments: Sequence[Adjustment],
    record: Record,
    catalog: FieldCatalog = EMPTY_CATALOG,
) -> float:
    """Matching adjustments compound in declared order."""
    for adj in adjustments:
        if matches(adj, record, catalog, KpiSection.ADJ_CRI):
            payout = apply_adjustment(payout, adj)
    return payout


# ----------------- Authoring -----------------
class MetricField(str, Enum):
    FIELD = "field"
    OPERATOR = "operator"
    VALUE = "value"
    DESCRIPTION = "description"


class AdjustmentField(str, Enum):
    FIELD = "field"
    OPERATOR = "operator"
    VALUE = "value"
    DESCRIPTION = "description"
    FACTOR = "factor"
    TYPE = "type"
    IMPACT = "impact"


class ExclusionField(str, Enum):
    FIELD = "field"
    OPERATOR = "operator"
    VALUE = "value"
    DESCRIPTION = "description"


T = TypeVar("T")


def _at(items: Sequence[T], index: int, what: str) -> T:
    if not (0 <= index < len(items)):
        raise ValidationError(f"No {what} at index {index}", {"index": index, "size": len(items)})
    return items[index]


def _rebuild(model_cls, current, field_name: str, value: Any):
    # re-validate so the edit is checked exactly like an authored payload
    data = current.model_dump()
    data[field_name] = value
    try:
        return model_cls.model_validate(data)
    except ValueError as e:
        raise ValidationError(f"Invalid value for '{field_name}'", {"errors": str(e)})


def _field_name(enum_cls, field) -> str:
    try:
        return enum_cls(field).value
    except ValueError:
        raise ValidationError(f"Unknown field {field!r}", {"allowed": [f.value for f in enum_cls]})


def _first(fields: Optional[Sequence[str]]) -> str:
    return fields[0] if fields else ""


def add_primary_metric(rules: MeasurementRules, available_fields: Optional[Sequence[str]] = None) -> MeasurementRules:
    metric = PrimaryMetric(
        field=_first(available_fields), operator=Operator.GT, value=0, description="New qualifying criteria"
    )
    return rules.model_copy(update={"primary_metrics": [*rules.primary_metrics, metric]})


def update_primary_metric(rules: MeasurementRules, index: int, field: MetricField, value: Any) -> MeasurementRules:
    current = _at(rules.primary_metrics, index, "primary metric")
    metrics: List[PrimaryMetric] = list(rules.primary_metrics)
    metrics[index] = _rebuild(PrimaryMetric, current, _field_name(MetricField, field), value)
    return rules.model_copy(update={"primary_metrics": metrics})


def remove_primary_metric(rules: MeasurementRules, index: int) -> MeasurementRules:
    _at(rules.primary_metrics, index, "primary metric")
    metrics = [m for i, m in enumerate(rules.primary_metrics) if i != index]
    return rules.model_copy(update={"primary_metrics": metrics})


def set_min_qualification(rules: MeasurementRules, value: float) -> MeasurementRules:
    if value is None or value < 0:
        raise ValidationError("minQualification must be >= 0", {"value": value})
    return rules.model_copy(update={"min_qualification": float(value)})


def add_adjustment(rules: MeasurementRules, available_fields: Optional[Sequence[str]] = None) -> MeasurementRules:
    adj = Adjustment(
        field=_first(available_fields),
        operator=Operator.GT,
        value=0,
        description="New adjustment rule",
        factor=1.0,
        impact=1.0,
        type=AdjustmentType.PERCENTAGE_BOOST,
    )
    return rules.model_copy(update={"adjustments": [*rules.adjustments, adj]})


def update_adjustment(rules: MeasurementRules, index: int, field: AdjustmentField, value: Any) -> MeasurementRules:
    current = _at(rules.adjustments, index, "adjustment")
    adjustments = list(rules.adjustments)
    adjustments[index] = _rebuild(Adjustment, current, _field_name(AdjustmentField, field), value)
    return rules.model_copy(update={"adjustments": adjustments})


def remove_adjustment(rules: MeasurementRules, index: int) -> MeasurementRules:
    _at(rules.adjustments, index, "adjustment")
    return rules.model_copy(update={"adjustments": [a for i, a in enumerate(rules.adjustments) if i != index]})


def add_exclusion(rules: MeasurementRules, available_fields: Optional[Sequence[str]] = None) -> MeasurementRules:
    ex = Exclusion(
        field=_first(available_fields), operator=Operator.GT, value=0, description="New exclusion rule"
    )
    return rules.model_copy(update={"exclusions": [*rules.exclusions, ex]})


def update_exclusion(rules: MeasurementRules, index: int, field: ExclusionField, value: Any) -> MeasurementRules:
    current = _at(rules.exclusions, index, "exclusion")
    exclusions = list(rules.exclusions)
    exclusions[index] = _rebuild(Exclusion, current, _field_name(ExclusionField, field), value)
    return rules.model_copy(update={"exclusions": exclusions})


def remove_exclusion(rules: MeasurementRules, index: int) -> MeasurementRules:
    _at(rules.exclusions, index, "exclusion")
    return rules.model_copy(update={"exclusions": [e for i, e in enumerate(rules.exclusions) if i != index]})
