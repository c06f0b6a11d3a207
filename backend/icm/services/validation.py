# backend/icm/services/validation.py
from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..core.errors import ValidationError
from ..core.numbers import to_number
from ..engine.tiers import ladder_errors
from ..schemas.kpi import KpiSection, KPIFieldMapping, is_numeric_type
from ..schemas.scheme import Condition, SchemeBody

CREDIT_TOTAL = 100.0
CREDIT_TOLERANCE = 0.01


def _conditions(body: SchemeBody) -> Iterable[Tuple[str, KpiSection, Condition]]:
    rules = body.measurement_rules
    for i, m in enumerate(rules.primary_metrics):
        yield f"measurementRules.primaryMetrics[{i}]", KpiSection.QUAL_CRI, m
    for i, a in enumerate(rules.adjustments):
        yield f"measurementRules.adjustments[{i}]", KpiSection.ADJ_CRI, a
    for i, e in enumerate(rules.exclusions):
        yield f"measurementRules.exclusions[{i}]", KpiSection.EX_CRI, e
    for r, rule in enumerate(body.custom_rules):
        for c, cond in enumerate(rule.conditions):
            yield f"customRules[{r}].conditions[{c}]", KpiSection.CUSTOM_RULES, cond


def _duplicates(values: Sequence[str]) -> List[str]:
    return sorted(v for v, n in Counter(values).items() if n > 1)


def scheme_errors(body: SchemeBody, catalog: Optional[Sequence[KPIFieldMapping]] = None) -> Dict[str, List[str]]:
    """
    Structural checks a saved scheme must pass, keyed by document path.
    With a catalog, rule fields must also be declared in the section of their block.
    """
    errors: Dict[str, List[str]] = {}

    def add(path: str, msg: str) -> None:
        errors.setdefault(path, []).append(msg)

    for msg in ladder_errors(body.commission_structure.tiers):
        add("commissionStructure.tiers", msg)

    for path, _, cond in _conditions(body):
        if not cond.field.strip():
            add(path, "field is required")

    levels = body.credit_rules.levels
    if levels and abs(body.credit_rules.total_percentage - CREDIT_TOTAL) > CREDIT_TOLERANCE:
        add("creditRules.levels", f"credit percentages must sum to 100 (got {body.credit_rules.total_percentage:g})")

    for name in _duplicates([r.name for r in body.custom_rules]):
        add("customRules", f"duplicate custom rule name {name!r}")
    for adj_id in _duplicates([a.id for a in body.measurement_rules.adjustments]):
        add("measurementRules.adjustments", f"duplicate adjustment id {adj_id!r}")

    if catalog is not None:
        by_section: Dict[KpiSection, Dict[str, KPIFieldMapping]] = {}
        for m in catalog:
            by_section.setdefault(m.section, {})[m.kpi_name] = m

        for path, section, cond in _conditions(body):
            if not cond.field.strip():
                continue
            mapping = by_section.get(section, {}).get(cond.field)
            if mapping is None:
                add(path, f"field {cond.field!r} is not a {section.value} KPI")
            elif is_numeric_type(mapping.data_type) and to_number(cond.value) is None:
                add(path, f"field {cond.field!r} is numeric; value {cond.value!r} is not")

        if body.base_field and body.base_field not in by_section.get(KpiSection.BASE_DATA, {}):
            add("baseField", f"field {body.base_field!r} is not a BASE_DATA KPI")

    return errors


def validate_scheme(body: SchemeBody, catalog: Optional[Sequence[KPIFieldMapping]] = None) -> None:
    errors = scheme_errors(body, catalog)
    if errors:
        raise ValidationError("Invalid incentive scheme", {"errors": errors})
