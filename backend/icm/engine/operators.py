# backend/icm/engine/operators.py
"""
Comparison semantics shared by qualification criteria, adjustments,
exclusions and custom-rule conditions.

A rule names a KPI of the section its block draws from; the record is read
at that mapping's source field when the catalog knows it, otherwise at the
KPI name itself. Comparisons fail closed: a missing value or a non-numeric
operand never matches.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from ..core.numbers import to_number
from ..schemas.kpi import KpiSection, KPIFieldMapping, is_numeric_type
from ..schemas.scheme import Condition, Operator

Record = Mapping[str, Any]

_MISSING = object()


@dataclass(frozen=True)
class FieldSpec:
    source_field: str
    numeric: Optional[bool]  # None = type unknown to the catalog


@dataclass
class FieldCatalog:
    """(section, KPI name) -> where to read it and how to compare it."""

    fields: Dict[Tuple[KpiSection, str], FieldSpec] = field(default_factory=dict)

    @classmethod
    def from_mappings(cls, mappings: Iterable[KPIFieldMapping]) -> "FieldCatalog":
        # kpiName is unique per section, so the same name may map differently elsewhere
        return cls(
            {(m.section, m.kpi_name): FieldSpec(m.source_field, is_numeric_type(m.data_type)) for m in mappings}
        )

    def spec(self, section: Optional[KpiSection], name: str) -> FieldSpec:
        # a name declared only in another section is not borrowed from it
        return self.fields.get((section, name)) or FieldSpec(name, None)

    def value(self, record: Record, section: Optional[KpiSection], name: str) -> Any:
        src = self.spec(section, name).source_field
        if src in record:
            return record[src]
        # records keyed by KPI name are accepted too
        return record.get(name, _MISSING)


EMPTY_CATALOG = FieldCatalog()


def compare(actual: Any, operator: Operator, expected: Any, numeric: Optional[bool] = None) -> bool:
    if actual is _MISSING or actual is None:
        return False

    if operator.is_ordering:
        a, b = to_number(actual), to_number(expected)
        if a is None or b is None:
            return False
        if operator is Operator.GT:
            return a > b
        if operator is Operator.GTE:
            return a >= b
        if operator is Operator.LT:
            return a < b
        return a <= b

    if numeric is None:
        numeric = to_number(actual) is not None and to_number(expected) is not None

    if numeric:
        a, b = to_number(actual), to_number(expected)
        if a is None or b is None:
            return False
        equal = a == b
    else:
        equal = _as_text(actual) == _as_text(expected)

    return equal if operator is Operator.EQ else not equal


def _as_text(x: Any) -> str:
    # 5.0 authored as a float literal should still equal the text "5"
    if isinstance(x, float) and x.is_integer():
        return str(int(x))
    return str(x)


def matches(
    condition: Condition,
    record: Record,
    catalog: FieldCatalog = EMPTY_CATALOG,
    section: Optional[KpiSection] = None,
) -> bool:
    """`section` is the catalog section the rule block draws its fields from."""
    spec = catalog.spec(section, condition.field)
    return compare(catalog.value(record, section, condition.field), condition.operator, condition.value, spec.numeric)
