# backend/icm/engine/payout.py
"""
Evaluate one scheme version against a transaction dataset.

Order of passes:
  1. exclusions   - any matching exclusion drops the record
  2. qualification - every primary metric must hold; the qualifying
                     measure total must reach minQualification
  3. tiers        - progressive payout on the qualifying total, shared
                     back to records pro rata by positive measure
  4. adjustments  - per record, declared order, compounding
  5. custom rules - per record, authored order, active rules only
  6. credit split - total payout divided across credit levels

The records iterable is consumed exactly once.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..core.numbers import to_number
from ..schemas.kpi import KpiSection
from ..schemas.scheme import SchemeBody
from .custom_rules import apply_custom_rules, fired_rules
from .measurement import apply_adjustments, is_excluded, meets_primary_metrics
from .operators import EMPTY_CATALOG, FieldCatalog
from .tiers import marginal_breakdown, tiered_payout


@dataclass
class RecordPayout:
    index: int
    measure: float
    base: float
    adjusted: float
    final: float
    rules_fired: List[str] = field(default_factory=list)


@dataclass
class CreditAllocation:
    label: str
    percentage: float
    amount: float


@dataclass
class PayoutResult:
    currency: str
    records_seen: int = 0
    records_excluded: int = 0
    records_qualifying: int = 0
    qualifying_measure: float = 0.0
    min_qualification: float = 0.0
    qualified: bool = False
    base_payout: float = 0.0
    total_payout: float = 0.0
    quota_attainment: Optional[float] = None
    tiers: List[Dict[str, Any]] = field(default_factory=list)
    lines: List[RecordPayout] = field(default_factory=list)
    credits: List[CreditAllocation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currency": self.currency,
            "recordsSeen": self.records_seen,
            "recordsExcluded": self.records_excluded,
            "recordsQualifying": self.records_qualifying,
            "qualifyingMeasure": round(self.qualifying_measure, 2),
            "minQualification": self.min_qualification,
            "qualified": self.qualified,
            "basePayout": round(self.base_payout, 2),
            "totalPayout": round(self.total_payout, 2),
            "quotaAttainment": None if self.quota_attainment is None else round(self.quota_attainment, 2),
            "tiers": [
                {**t, "portion": round(t["portion"], 2), "payout": round(t["payout"], 2)} for t in self.tiers
            ],
            "lines": [
                {
                    "index": ln.index,
                    "measure": round(ln.measure, 2),
                    "base": round(ln.base, 2),
                    "adjusted": round(ln.adjusted, 2),
                    "final": round(ln.final, 2),
                    "rulesFired": ln.rules_fired,
                }
                for ln in self.lines
            ],
            "credits": [
                {"label": c.label, "percentage": c.percentage, "amount": round(c.amount, 2)} for c in self.credits
            ],
        }


def record_measure(plan: SchemeBody, record: Mapping[str, Any], catalog: FieldCatalog = EMPTY_CATALOG) -> float:
    # non-numeric or missing measures count as zero
    return to_number(catalog.value(record, KpiSection.BASE_DATA, plan.measure_field)) or 0.0


def compute_payout(
    plan: SchemeBody,
    records: Iterable[Mapping[str, Any]],
    catalog: Optional[FieldCatalog] = None,
) -> PayoutResult:
    catalog = catalog or EMPTY_CATALOG
    rules = plan.measurement_rules
    tiers = plan.commission_structure.tiers

    result = PayoutResult(currency=plan.currency, min_qualification=rules.min_qualification)

    qualifying: List[tuple] = []
    for idx, rec in enumerate(records):
        result.records_seen += 1
        if is_excluded(rules, rec, catalog):
            result.records_excluded += 1
            continue
        if not meets_primary_metrics(rules, rec, catalog):
            continue
        qualifying.append((idx, rec, record_measure(plan, rec, catalog)))

    total_measure = sum(m for _, _, m in qualifying)
    result.records_qualifying = len(qualifying)
    result.qualifying_measure = total_measure
    if plan.sales_quota > 0:
        result.quota_attainment = total_measure / plan.sales_quota * 100.0

    result.qualified = bool(qualifying) and total_measure >= rules.min_qualification
    if not result.qualified:
        return result

    base = tiered_payout(tiers, total_measure)
    result.base_payout = base
    result.tiers = marginal_breakdown(tiers, total_measure)

    # returns and credit notes lower the tiered total but take no share of it
    positive_total = sum(max(m, 0.0) for _, _, m in qualifying)
    for idx, rec, measure in qualifying:
        share = base * (max(measure, 0.0) / positive_total) if positive_total > 0 else 0.0
        adjusted = apply_adjustments(share, rules.adjustments, rec, catalog)
        final = apply_custom_rules(adjusted, plan.custom_rules, rec, catalog)
        result.lines.append(
            RecordPayout(
                index=idx,
                measure=measure,
                base=share,
                adjusted=adjusted,
                final=final,
                rules_fired=fired_rules(plan.custom_rules, rec, catalog),
            )
        )

    result.total_payout = sum(ln.final for ln in result.lines)
    result.credits = [
        CreditAllocation(label=lv.label, percentage=lv.percentage, amount=result.total_payout * lv.percentage / 100.0)
        for lv in plan.credit_rules.levels
    ]
    return result
