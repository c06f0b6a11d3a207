# backend/icm/schemas/scheme.py
from __future__ import annotations

import math
import uuid
from datetime import date, datetime
from enum import Enum
from typing import List, Optional, Union

from pydantic import Field, field_validator, model_validator

from ..core.numbers import to_number
from .kpi import CamelModel

# ---------------- Enumerations ----------------
class SchemeStatus(str, Enum):
    DRAFT = "DRAFT"
    APPROVED = "APPROVED"
    SIMULATION = "SIMULATION"
    PRODUCTION = "PRODUCTION"


class Operator(str, Enum):
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    EQ = "=="
    NE = "!="

    @property
    def is_ordering(self) -> bool:
        return self in (Operator.GT, Operator.GTE, Operator.LT, Operator.LTE)


class AdjustmentType(str, Enum):
    PERCENTAGE_BOOST = "PERCENTAGE_BOOST"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class ImpactType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    MONETARY = "MONETARY"


Scalar = Union[float, str]


# ---------------- Commission structure ----------------
class Tier(CamelModel):
    from_: float = Field(0, ge=0, alias="from")
    to: Optional[float] = None  # None = open-ended top tier
    rate: float = Field(..., ge=0, le=100)

    @field_validator("to", mode="before")
    @classmethod
    def _open_ended(cls, v):
        if isinstance(v, str) and v.strip().lower() in {"inf", "infinity", "+inf"}:
            return None
        if isinstance(v, (int, float)) and math.isinf(v) and v > 0:
            return None
        return v

    @model_validator(mode="after")
    def _to_above_from(self) -> "Tier":
        if self.to is not None and self.to <= self.from_:
            raise ValueError(f"tier 'to' ({self.to}) must be greater than 'from' ({self.from_})")
        return self

    @property
    def upper(self) -> float:
        return math.inf if self.to is None else self.to


class CommissionStructure(CamelModel):
    tiers: List[Tier] = []


# ---------------- Measurement rules ----------------
class Condition(CamelModel):
    field: str = ""  # blank while authoring; required when the scheme is saved
    operator: Operator
    value: Scalar = 0

    @model_validator(mode="after")
    def _ordering_needs_number(self) -> "Condition":
        if self.operator.is_ordering and to_number(self.value) is None:
            raise ValueError(f"operator '{self.operator.value}' needs a numeric value, got {self.value!r}")
        return self


class PrimaryMetric(Condition):
    id: Optional[str] = None
    description: str = ""


class Adjustment(Condition):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    description: str = ""
    factor: float = 1.0
    type: AdjustmentType = AdjustmentType.PERCENTAGE_BOOST
    impact: Optional[float] = None


class Exclusion(Condition):
    description: str = ""


class MeasurementRules(CamelModel):
    primary_metrics: List[PrimaryMetric] = []
    min_qualification: float = Field(0, ge=0)
    adjustments: List[Adjustment] = []
    exclusions: List[Exclusion] = []


# ---------------- Credit split ----------------
class CreditLevel(CamelModel):
    role: Optional[str] = None
    name: Optional[str] = None
    percentage: float = Field(..., ge=0, le=100)
    description: Optional[str] = None

    @model_validator(mode="after")
    def _has_label(self) -> "CreditLevel":
        if not (self.role or self.name):
            raise ValueError("credit level needs a 'role' or a 'name'")
        return self

    @property
    def label(self) -> str:
        return self.role or self.name or ""


class CreditRules(CamelModel):
    levels: List[CreditLevel] = []

    @property
    def total_percentage(self) -> float:
        return sum(lv.percentage for lv in self.levels)


# ---------------- Custom rules ----------------
class RuleCondition(Condition):
    metric: Optional[str] = None
    period: Optional[str] = None


class CustomRule(CamelModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    conditions: List[RuleCondition] = []
    impact_type: ImpactType = ImpactType.PERCENTAGE
    impact_value: float = 0
    active: bool = True


# ---------------- Scheme document ----------------
class SchemeMetadata(CamelModel):
    created_at: datetime
    updated_at: datetime
    version: int = Field(1, ge=1)
    status: SchemeStatus = SchemeStatus.DRAFT


class SchemeMetadataIn(CamelModel):
    status: Optional[SchemeStatus] = None


class SchemeBody(CamelModel):
    """Fields an author edits; shared by the authoring payload and the stored document."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    effective_start: Optional[date] = None
    effective_end: Optional[date] = None
    currency: str = Field("USD", min_length=1, max_length=8)
    revenue_base: str = Field(..., min_length=1)
    base_field: Optional[str] = None
    participants: List[str] = Field(..., min_length=1)
    sales_quota: float = Field(0, ge=0)
    commission_structure: CommissionStructure = CommissionStructure()
    measurement_rules: MeasurementRules = MeasurementRules()
    credit_rules: CreditRules = CreditRules()
    custom_rules: List[CustomRule] = []

    @model_validator(mode="after")
    def _dates_ordered(self):
        if self.effective_start and self.effective_end and self.effective_end < self.effective_start:
            raise ValueError("effectiveEnd must not precede effectiveStart")
        return self

    @property
    def measure_field(self) -> str:
        return self.base_field or self.revenue_base


class SchemeIn(SchemeBody):
    scheme_id: Optional[str] = None
    metadata: Optional[SchemeMetadataIn] = None

    @property
    def requested_status(self) -> Optional[SchemeStatus]:
        return self.metadata.status if self.metadata else None


class IncentivePlan(SchemeBody):
    id: str
    scheme_id: str
    metadata: SchemeMetadata

    @property
    def version(self) -> int:
        return self.metadata.version

    @property
    def status(self) -> SchemeStatus:
        return self.metadata.status
