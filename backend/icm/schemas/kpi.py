# backend/icm/schemas/kpi.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class KpiSection(str, Enum):
    BASE_DATA = "BASE_DATA"
    QUAL_CRI = "QUAL_CRI"
    ADJ_CRI = "ADJ_CRI"
    EX_CRI = "EX_CRI"
    CUSTOM_RULES = "CUSTOM_RULES"


NUMERIC_DATA_TYPES = {
    "number",
    "numeric",
    "integer",
    "int",
    "float",
    "decimal",
    "currency",
    "amount",
    "percentage",
}


def is_numeric_type(data_type: Optional[str]) -> bool:
    return (data_type or "").strip().lower() in NUMERIC_DATA_TYPES


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class KPIFieldMappingIn(CamelModel):
    kpi_name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    section: KpiSection
    source_type: str = ""
    source_field: str = Field(..., min_length=1, max_length=255)
    data_type: str = "String"
    api: Optional[str] = None

    @field_validator("kpi_name", "source_field")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class KPIFieldMapping(KPIFieldMappingIn):
    id: str

    @property
    def is_numeric(self) -> bool:
        return is_numeric_type(self.data_type)


# ---------------- Scheme administrator view ----------------
class KpiField(CamelModel):
    kpi: str
    description: str = ""
    source_type: str = ""
    source_field: str
    data_type: str


class SchemeAdminConfig(CamelModel):
    """Catalog grouped per functional section, the shape scheme authors pick fields from."""

    admin_id: str
    admin_name: str
    calculation_base: str
    base_field: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    base_data: List[KpiField] = []
    qualification_fields: List[KpiField] = []
    adjustment_fields: List[KpiField] = []
    exclusion_fields: List[KpiField] = []
    custom_rules: List[KpiField] = []
