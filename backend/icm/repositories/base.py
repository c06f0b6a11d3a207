# backend/icm/repositories/base.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from ..core.errors import ValidationError
from ..schemas.kpi import KpiSection, KPIFieldMapping, KPIFieldMappingIn
from ..schemas.scheme import IncentivePlan


class SchemeStore(Protocol):
    """Append-only store of scheme versions. `persistent` is False for the in-memory fallback."""

    persistent: bool
    kind: str

    def find_latest_versions(self) -> List[IncentivePlan]: ...

    def find_all(self) -> List[IncentivePlan]: ...

    def find_versions(self, scheme_id: str) -> List[IncentivePlan]: ...

    def find_by_id(self, id: str) -> IncentivePlan: ...

    def exists(self, scheme_id: str) -> bool: ...

    def insert(self, plan: IncentivePlan) -> IncentivePlan: ...

    def update_fields(self, id: str, partial: Dict[str, Any]) -> IncentivePlan: ...

    def delete(self, id: str) -> bool: ...


class KpiFieldStore(Protocol):
    def list_fields(self, section: Optional[KpiSection] = None) -> List[KPIFieldMapping]: ...

    def get(self, id: str) -> KPIFieldMapping: ...

    def insert(self, mapping: KPIFieldMappingIn) -> KPIFieldMapping: ...

    def update(self, id: str, mapping: KPIFieldMappingIn) -> KPIFieldMapping: ...

    def delete(self, id: str) -> bool: ...


# ----------------- Document helpers -----------------
def to_document(plan: IncentivePlan) -> Dict[str, Any]:
    return plan.model_dump(mode="json", by_alias=True, exclude={"id"})


def from_document(id: str, document: Dict[str, Any]) -> IncentivePlan:
    return IncentivePlan.model_validate({**document, "id": id})


def apply_partial(plan: IncentivePlan, partial: Dict[str, Any]) -> IncentivePlan:
    """
    Merge a partial update (snake_case keys) into a stored plan.
    `metadata` merges key by key; `id` and `scheme_id` cannot change.
    """
    data = plan.model_dump()
    for key, value in partial.items():
        if key in ("id", "scheme_id"):
            raise ValidationError(f"'{key}' cannot be updated", {"field": key})
        if key == "metadata" and isinstance(value, dict):
            data["metadata"] = {**data["metadata"], **value}
        else:
            data[key] = value
    try:
        return IncentivePlan.model_validate(data)
    except ValueError as e:
        raise ValidationError("Invalid scheme update", {"errors": str(e)})
