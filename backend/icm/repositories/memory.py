# backend/icm/repositories/memory.py
from __future__ import annotations

import threading
import uuid
from typing import Any, Dict, List, Optional

from ..core.errors import ConflictError, NotFound
from ..schemas.kpi import KpiSection, KPIFieldMapping, KPIFieldMappingIn
from ..schemas.scheme import IncentivePlan
from .base import apply_partial


class InMemorySchemeStore:
    """
    Process-scoped scheme store.

    With fallback=True it stands in for an unreachable database: reads and
    writes keep working, but the store does not claim durable version history.
    """

    kind = "memory"

    def __init__(self, fallback: bool = False):
        self.persistent = not fallback
        self.fallback = fallback
        self._docs: Dict[str, IncentivePlan] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def find_latest_versions(self) -> List[IncentivePlan]:
        with self._lock:
            latest: Dict[str, IncentivePlan] = {}
            for doc in self._docs.values():
                cur = latest.get(doc.scheme_id)
                if cur is None or cur.version < doc.version:
                    latest[doc.scheme_id] = doc
            out = sorted(latest.values(), key=lambda d: d.metadata.updated_at, reverse=True)
            return [d.model_copy(deep=True) for d in out]

    def find_all(self) -> List[IncentivePlan]:
        with self._lock:
            return [d.model_copy(deep=True) for d in self._docs.values()]

    def find_versions(self, scheme_id: str) -> List[IncentivePlan]:
        with self._lock:
            rows = [d for d in self._docs.values() if d.scheme_id == scheme_id]
        if not rows:
            raise NotFound("No versions found for this scheme ID", {"schemeId": scheme_id})
        rows.sort(key=lambda d: d.version, reverse=True)
        return [d.model_copy(deep=True) for d in rows]

    def find_by_id(self, id: str) -> IncentivePlan:
        with self._lock:
            doc = self._docs.get(id)
        if doc is None:
            raise NotFound("Incentive scheme not found", {"id": id})
        return doc.model_copy(deep=True)

    def exists(self, scheme_id: str) -> bool:
        with self._lock:
            return any(d.scheme_id == scheme_id for d in self._docs.values())

    def insert(self, plan: IncentivePlan) -> IncentivePlan:
        with self._lock:
            if any(d.scheme_id == plan.scheme_id and d.version == plan.version for d in self._docs.values()):
                raise ConflictError(
                    "Version already exists for this scheme ID",
                    {"schemeId": plan.scheme_id, "version": plan.version},
                )
            new_id = str(self._next_id)
            self._next_id += 1
            stored = plan.model_copy(update={"id": new_id}, deep=True)
            self._docs[new_id] = stored
            return stored.model_copy(deep=True)

    def update_fields(self, id: str, partial: Dict[str, Any]) -> IncentivePlan:
        with self._lock:
            doc = self._docs.get(id)
            if doc is None:
                raise NotFound("Incentive scheme not found", {"id": id})
            updated = apply_partial(doc, partial)
            if updated.version != doc.version and any(
                d.scheme_id == updated.scheme_id and d.version == updated.version for d in self._docs.values()
            ):
                raise ConflictError("Version already exists for this scheme ID", {"version": updated.version})
            self._docs[id] = updated
            return updated.model_copy(deep=True)

    def delete(self, id: str) -> bool:
        with self._lock:
            return self._docs.pop(id, None) is not None


class InMemoryKpiFieldStore:
    def __init__(self):
        self._rows: Dict[str, KPIFieldMapping] = {}
        self._lock = threading.Lock()

    def _check_unique(self, mapping: KPIFieldMappingIn, exclude_id: Optional[str] = None) -> None:
        for row in self._rows.values():
            if row.id != exclude_id and row.section == mapping.section and row.kpi_name == mapping.kpi_name:
                raise ConflictError(
                    "KPI name already exists in this section",
                    {"kpiName": mapping.kpi_name, "section": mapping.section.value},
                )

    def list_fields(self, section: Optional[KpiSection] = None) -> List[KPIFieldMapping]:
        with self._lock:
            rows = [r for r in self._rows.values() if section is None or r.section == section]
        return sorted(rows, key=lambda r: (r.section.value, r.kpi_name))

    def get(self, id: str) -> KPIFieldMapping:
        with self._lock:
            row = self._rows.get(id)
        if row is None:
            raise NotFound("KPI field mapping not found", {"id": id})
        return row

    def insert(self, mapping: KPIFieldMappingIn) -> KPIFieldMapping:
        with self._lock:
            self._check_unique(mapping)
            row = KPIFieldMapping(id=str(uuid.uuid4()), **mapping.model_dump())
            self._rows[row.id] = row
            return row

    def update(self, id: str, mapping: KPIFieldMappingIn) -> KPIFieldMapping:
        with self._lock:
            if id not in self._rows:
                raise NotFound("KPI field mapping not found", {"id": id})
            self._check_unique(mapping, exclude_id=id)
            row = KPIFieldMapping(id=id, **mapping.model_dump())
            self._rows[id] = row
            return row

    def delete(self, id: str) -> bool:
        with self._lock:
            return self._rows.pop(id, None) is not None
