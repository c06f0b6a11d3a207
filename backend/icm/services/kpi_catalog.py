# backend/icm/services/kpi_catalog.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional, Set

from ..core.errors import ConflictError, NotFound, ValidationError
from ..core.logging import get_logger
from ..engine.operators import FieldCatalog
from ..repositories.base import KpiFieldStore, SchemeStore
from ..schemas.kpi import KpiField, KpiSection, KPIFieldMapping, KPIFieldMappingIn, SchemeAdminConfig
from ..schemas.scheme import IncentivePlan

log = get_logger()


def parse_section(value: Any) -> Optional[KpiSection]:
    if value is None or value == "":
        return None
    try:
        return KpiSection(value)
    except ValueError:
        raise ValidationError(f"Unknown section {value!r}", {"allowed": [s.value for s in KpiSection]})


def referenced_fields(plan: IncentivePlan, section: KpiSection) -> Set[str]:
    """KPI names a scheme uses in the block that draws from `section`."""
    rules = plan.measurement_rules
    if section is KpiSection.QUAL_CRI:
        return {m.field for m in rules.primary_metrics}
    if section is KpiSection.ADJ_CRI:
        return {a.field for a in rules.adjustments}
    if section is KpiSection.EX_CRI:
        return {e.field for e in rules.exclusions}
    if section is KpiSection.CUSTOM_RULES:
        return {c.field for r in plan.custom_rules for c in r.conditions}
    return {f for f in (plan.base_field, plan.revenue_base) if f}


def _as_field(m: KPIFieldMapping) -> KpiField:
    return KpiField(
        kpi=m.kpi_name,
        description=m.description,
        source_type=m.source_type,
        source_field=m.source_field,
        data_type=m.data_type,
    )


class KpiCatalog:
    def __init__(self, store: KpiFieldStore, schemes: Optional[SchemeStore] = None):
        self.store = store
        self.schemes = schemes

    def list_fields(self, section: Any = None) -> List[KPIFieldMapping]:
        return self.store.list_fields(parse_section(section))

    def field_names(self, section: KpiSection) -> List[str]:
        return [m.kpi_name for m in self.store.list_fields(section)]

    def field_catalog(self) -> FieldCatalog:
        return FieldCatalog.from_mappings(self.store.list_fields())

    def create(self, mapping: KPIFieldMappingIn) -> KPIFieldMapping:
        saved = self.store.insert(mapping)
        log.info("Added KPI %s to %s (id=%s)", saved.kpi_name, saved.section.value, saved.id)
        return saved

    def update(self, id: str, mapping: KPIFieldMappingIn) -> KPIFieldMapping:
        current = self.store.get(id)
        if mapping.section != current.section:
            users = self._schemes_using(current)
            if users:
                raise ConflictError(
                    f"KPI {current.kpi_name!r} is used by existing schemes; its section cannot change",
                    {"schemeIds": users, "section": current.section.value},
                )
        saved = self.store.update(id, mapping)
        log.info("Updated KPI mapping %s (%s)", id, saved.kpi_name)
        return saved

    def delete(self, id: str) -> None:
        if not self.store.delete(id):
            raise NotFound("KPI field mapping not found", {"id": id})
        log.info("Deleted KPI mapping %s", id)

    def _schemes_using(self, mapping: KPIFieldMapping) -> List[str]:
        if self.schemes is None:
            return []
        # every stored version, not only the latest
        return sorted(
            {p.scheme_id for p in self.schemes.find_all() if mapping.kpi_name in referenced_fields(p, mapping.section)}
        )

    def admin_config(
        self,
        admin_id: str = "default",
        admin_name: str = "Scheme Administrator",
        calculation_base: str = "Sales Orders",
        base_field: Optional[str] = None,
    ) -> SchemeAdminConfig:
        """The catalog grouped per section, as scheme authors pick fields from it."""
        grouped = {s: [] for s in KpiSection}
        for m in self.store.list_fields():
            grouped[m.section].append(_as_field(m))

        if base_field is None and grouped[KpiSection.BASE_DATA]:
            base_field = grouped[KpiSection.BASE_DATA][0].kpi

        now = datetime.now(timezone.utc)
        return SchemeAdminConfig(
            admin_id=admin_id,
            admin_name=admin_name,
            calculation_base=calculation_base,
            base_field=base_field,
            created_at=now,
            updated_at=now,
            base_data=grouped[KpiSection.BASE_DATA],
            qualification_fields=grouped[KpiSection.QUAL_CRI],
            adjustment_fields=grouped[KpiSection.ADJ_CRI],
            exclusion_fields=grouped[KpiSection.EX_CRI],
            custom_rules=grouped[KpiSection.CUSTOM_RULES],
        )
