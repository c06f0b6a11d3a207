# backend/tests/test_kpi_catalog.py
import pytest

from conftest import scheme_in
from icm.core.errors import ConflictError, NotFound, ValidationError
from icm.engine.measurement import add_primary_metric
from icm.schemas.kpi import KpiSection, KPIFieldMappingIn
from icm.schemas.scheme import MeasurementRules
from icm.services.kpi_catalog import KpiCatalog


def kpi(name, section, source, data_type="Number", **extra):
    return KPIFieldMappingIn(kpi_name=name, section=section, source_field=source, data_type=data_type, **extra)


@pytest.fixture
def catalog(kpi_store, scheme_store):
    return KpiCatalog(kpi_store, scheme_store)


def test_list_filters_by_section(catalog):
    catalog.create(kpi("Net Revenue", "BASE_DATA", "NETWR", "Currency"))
    catalog.create(kpi("Quantity", "QUAL_CRI", "KWMENG"))
    catalog.create(kpi("Region", "EX_CRI", "REGIO", "String"))

    assert [m.kpi_name for m in catalog.list_fields("QUAL_CRI")] == ["Quantity"]
    assert len(catalog.list_fields()) == 3
    with pytest.raises(ValidationError):
        catalog.list_fields("SOMETHING")


def test_kpi_name_unique_within_section(catalog):
    catalog.create(kpi("Quantity", "QUAL_CRI", "KWMENG"))
    with pytest.raises(ConflictError):
        catalog.create(kpi("Quantity", "QUAL_CRI", "MENGE"))
    # same name in another section is allowed
    catalog.create(kpi("Quantity", "ADJ_CRI", "KWMENG"))


def test_blank_names_are_rejected():
    with pytest.raises(ValueError):
        kpi("   ", "QUAL_CRI", "KWMENG")


def test_update_and_delete(catalog):
    saved = catalog.create(kpi("Quantity", "QUAL_CRI", "KWMENG"))
    updated = catalog.update(saved.id, kpi("Quantity", "QUAL_CRI", "MENGE", description="Order quantity"))
    assert updated.source_field == "MENGE"
    assert updated.description == "Order quantity"

    catalog.delete(saved.id)
    with pytest.raises(NotFound):
        catalog.delete(saved.id)
    with pytest.raises(NotFound):
        catalog.update(saved.id, kpi("Quantity", "QUAL_CRI", "MENGE"))


def test_section_of_referenced_kpi_is_immutable(catalog, service):
    saved = catalog.create(kpi("Quantity", "QUAL_CRI", "KWMENG"))
    service.create_scheme(
        scheme_in(schemeId="S1", measurementRules={"primaryMetrics": [{"field": "Quantity", "operator": ">", "value": 0}]})
    )
    with pytest.raises(ConflictError) as exc:
        catalog.update(saved.id, kpi("Quantity", "EX_CRI", "KWMENG"))
    assert exc.value.details["schemeIds"] == ["S1"]

    # other attributes may still change
    assert catalog.update(saved.id, kpi("Quantity", "QUAL_CRI", "MENGE")).source_field == "MENGE"


def test_section_stays_locked_while_an_older_version_uses_it(catalog, service):
    saved = catalog.create(kpi("Quantity", "QUAL_CRI", "KWMENG"))
    v1 = service.create_scheme(
        scheme_in(schemeId="S1", measurementRules={"primaryMetrics": [{"field": "Quantity", "operator": ">", "value": 0}]})
    )
    service.set_status(v1.id, "PRODUCTION")
    v2 = service.create_version("S1", scheme_in())
    assert v2.version == 2
    assert v2.measurement_rules.primary_metrics == []

    with pytest.raises(ConflictError) as exc:
        catalog.update(saved.id, kpi("Quantity", "EX_CRI", "KWMENG"))
    assert exc.value.details["schemeIds"] == ["S1"]


def test_section_of_unreferenced_kpi_can_change(catalog, service):
    saved = catalog.create(kpi("Discount", "ADJ_CRI", "RABATT"))
    service.create_scheme(scheme_in())
    moved = catalog.update(saved.id, kpi("Discount", "EX_CRI", "RABATT"))
    assert moved.section is KpiSection.EX_CRI


def test_admin_config_groups_per_section(catalog):
    catalog.create(kpi("Net Revenue", "BASE_DATA", "NETWR", "Currency"))
    catalog.create(kpi("Quantity", "QUAL_CRI", "KWMENG"))
    catalog.create(kpi("Discount", "ADJ_CRI", "RABATT", "Percentage"))
    catalog.create(kpi("Order Status", "EX_CRI", "GBSTK", "String"))
    catalog.create(kpi("Customer Group", "CUSTOM_RULES", "KDGRP", "String"))

    cfg = catalog.admin_config(admin_id="admin-1", admin_name="EMEA Admin")
    assert cfg.base_field == "Net Revenue"
    assert [f.kpi for f in cfg.qualification_fields] == ["Quantity"]
    assert [f.source_field for f in cfg.adjustment_fields] == ["RABATT"]
    assert [f.kpi for f in cfg.exclusion_fields] == ["Order Status"]
    assert [f.kpi for f in cfg.custom_rules] == ["Customer Group"]

    wire = cfg.model_dump(by_alias=True)
    assert {"adminId", "calculationBase", "baseData", "qualificationFields"} <= set(wire)


def test_authoring_defaults_to_first_field_of_section(catalog):
    catalog.create(kpi("Quantity", "QUAL_CRI", "KWMENG"))
    catalog.create(kpi("Net Value", "QUAL_CRI", "NETWR"))
    rules = add_primary_metric(MeasurementRules(), catalog.field_names(KpiSection.QUAL_CRI))
    # catalog lists are sorted by name
    assert rules.primary_metrics[0].field == "Net Value"
