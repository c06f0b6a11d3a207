# backend/tests/test_operators.py
import pytest

from icm.engine.operators import FieldCatalog, compare, matches
from icm.schemas.kpi import KpiSection, KPIFieldMapping
from icm.schemas.scheme import Condition, Operator


def mapping(name, source, data_type="Number", section=KpiSection.QUAL_CRI):
    return KPIFieldMapping(
        id=name,
        kpi_name=name,
        section=section,
        source_field=source,
        data_type=data_type,
    )


@pytest.mark.parametrize(
    "actual, op, expected, result",
    [
        (150, Operator.GT, 100, True),
        (100, Operator.GT, 100, False),
        (100, Operator.GTE, 100, True),
        (99.5, Operator.LT, 100, True),
        (100, Operator.LTE, "100", True),
        ("1,250", Operator.GT, 1000, True),
    ],
)
def test_ordering_operators_compare_numbers(actual, op, expected, result):
    assert compare(actual, op, expected) is result


@pytest.mark.parametrize("actual", ["abc", None, "", True])
def test_ordering_fails_closed_on_non_numbers(actual):
    assert compare(actual, Operator.GT, 0) is False
    assert compare(actual, Operator.LTE, 0) is False


def test_equality_infers_numeric_when_both_sides_are_numbers():
    assert compare("5", Operator.EQ, 5.0) is True
    assert compare(5, Operator.NE, "5.0") is False


def test_equality_on_text_is_case_sensitive():
    assert compare("EMEA", Operator.EQ, "EMEA") is True
    assert compare("emea", Operator.EQ, "EMEA") is False
    assert compare("emea", Operator.NE, "EMEA") is True


def test_declared_numeric_field_never_matches_text():
    assert compare("abc", Operator.EQ, "abc", numeric=True) is False
    assert compare("abc", Operator.NE, "abc", numeric=True) is False


def test_declared_text_field_compares_as_strings():
    # "05" and "5" are different region codes
    assert compare("05", Operator.EQ, "5", numeric=False) is False


def test_missing_field_never_matches():
    cond = Condition(field="region", operator=Operator.NE, value="APAC")
    assert matches(cond, {"amount": 10}) is False


def test_catalog_reads_source_field():
    catalog = FieldCatalog.from_mappings([mapping("Net Revenue", "NETWR")])
    cond = Condition(field="Net Revenue", operator=Operator.GTE, value=500)
    assert matches(cond, {"NETWR": "750"}, catalog, KpiSection.QUAL_CRI) is True
    assert matches(cond, {"NETWR": 100}, catalog, KpiSection.QUAL_CRI) is False


def test_catalog_falls_back_to_kpi_name_in_record():
    catalog = FieldCatalog.from_mappings([mapping("Net Revenue", "NETWR")])
    cond = Condition(field="Net Revenue", operator=Operator.GT, value=0)
    assert matches(cond, {"Net Revenue": 10}, catalog, KpiSection.QUAL_CRI) is True


def test_same_kpi_name_resolves_per_section():
    catalog = FieldCatalog.from_mappings(
        [
            mapping("Region", "REGIO", "String", KpiSection.EX_CRI),
            mapping("Region", "REGION_CODE", "Number", KpiSection.CUSTOM_RULES),
        ]
    )
    ex = catalog.spec(KpiSection.EX_CRI, "Region")
    custom = catalog.spec(KpiSection.CUSTOM_RULES, "Region")
    assert (ex.source_field, ex.numeric) == ("REGIO", False)
    assert (custom.source_field, custom.numeric) == ("REGION_CODE", True)

    cond = Condition(field="Region", operator=Operator.EQ, value="EMEA")
    record = {"REGIO": "EMEA", "REGION_CODE": 40}
    assert matches(cond, record, catalog, KpiSection.EX_CRI) is True
    assert matches(cond, record, catalog, KpiSection.CUSTOM_RULES) is False


def test_name_from_another_section_is_not_borrowed():
    catalog = FieldCatalog.from_mappings([mapping("Region", "REGIO", "String", KpiSection.EX_CRI)])
    cond = Condition(field="Region", operator=Operator.EQ, value="EMEA")
    # QUAL_CRI has no Region mapping, so the record is read at the KPI name
    assert matches(cond, {"REGIO": "EMEA"}, catalog, KpiSection.QUAL_CRI) is False
    assert matches(cond, {"Region": "EMEA"}, catalog, KpiSection.QUAL_CRI) is True


def test_ordering_operator_needs_numeric_literal():
    with pytest.raises(ValueError):
        Condition(field="amount", operator=Operator.GT, value="lots")


def test_unknown_operator_is_rejected():
    with pytest.raises(ValueError):
        Condition.model_validate({"field": "amount", "operator": "=>", "value": 1})
