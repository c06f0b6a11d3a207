# backend/icm/api/kpi_fields.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from ..schemas.kpi import KPIFieldMapping, KPIFieldMappingIn, SchemeAdminConfig
from ..services.kpi_catalog import KpiCatalog
from .deps import get_kpi_catalog

router = APIRouter(prefix="/api/kpi-fields", tags=["kpi-fields"])


@router.get("", response_model=List[KPIFieldMapping])
def list_fields(
    section: Optional[str] = Query(None, description="BASE_DATA | QUAL_CRI | ADJ_CRI | EX_CRI | CUSTOM_RULES"),
    catalog: KpiCatalog = Depends(get_kpi_catalog),
):
    return catalog.list_fields(section)


@router.get("/admin-config", response_model=SchemeAdminConfig)
def admin_config(
    admin_id: str = Query("default", alias="adminId"),
    admin_name: str = Query("Scheme Administrator", alias="adminName"),
    calculation_base: str = Query("Sales Orders", alias="calculationBase"),
    base_field: Optional[str] = Query(None, alias="baseField"),
    catalog: KpiCatalog = Depends(get_kpi_catalog),
):
    return catalog.admin_config(admin_id, admin_name, calculation_base, base_field)


@router.post("", response_model=KPIFieldMapping, status_code=status.HTTP_201_CREATED)
def create_field(payload: KPIFieldMappingIn, catalog: KpiCatalog = Depends(get_kpi_catalog)):
    return catalog.create(payload)


@router.put("/{id}", response_model=KPIFieldMapping)
def update_field(id: str, payload: KPIFieldMappingIn, catalog: KpiCatalog = Depends(get_kpi_catalog)):
    return catalog.update(id, payload)


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_field(id: str, catalog: KpiCatalog = Depends(get_kpi_catalog)):
    catalog.delete(id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
