# backend/icm/api/deps.py
from fastapi import Request

from ..services.kpi_catalog import KpiCatalog
from ..services.schemes import SchemeService


def get_scheme_service(request: Request) -> SchemeService:
    return request.app.state.scheme_service


def get_kpi_catalog(request: Request) -> KpiCatalog:
    return request.app.state.kpi_catalog
