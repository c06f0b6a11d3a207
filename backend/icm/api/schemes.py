# backend/icm/api/schemes.py
from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from ..schemas.scheme import IncentivePlan, SchemeIn
from ..services.schemes import SchemeService
from .deps import get_scheme_service

router = APIRouter(prefix="/api/incentives", tags=["incentives"])


class StatusIn(BaseModel):
    status: str


class SimulationIn(BaseModel):
    records: List[Dict[str, Any]] = []


# ---------------- Reads ----------------
@router.get("", response_model=List[IncentivePlan])
def list_schemes(svc: SchemeService = Depends(get_scheme_service)):
    """Latest version of every scheme, most recently updated first."""
    return svc.list_latest()


@router.get("/versions/{scheme_id}", response_model=List[IncentivePlan])
def list_versions(scheme_id: str, svc: SchemeService = Depends(get_scheme_service)):
    return svc.list_versions(scheme_id)


@router.get("/{id}", response_model=IncentivePlan)
def get_scheme(id: str, svc: SchemeService = Depends(get_scheme_service)):
    return svc.get(id)


# ---------------- Writes ----------------
@router.post("", response_model=IncentivePlan, status_code=status.HTTP_201_CREATED)
def create_scheme(payload: SchemeIn, svc: SchemeService = Depends(get_scheme_service)):
    return svc.create_scheme(payload)


@router.post("/{scheme_id}/version", response_model=IncentivePlan, status_code=status.HTTP_201_CREATED)
def create_version(scheme_id: str, payload: SchemeIn, svc: SchemeService = Depends(get_scheme_service)):
    return svc.create_version(scheme_id, payload)


@router.put("/{id}", response_model=IncentivePlan)
def replace_scheme(id: str, payload: SchemeIn, svc: SchemeService = Depends(get_scheme_service)):
    return svc.replace(id, payload)


@router.patch("/{id}/status", response_model=IncentivePlan)
def set_status(id: str, payload: StatusIn, svc: SchemeService = Depends(get_scheme_service)):
    return svc.set_status(id, payload.status)


@router.post("/{id}/approve", response_model=IncentivePlan)
def approve(id: str, svc: SchemeService = Depends(get_scheme_service)):
    return svc.approve(id)


@router.post("/{id}/promote", response_model=IncentivePlan)
def promote(id: str, svc: SchemeService = Depends(get_scheme_service)):
    return svc.promote(id)


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_scheme(id: str, svc: SchemeService = Depends(get_scheme_service)):
    svc.delete(id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------- Evaluation ----------------
@router.post("/{id}/simulate")
def simulate(id: str, payload: SimulationIn, svc: SchemeService = Depends(get_scheme_service)):
    return svc.simulate(id, payload.records).to_dict()
