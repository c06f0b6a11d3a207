# backend/icm/repositories/sql.py
from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from ..core.errors import ConflictError, NotFound, UpstreamUnavailable
from ..models import IncentiveSchemeRow, KpiFieldMappingRow
from ..schemas.kpi import KpiSection, KPIFieldMapping, KPIFieldMappingIn
from ..schemas.scheme import IncentivePlan
from .base import apply_partial, from_document, to_document


def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


@contextmanager
def _unit_of_work(factory: sessionmaker, conflict: str) -> Iterator[Session]:
    db: Session = factory()
    try:
        yield db
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(conflict, {"reason": str(e.orig)})
    except OperationalError as e:
        db.rollback()
        raise UpstreamUnavailable("Database unavailable", {"reason": str(e.orig)})
    finally:
        db.close()


# =========================
# Schemes
# =========================
class SqlSchemeStore:
    kind = "sql"
    persistent = True
    fallback = False

    def __init__(self, session_factory: sessionmaker):
        self._factory = session_factory

    def _session(self):
        return _unit_of_work(self._factory, "Version already exists for this scheme ID")

    @staticmethod
    def _to_plan(row: IncentiveSchemeRow) -> IncentivePlan:
        return from_document(row.id, row.document)

    @staticmethod
    def _fill(row: IncentiveSchemeRow, plan: IncentivePlan) -> None:
        row.scheme_id = plan.scheme_id
        row.version = plan.version
        row.status = plan.status.value
        row.name = plan.name
        row.created_at = _naive_utc(plan.metadata.created_at)
        row.updated_at = _naive_utc(plan.metadata.updated_at)
        row.document = to_document(plan)

    def find_latest_versions(self) -> List[IncentivePlan]:
        latest = (
            select(
                IncentiveSchemeRow.scheme_id.label("scheme_id"),
                func.max(IncentiveSchemeRow.version).label("version"),
            )
            .group_by(IncentiveSchemeRow.scheme_id)
            .subquery()
        )
        stmt = (
            select(IncentiveSchemeRow)
            .join(
                latest,
                and_(
                    IncentiveSchemeRow.scheme_id == latest.c.scheme_id,
                    IncentiveSchemeRow.version == latest.c.version,
                ),
            )
            .order_by(IncentiveSchemeRow.updated_at.desc())
        )
        with self._session() as db:
            return [self._to_plan(r) for r in db.execute(stmt).scalars().all()]

    def find_all(self) -> List[IncentivePlan]:
        stmt = select(IncentiveSchemeRow).order_by(IncentiveSchemeRow.scheme_id, IncentiveSchemeRow.version)
        with self._session() as db:
            return [self._to_plan(r) for r in db.execute(stmt).scalars().all()]

    def find_versions(self, scheme_id: str) -> List[IncentivePlan]:
        stmt = (
            select(IncentiveSchemeRow)
            .where(IncentiveSchemeRow.scheme_id == scheme_id)
            .order_by(IncentiveSchemeRow.version.desc())
        )
        with self._session() as db:
            rows = db.execute(stmt).scalars().all()
            if not rows:
                raise NotFound("No versions found for this scheme ID", {"schemeId": scheme_id})
            return [self._to_plan(r) for r in rows]

    def find_by_id(self, id: str) -> IncentivePlan:
        with self._session() as db:
            row = db.get(IncentiveSchemeRow, id)
            if row is None:
                raise NotFound("Incentive scheme not found", {"id": id})
            return self._to_plan(row)

    def exists(self, scheme_id: str) -> bool:
        stmt = select(IncentiveSchemeRow.id).where(IncentiveSchemeRow.scheme_id == scheme_id).limit(1)
        with self._session() as db:
            return db.execute(stmt).first() is not None

    def insert(self, plan: IncentivePlan) -> IncentivePlan:
        stored = plan.model_copy(update={"id": str(uuid.uuid4())})
        row = IncentiveSchemeRow(id=stored.id)
        self._fill(row, stored)
        with self._session() as db:
            db.add(row)
        return stored

    def update_fields(self, id: str, partial: Dict[str, Any]) -> IncentivePlan:
        with self._session() as db:
            row = db.get(IncentiveSchemeRow, id)
            if row is None:
                raise NotFound("Incentive scheme not found", {"id": id})
            updated = apply_partial(self._to_plan(row), partial)
            self._fill(row, updated)
        return updated

    def delete(self, id: str) -> bool:
        with self._session() as db:
            row = db.get(IncentiveSchemeRow, id)
            if row is None:
                return False
            db.delete(row)
        return True


# =========================
# KPI field catalog
# =========================
class SqlKpiFieldStore:
    def __init__(self, session_factory: sessionmaker):
        self._factory = session_factory

    def _session(self):
        return _unit_of_work(self._factory, "KPI name already exists in this section")

    @staticmethod
    def _to_mapping(row: KpiFieldMappingRow) -> KPIFieldMapping:
        return KPIFieldMapping(
            id=row.id,
            kpi_name=row.kpi_name,
            description=row.description or "",
            section=KpiSection(row.section),
            source_type=row.source_type or "",
            source_field=row.source_field,
            data_type=row.data_type or "String",
            api=row.api,
        )

    @staticmethod
    def _fill(row: KpiFieldMappingRow, mapping: KPIFieldMappingIn) -> None:
        row.kpi_name = mapping.kpi_name
        row.description = mapping.description
        row.section = mapping.section.value
        row.source_type = mapping.source_type
        row.source_field = mapping.source_field
        row.data_type = mapping.data_type
        row.api = mapping.api

    def list_fields(self, section: Optional[KpiSection] = None) -> List[KPIFieldMapping]:
        stmt = select(KpiFieldMappingRow)
        if section is not None:
            stmt = stmt.where(KpiFieldMappingRow.section == section.value)
        stmt = stmt.order_by(KpiFieldMappingRow.section, KpiFieldMappingRow.kpi_name)
        with self._session() as db:
            return [self._to_mapping(r) for r in db.execute(stmt).scalars().all()]

    def get(self, id: str) -> KPIFieldMapping:
        with self._session() as db:
            row = db.get(KpiFieldMappingRow, id)
            if row is None:
                raise NotFound("KPI field mapping not found", {"id": id})
            return self._to_mapping(row)

    def insert(self, mapping: KPIFieldMappingIn) -> KPIFieldMapping:
        row = KpiFieldMappingRow(id=str(uuid.uuid4()))
        self._fill(row, mapping)
        with self._session() as db:
            db.add(row)
        return KPIFieldMapping(id=row.id, **mapping.model_dump())

    def update(self, id: str, mapping: KPIFieldMappingIn) -> KPIFieldMapping:
        with self._session() as db:
            row = db.get(KpiFieldMappingRow, id)
            if row is None:
                raise NotFound("KPI field mapping not found", {"id": id})
            self._fill(row, mapping)
        return KPIFieldMapping(id=id, **mapping.model_dump())

    def delete(self, id: str) -> bool:
        with self._session() as db:
            row = db.get(KpiFieldMappingRow, id)
            if row is None:
                return False
            db.delete(row)
        return True
