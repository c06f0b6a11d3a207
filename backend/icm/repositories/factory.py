# backend/icm/repositories/factory.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from ..core.config import Settings, make_engine, make_session_factory
from ..core.errors import UpstreamUnavailable
from ..core.logging import get_logger
from ..models import Base
from .memory import InMemoryKpiFieldStore, InMemorySchemeStore
from .sql import SqlKpiFieldStore, SqlSchemeStore

log = get_logger()


@dataclass
class Stores:
    schemes: Union[SqlSchemeStore, InMemorySchemeStore]
    kpi_fields: Union[SqlKpiFieldStore, InMemoryKpiFieldStore]
    engine: Optional[Engine] = None

    @property
    def fallback(self) -> bool:
        return bool(getattr(self.schemes, "fallback", False))


def _memory(fallback: bool) -> Stores:
    return Stores(schemes=InMemorySchemeStore(fallback=fallback), kpi_fields=InMemoryKpiFieldStore())


def _sql(engine: Engine) -> Stores:
    # alembic owns the schema in deployed databases; create_all only fills in a fresh one
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    Base.metadata.create_all(bind=engine)
    factory = make_session_factory(engine)
    return Stores(schemes=SqlSchemeStore(factory), kpi_fields=SqlKpiFieldStore(factory), engine=engine)


def build_stores(settings: Settings, engine: Optional[Engine] = None) -> Stores:
    """
    Select the persistence collaborators for STORAGE_BACKEND:
      sql    -> database only; unreachable database is an UpstreamUnavailable
      memory -> in-memory stores with full version history
      auto   -> database, else the in-memory store flagged as fallback
    """
    backend = settings.STORAGE_BACKEND
    if backend == "memory":
        log.info("Storage backend: memory")
        return _memory(fallback=False)

    engine = engine or make_engine(settings.DATABASE_URL)
    try:
        stores = _sql(engine)
    except OperationalError as e:
        if backend == "sql":
            raise UpstreamUnavailable("Database unavailable", {"reason": str(e.orig)})
        log.warning("Database unreachable (%s); using in-memory fallback store", e.orig)
        return _memory(fallback=True)

    log.info("Storage backend: sql (%s)", engine.url.render_as_string(hide_password=True))
    return stores
