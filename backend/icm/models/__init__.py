# backend/icm/models/__init__.py
from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


# =========================
# Incentive schemes (one row per version)
# =========================
class IncentiveSchemeRow(Base):
    __tablename__ = "incentive_schemes"

    id = Column(String(36), primary_key=True)
    scheme_id = Column(String(64), nullable=False)
    version = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default="DRAFT")
    name = Column(String(255), nullable=False)

    # naive UTC; the document keeps the tz-aware ISO values
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    # full scheme body (camelCase wire format, metadata included)
    document = Column(JSON, nullable=False)

    __table_args__ = (
        # closes the concurrent "max(version) + 1" race: the loser gets an IntegrityError
        UniqueConstraint("scheme_id", "version", name="uix_scheme_version"),
        Index("ix_incentive_schemes_scheme_id", "scheme_id"),
        Index("ix_incentive_schemes_updated_at", "updated_at"),
    )


# =========================
# KPI field catalog
# =========================
class KpiFieldMappingRow(Base):
    __tablename__ = "kpi_field_mappings"

    id = Column(String(36), primary_key=True)
    kpi_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    section = Column(String(16), nullable=False)
    source_type = Column(String(64), nullable=False, default="")
    source_field = Column(String(255), nullable=False)
    data_type = Column(String(32), nullable=False, default="String")
    api = Column(String(255), nullable=True)

    __table_args__ = (
        UniqueConstraint("section", "kpi_name", name="uix_kpi_section_name"),
        Index("ix_kpi_field_mappings_section", "section"),
    )
