"""incentive schemes and kpi field mappings

Revision ID: 20261017_incentive_schemes
Revises:
Create Date: 2026-10-17 09:12:44.518203
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261017_incentive_schemes"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)

    # the app may already have created the tables on a fresh database
    if not insp.has_table("incentive_schemes"):
        op.create_table(
            "incentive_schemes",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column("scheme_id", sa.String(64), nullable=False),
            sa.Column("version", sa.Integer, nullable=False),
            sa.Column("status", sa.String(16), nullable=False, server_default="DRAFT"),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("created_at", sa.DateTime, nullable=False),
            sa.Column("updated_at", sa.DateTime, nullable=False),
            sa.Column("document", sa.JSON, nullable=False),
            sa.UniqueConstraint("scheme_id", "version", name="uix_scheme_version"),
        )
        op.create_index("ix_incentive_schemes_scheme_id", "incentive_schemes", ["scheme_id"], unique=False)
        op.create_index("ix_incentive_schemes_updated_at", "incentive_schemes", ["updated_at"], unique=False)

    if not insp.has_table("kpi_field_mappings"):
        op.create_table(
            "kpi_field_mappings",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column("kpi_name", sa.String(255), nullable=False),
            sa.Column("description", sa.Text, nullable=False, server_default=""),
            sa.Column("section", sa.String(16), nullable=False),
            sa.Column("source_type", sa.String(64), nullable=False, server_default=""),
            sa.Column("source_field", sa.String(255), nullable=False),
            sa.Column("data_type", sa.String(32), nullable=False, server_default="String"),
            sa.Column("api", sa.String(255), nullable=True),
            sa.UniqueConstraint("section", "kpi_name", name="uix_kpi_section_name"),
        )
        op.create_index("ix_kpi_field_mappings_section", "kpi_field_mappings", ["section"], unique=False)


def downgrade() -> None:
    op.drop_table("kpi_field_mappings")
    op.drop_table("incentive_schemes")
