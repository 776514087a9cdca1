"""create import_status and import_batches tables

Revision ID: 20261017_0002
Revises: 20261017_0001
Create Date: 2026-10-17 09:10:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261017_0002"
down_revision = "20261017_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "import_status",
        sa.Column("import_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("site_id", sa.Integer(), nullable=False),
        sa.Column("organization_id", sa.String(length=64), nullable=False),
        sa.Column("platform", sa.String(length=32), nullable=True, comment="Fixed once set"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("imported_events", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("file_name", sa.String(length=512), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="import_status_enum",
        ),
        sa.CheckConstraint("imported_events >= 0", name="ck_import_status_imported_events_non_negative"),
        sa.ForeignKeyConstraint(["site_id"], ["sites.site_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("import_id"),
    )
    op.create_index("ix_import_status_site_id", "import_status", ["site_id"], unique=False)
    op.create_index(
        "ix_import_status_organization_status",
        "import_status",
        ["organization_id", "status"],
        unique=False,
    )
    op.create_index("ix_import_status_updated_at", "import_status", ["updated_at"], unique=False)

    op.create_table(
        "import_batches",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("import_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("batch_index", sa.Integer(), nullable=False),
        sa.Column("imported_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["import_id"], ["import_status.import_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("import_id", "batch_index", name="uq_import_batches_import_batch"),
    )


def downgrade() -> None:
    op.drop_table("import_batches")
    op.drop_index("ix_import_status_updated_at", table_name="import_status")
    op.drop_index("ix_import_status_organization_status", table_name="import_status")
    op.drop_index("ix_import_status_site_id", table_name="import_status")
    op.drop_table("import_status")
