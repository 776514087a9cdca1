"""create events and session replay tables

Revision ID: 20261017_0003
Revises: 20261017_0002
Create Date: 2026-10-17 09:20:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261017_0003"
down_revision = "20261017_0002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("site_id", sa.Integer(), nullable=False),
        sa.Column("import_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("event_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("session_id", sa.String(length=128), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("hostname", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("pathname", sa.Text(), nullable=False, server_default=""),
        sa.Column("querystring", sa.Text(), nullable=False, server_default=""),
        sa.Column("page_title", sa.Text(), nullable=False, server_default=""),
        sa.Column("referrer", sa.Text(), nullable=False, server_default=""),
        sa.Column("channel", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("browser", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("operating_system", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("operating_system_version", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("device_type", sa.String(length=32), nullable=False, server_default=""),
        sa.Column("screen_width", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("screen_height", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("language", sa.String(length=35), nullable=False, server_default=""),
        sa.Column("country", sa.String(length=8), nullable=False, server_default=""),
        sa.Column("region", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("city", sa.String(length=255), nullable=False, server_default=""),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_events_site_id_timestamp", "events", ["site_id", "timestamp"], unique=False)
    op.create_index("ix_events_import_id", "events", ["import_id"], unique=False)
    op.create_index("ix_events_session_id", "events", ["session_id"], unique=False)

    op.create_table(
        "session_replay_metadata",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("site_id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.String(length=128), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("event_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("site_id", "session_id", name="uq_session_replay_metadata_site_session"),
    )
    op.create_table(
        "session_replay_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("site_id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.String(length=128), nullable=False),
        sa.Column("sequence_number", sa.Integer(), nullable=False),
        sa.Column("event_data", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_session_replay_events_site_session",
        "session_replay_events",
        ["site_id", "session_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_session_replay_events_site_session", table_name="session_replay_events")
    op.drop_table("session_replay_events")
    op.drop_table("session_replay_metadata")
    op.drop_index("ix_events_session_id", table_name="events")
    op.drop_index("ix_events_import_id", table_name="events")
    op.drop_index("ix_events_site_id_timestamp", table_name="events")
    op.drop_table("events")
