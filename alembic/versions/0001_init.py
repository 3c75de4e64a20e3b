"""init
Revision ID: 0001_init
Revises:
Create Date: 2026-10-15
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _taxonomy_table(name: str):
    op.create_table(
        name,
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
    )


def upgrade():
    _taxonomy_table("clients")
    _taxonomy_table("activities")
    _taxonomy_table("outcomes")

    op.create_table(
        "service_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("user_id", sa.String(length=80), nullable=False),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("activity_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("service_date", sa.Date(), nullable=False),
        sa.Column("patient_count", sa.Integer(), nullable=False),
    )
    op.create_index("ix_service_logs_user_id", "service_logs", ["user_id"])
    op.create_index("ix_service_logs_client_id", "service_logs", ["client_id"])
    op.create_index("ix_service_logs_activity_id", "service_logs", ["activity_id"])
    op.create_index("ix_service_logs_service_date", "service_logs", ["service_date"])

    op.create_table(
        "patient_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("service_log_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("appointment_type", sa.String(length=20), nullable=False),
        sa.Column("outcome_id", postgresql.UUID(as_uuid=True), nullable=True),
    )
    op.create_index("ix_patient_entries_service_log_id", "patient_entries", ["service_log_id"])
    op.create_index("ix_patient_entries_outcome_id", "patient_entries", ["outcome_id"])


def downgrade():
    op.drop_index("ix_patient_entries_outcome_id", table_name="patient_entries")
    op.drop_index("ix_patient_entries_service_log_id", table_name="patient_entries")
    op.drop_table("patient_entries")
    op.drop_index("ix_service_logs_service_date", table_name="service_logs")
    op.drop_index("ix_service_logs_activity_id", table_name="service_logs")
    op.drop_index("ix_service_logs_client_id", table_name="service_logs")
    op.drop_index("ix_service_logs_user_id", table_name="service_logs")
    op.drop_table("service_logs")
    op.drop_table("outcomes")
    op.drop_table("activities")
    op.drop_table("clients")
