"""custom fields, choices and polymorphic values
Revision ID: 0002_custom_fields
Revises: 0001_init
Create Date: 2026-10-15
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0002_custom_fields"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "custom_fields",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("label", sa.String(length=100), nullable=False),
        sa.Column("field_type", sa.String(length=20), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("responsible", sa.String(length=200), nullable=False, server_default="system"),
    )
    op.create_index("ix_custom_fields_client_id", "custom_fields", ["client_id"])

    op.create_table(
        "field_choices",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("field_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("choice_text", sa.String(length=100), nullable=False),
        sa.Column("choice_order", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_field_choices_field_id", "field_choices", ["field_id"])

    op.create_table(
        "custom_field_values",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("patient_entry_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("field_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("value_type", sa.String(length=20), nullable=False),
        sa.Column("choice_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("text_value", sa.String(length=1000), nullable=True),
        sa.Column("number_value", sa.Float(), nullable=True),
        sa.Column("checkbox_value", sa.Boolean(), nullable=True),
        sa.UniqueConstraint("patient_entry_id", "field_id", name="uq_custom_field_values_entry_field"),
    )
    op.create_index("ix_custom_field_values_patient_entry_id", "custom_field_values", ["patient_entry_id"])
    op.create_index("ix_custom_field_values_field_id", "custom_field_values", ["field_id"])


def downgrade():
    op.drop_index("ix_custom_field_values_field_id", table_name="custom_field_values")
    op.drop_index("ix_custom_field_values_patient_entry_id", table_name="custom_field_values")
    op.drop_table("custom_field_values")
    op.drop_index("ix_field_choices_field_id", table_name="field_choices")
    op.drop_table("field_choices")
    op.drop_index("ix_custom_fields_client_id", table_name="custom_fields")
    op.drop_table("custom_fields")
