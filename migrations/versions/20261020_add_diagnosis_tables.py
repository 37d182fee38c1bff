"""add diseases and diagnoses

Revision ID: 20261020_add_diagnosis_tables
Revises: 20261019_create_core_tables
Create Date: 2026-10-20 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261020_add_diagnosis_tables"
down_revision = "20261019_create_core_tables"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "diseases",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("symptoms", sa.JSON(), nullable=False),
        sa.Column("treatment", sa.Text()),
        sa.Column("affected_crops", sa.JSON(), nullable=False),
        sa.UniqueConstraint("name", name="diseases_name_key"),
    )
    op.create_table(
        "diagnoses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("disease_id", sa.Integer(), sa.ForeignKey("diseases.id")),
        sa.Column("image_key", sa.String(), nullable=False),
        sa.Column("confidence", sa.Integer()),
        sa.Column("notes", sa.Text()),
        sa.Column("is_shared", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_diagnoses_user_id", "diagnoses", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_diagnoses_user_id", table_name="diagnoses")
    op.drop_table("diagnoses")
    op.drop_table("diseases")
