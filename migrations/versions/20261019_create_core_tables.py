"""create users, conversations and messages

Revision ID: 20261019_create_core_tables
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_create_core_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("longitude", sa.Float()),
        sa.Column("latitude", sa.Float()),
        sa.Column("crops", sa.JSON(), nullable=False),
        sa.Column("expertise", sa.String()),
        sa.Column("equipment", sa.JSON(), nullable=False),
        sa.Column("experience", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("email", name="users_email_key"),
        sa.CheckConstraint(
            "longitude IS NULL OR (longitude >= -180 AND longitude <= 180)",
            name="users_longitude_range",
        ),
        sa.CheckConstraint(
            "latitude IS NULL OR (latitude >= -90 AND latitude <= 90)",
            name="users_latitude_range",
        ),
        sa.CheckConstraint("experience >= 0", name="users_experience_non_negative"),
    )
    op.create_index("ix_users_lat_lon", "users", ["latitude", "longitude"])
    op.create_index("ix_users_expertise", "users", ["expertise"])

    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "participant_low_id",
            sa.Integer(),
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column(
            "participant_high_id",
            sa.Integer(),
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column("last_message_id", sa.Integer()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "participant_low_id",
            "participant_high_id",
            name="conversations_participants_key",
        ),
        sa.CheckConstraint(
            "participant_low_id < participant_high_id",
            name="conversations_participants_ordered",
        ),
    )
    op.create_index(
        "ix_conversations_participant_low_id", "conversations", ["participant_low_id"]
    )
    op.create_index(
        "ix_conversations_participant_high_id", "conversations", ["participant_high_id"]
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "conversation_id",
            sa.Integer(),
            sa.ForeignKey("conversations.id"),
            nullable=False,
        ),
        sa.Column("sender_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_messages_conversation_created",
        "messages",
        ["conversation_id", "created_at", "id"],
    )


def downgrade() -> None:
    op.drop_index("ix_messages_conversation_created", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_conversations_participant_high_id", table_name="conversations")
    op.drop_index("ix_conversations_participant_low_id", table_name="conversations")
    op.drop_table("conversations")
    op.drop_index("ix_users_expertise", table_name="users")
    op.drop_index("ix_users_lat_lon", table_name="users")
    op.drop_table("users")
