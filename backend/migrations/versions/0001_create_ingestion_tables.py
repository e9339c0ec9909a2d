"""Create namespace, channel, profile and file record tables."""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql as pg

# revision identifiers, used by Alembic.
revision = "0001_create_ingestion_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table(
        "namespace_mappings",
        sa.Column("id", pg.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("owner_key", sa.String(length=255), nullable=False),
        sa.Column("namespace", sa.String(length=63), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("namespace", name="uq_namespace_mappings_namespace"),
    )
    op.create_index("ix_namespace_mappings_owner_key", "namespace_mappings", ["owner_key"], unique=True)

    op.create_table(
        "channel_user_mappings",
        sa.Column("id", pg.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("channel_identifier", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index(
        "ix_channel_user_mappings_channel_identifier",
        "channel_user_mappings",
        ["channel_identifier"],
        unique=True,
    )
    op.create_index("ix_channel_user_mappings_user_id", "channel_user_mappings", ["user_id"])

    op.create_table(
        "user_profiles",
        sa.Column("user_id", sa.String(length=255), primary_key=True),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("whatsapp_number", sa.String(length=64), nullable=True),
        sa.Column("phone_number", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_user_profiles_whatsapp_number", "user_profiles", ["whatsapp_number"])
    op.create_index("ix_user_profiles_phone_number", "user_profiles", ["phone_number"])

    op.create_table(
        "file_records",
        sa.Column("id", pg.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=512), nullable=False),
        sa.Column("size", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("file_type", sa.String(length=16), nullable=False, server_default="file"),
        sa.Column("content_type", sa.String(length=255), nullable=False, server_default="application/octet-stream"),
        sa.Column("namespace", sa.String(length=63), nullable=False),
        sa.Column("object_key", sa.String(length=1024), nullable=False),
        sa.Column("content_hash", sa.String(length=64), nullable=False),
        sa.Column("extraction_state", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("extracted_text", sa.Text(), nullable=True),
        sa.Column("extraction_method", sa.String(length=64), nullable=True),
        sa.Column("metadata", pg.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("namespace", "object_key", name="uq_file_records_namespace_object_key"),
    )
    op.create_index("ix_file_records_user_id", "file_records", ["user_id"])
    op.create_index("ix_file_records_namespace", "file_records", ["namespace"])
    op.create_index("ix_file_records_content_hash", "file_records", ["content_hash"])
    op.create_index(
        "ix_file_records_user_created",
        "file_records",
        ["user_id", sa.text("created_at DESC")],
    )


def downgrade() -> None:
    op.drop_index("ix_file_records_user_created", table_name="file_records")
    op.drop_index("ix_file_records_content_hash", table_name="file_records")
    op.drop_index("ix_file_records_namespace", table_name="file_records")
    op.drop_index("ix_file_records_user_id", table_name="file_records")
    op.drop_table("file_records")

    op.drop_index("ix_user_profiles_phone_number", table_name="user_profiles")
    op.drop_index("ix_user_profiles_whatsapp_number", table_name="user_profiles")
    op.drop_table("user_profiles")

    op.drop_index("ix_channel_user_mappings_user_id", table_name="channel_user_mappings")
    op.drop_index("ix_channel_user_mappings_channel_identifier", table_name="channel_user_mappings")
    op.drop_table("channel_user_mappings")

    op.drop_index("ix_namespace_mappings_owner_key", table_name="namespace_mappings")
    op.drop_table("namespace_mappings")
