"""Add entity notes, notes config and notes permission grants.

Revision ID: 0001_entity_notes
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_entity_notes"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("is_admin", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("token_version", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("role", sa.String(50), nullable=False),
        sa.PrimaryKeyConstraint("user_id", "role"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "entity_notes_configs",
        sa.Column("entity_type", sa.String(63), nullable=False),
        sa.Column("enabled", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("entity_type"),
    )

    op.create_table(
        "notes_permission_grants",
        sa.Column("id", sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column("resource", sa.String(100), nullable=False),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("resource", "action", "role", name="uq_notes_grant"),
    )
    op.create_index(
        "idx_notes_grants_lookup", "notes_permission_grants", ["resource", "action"]
    )

    op.create_table(
        "entity_notes",
        sa.Column("id", sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column("entity_type", sa.String(63), nullable=False),
        sa.Column("entity_id", sa.Text(), nullable=False),
        sa.Column("author_id", sa.Uuid(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("note_type", sa.String(20), server_default=sa.text("'human'"), nullable=False),
        sa.Column("is_internal", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("trim(content) != ''", name="content_not_empty"),
        sa.CheckConstraint("char_length(content) <= 10000", name="content_max_length"),
        sa.CheckConstraint("note_type IN ('human', 'system')", name="valid_note_type"),
    )

    # Indexes
    op.create_index("idx_entity_notes_entity", "entity_notes", ["entity_type", "entity_id"])
    op.create_index("idx_entity_notes_author", "entity_notes", ["author_id"])
    op.create_index("idx_entity_notes_created", "entity_notes", ["created_at"])
    op.create_index(
        "idx_entity_notes_active",
        "entity_notes",
        ["entity_type", "entity_id"],
        postgresql_where=sa.text("deleted_at IS NULL"),
    )


def downgrade() -> None:
    op.drop_index("idx_entity_notes_active", table_name="entity_notes")
    op.drop_index("idx_entity_notes_created", table_name="entity_notes")
    op.drop_index("idx_entity_notes_author", table_name="entity_notes")
    op.drop_index("idx_entity_notes_entity", table_name="entity_notes")
    op.drop_table("entity_notes")
    op.drop_index("idx_notes_grants_lookup", table_name="notes_permission_grants")
    op.drop_table("notes_permission_grants")
    op.drop_table("entity_notes_configs")
    op.drop_table("user_roles")
    op.drop_table("users")
