"""create words table

Revision ID: 001
Revises:
Create Date: 2026-10-19

Shared word entries as defined in words_wall/models/database_models.py.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── Enum types ────────────────────────────────────────────────────────
    processing_status = sa.Enum("completed", "in-progress", "failed", name="processing_status")
    processing_status.create(op.get_bind(), checkfirst=True)

    # ── words ─────────────────────────────────────────────────────────────
    op.create_table(
        "words",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column("word", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("meaning", sa.Text, nullable=False, server_default=""),
        sa.Column("usage", sa.Text, nullable=False, server_default=""),
        sa.Column("chinese_meaning", sa.String(255), nullable=False, server_default=""),
        sa.Column("scenarios", sa.JSON, nullable=False, server_default=sa.text("'[]'")),
        sa.Column("pronunciation", sa.String(255), nullable=True),
        sa.Column("rating", sa.Integer, nullable=False, server_default="5"),
        sa.Column("is_processing", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "processing_status",
            sa.Enum("completed", "in-progress", "failed", name="processing_status", create_type=False),
            nullable=False,
            server_default="completed",
            index=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("words")
    sa.Enum(name="processing_status").drop(op.get_bind(), checkfirst=True)
