"""Create temp_previews table for scraped listing previews.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "temp_previews",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("source_url", sa.Text, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="queued"),
        sa.Column("error_message", sa.Text),
        sa.Column("default_raw_html", sa.Text),
        sa.Column("default_markdown", sa.Text),
        sa.Column("gallery_raw_html", sa.Text),
        sa.Column("gallery_markdown", sa.Text),
        sa.Column("gallery_image_urls", postgresql.JSONB),
        sa.Column("scraped_data", postgresql.JSONB),
        sa.Column("source_domain", sa.String(100)),
        sa.Column("generated_config", postgresql.JSONB),
        sa.Column("unified_json", postgresql.JSONB),
        sa.Column("image_analysis", postgresql.JSONB),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column(
            "expires_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now() + interval '24 hours'"),
        ),
    )
    op.create_index("ix_temp_previews_status", "temp_previews", ["status"])
    op.create_index("ix_temp_previews_expires_at", "temp_previews", ["expires_at"])


def downgrade() -> None:
    op.drop_index("ix_temp_previews_expires_at", table_name="temp_previews")
    op.drop_index("ix_temp_previews_status", table_name="temp_previews")
    op.drop_table("temp_previews")
