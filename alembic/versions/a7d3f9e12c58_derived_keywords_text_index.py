"""derived keywords column and its text index

Replaces the title/body text index: posts keep a single text index, over
derived_keywords. Existing rows start with an empty value; run
`python -m blog.cli reindex` after upgrading to fill it in.

Revision ID: a7d3f9e12c58
Revises: 5b1e0c7d2a41
Create Date: 2026-09-16 14:02:00.000000

"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "a7d3f9e12c58"
down_revision = "5b1e0c7d2a41"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "posts",
        sa.Column("derived_keywords", sa.Text(), nullable=False, server_default=""),
    )
    op.execute("DROP INDEX IF EXISTS ix_posts_title_body_fts")
    op.execute(
        "CREATE INDEX ix_posts_derived_keywords_fts ON posts "
        "USING gin (to_tsvector('simple'::regconfig, derived_keywords))"
    )


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS ix_posts_derived_keywords_fts")
    op.execute(
        "CREATE INDEX ix_posts_title_body_fts ON posts "
        "USING gin (to_tsvector('simple'::regconfig, title || ' ' || body))"
    )
    op.drop_column("posts", "derived_keywords")
