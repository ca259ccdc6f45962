"""Initial CollectionMarker cache and housekeeping tables

Revision ID: 3f9c1a7d52e0
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "3f9c1a7d52e0"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "cache_entries",
        sa.Column("key", sa.String, primary_key=True),
        sa.Column("payload", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("created_at", sa.Float, nullable=False),
        sa.Column("ttl", sa.Float, nullable=False),
    )
    op.create_table(
        "house_keeping",
        sa.Column("key", sa.String, primary_key=True),
        sa.Column("value", sa.String, nullable=True),
    )


def downgrade() -> None:
    op.drop_table("house_keeping")
    op.drop_table("cache_entries")
