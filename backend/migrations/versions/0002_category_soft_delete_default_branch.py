"""Soft delete for categories; one default branch per organization

Revision ID: 0002_category_default_branch
Revises: 0001_initial
Create Date: 2026-10-19

1. product_categories.deleted_at (+ index on deleted rows)
2. Partial unique index: at most one is_default branch per organization
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0002_category_default_branch"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("product_categories", schema=None) as batch_op:
        batch_op.add_column(sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True))

    op.create_index(
        "ix_categories_deleted_at",
        "product_categories",
        ["deleted_at"],
        unique=False,
        postgresql_where=sa.text("deleted_at IS NOT NULL"),
        sqlite_where=sa.text("deleted_at IS NOT NULL"),
    )

    op.create_index(
        "uq_branches_org_default",
        "branches",
        ["organization_id"],
        unique=True,
        postgresql_where=sa.text("is_default"),
        sqlite_where=sa.text("is_default"),
    )


def downgrade():
    op.drop_index("uq_branches_org_default", table_name="branches")
    op.drop_index("ix_categories_deleted_at", table_name="product_categories")

    with op.batch_alter_table("product_categories", schema=None) as batch_op:
        batch_op.drop_column("deleted_at")
