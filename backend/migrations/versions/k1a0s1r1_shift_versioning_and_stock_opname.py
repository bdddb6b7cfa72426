"""Shift version column for close compare-and-set; stock opname documents

Revision ID: k1a0s1r1
Revises: k1a0s1r0
Create Date: 2026-10-18 14:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "k1a0s1r1"
down_revision = "k1a0s1r0"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("shift_sessions", schema=None) as batch_op:
        batch_op.add_column(sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True))
        batch_op.add_column(sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"))

    op.create_table(
        "stock_opnames",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.String(length=64), nullable=False),
        sa.Column("opname_number", sa.String(length=32), nullable=False),
        sa.Column("warehouse_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("opname_date", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("created_by", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_by", sa.String(length=64), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(length=64), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("company_id", "opname_number", name="uq_stock_opnames_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_opnames", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_stock_opnames_company_id"), ["company_id"], unique=False)
        batch_op.create_index("ix_stock_opnames_company_status", ["company_id", "status"], unique=False)

    op.create_table(
        "stock_opname_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("opname_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("system_stock", sa.Integer(), nullable=False),
        sa.Column("physical_stock", sa.Integer(), nullable=True),
        sa.Column("variance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("counted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("counted_by", sa.String(length=64), nullable=True),
        sa.Column("movement_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["opname_id"], ["stock_opnames.id"]),
        sa.ForeignKeyConstraint(["movement_id"], ["stock_movements.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("opname_id", "product_id", name="uq_stock_opname_items_product"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_opname_items", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_stock_opname_items_opname_id"), ["opname_id"], unique=False)


def downgrade():
    with op.batch_alter_table("stock_opname_items", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_stock_opname_items_opname_id"))
    op.drop_table("stock_opname_items")

    with op.batch_alter_table("stock_opnames", schema=None) as batch_op:
        batch_op.drop_index("ix_stock_opnames_company_status")
        batch_op.drop_index(batch_op.f("ix_stock_opnames_company_id"))
    op.drop_table("stock_opnames")

    with op.batch_alter_table("shift_sessions", schema=None) as batch_op:
        batch_op.drop_column("version_id")
        batch_op.drop_column("last_activity_at")
