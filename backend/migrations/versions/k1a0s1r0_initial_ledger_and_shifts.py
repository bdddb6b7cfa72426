"""Initial schema: stock ledger, POS shifts and POS transactions

Revision ID: k1a0s1r0
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "k1a0s1r0"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "stock_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.String(length=64), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("warehouse_id", sa.String(length=64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint("quantity >= 0", name="ck_stock_records_quantity_nonneg"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("company_id", "product_id", "warehouse_id", name="uq_stock_records_key"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_records", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_stock_records_company_id"), ["company_id"], unique=False)
        batch_op.create_index("ix_stock_records_company_warehouse", ["company_id", "warehouse_id"], unique=False)

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.String(length=64), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("warehouse_id", sa.String(length=64), nullable=False),
        sa.Column("movement_type", sa.String(length=16), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("quantity_after", sa.Integer(), nullable=False),
        sa.Column("reference_type", sa.String(length=32), nullable=True),
        sa.Column("reference_id", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_movements", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_stock_movements_company_id"), ["company_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_stock_movements_movement_type"), ["movement_type"], unique=False)
        batch_op.create_index(batch_op.f("ix_stock_movements_created_at"), ["created_at"], unique=False)
        batch_op.create_index("ix_stock_movements_key", ["company_id", "product_id", "warehouse_id"], unique=False)
        batch_op.create_index("ix_stock_movements_reference", ["reference_type", "reference_id"], unique=False)

    op.create_table(
        "shift_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.String(length=64), nullable=False),
        sa.Column("cashier_id", sa.String(length=64), nullable=False),
        sa.Column("register_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="OPEN"),
        sa.Column("opening_cash", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("closing_cash", sa.BigInteger(), nullable=True),
        sa.Column("actual_cash", sa.BigInteger(), nullable=True),
        sa.Column("variance", sa.BigInteger(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_by", sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("shift_sessions", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_shift_sessions_company_id"), ["company_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_shift_sessions_cashier_id"), ["cashier_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_shift_sessions_status"), ["status"], unique=False)
        batch_op.create_index(batch_op.f("ix_shift_sessions_opened_at"), ["opened_at"], unique=False)
        batch_op.create_index("ix_shift_sessions_company_opened", ["company_id", "opened_at"], unique=False)

    # One OPEN shift per (company, cashier, register)
    op.create_index(
        "uq_shift_sessions_open_scope",
        "shift_sessions",
        ["company_id", "cashier_id", "register_id"],
        unique=True,
        sqlite_where=sa.text("status = 'OPEN'"),
        postgresql_where=sa.text("status = 'OPEN'"),
    )

    op.create_table(
        "pos_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.String(length=64), nullable=False),
        sa.Column("transaction_number", sa.String(length=32), nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=False),
        sa.Column("cashier_id", sa.String(length=64), nullable=False),
        sa.Column("payment_method", sa.String(length=16), nullable=False),
        sa.Column("total", sa.BigInteger(), nullable=False),
        sa.Column("payment_status", sa.String(length=16), nullable=False, server_default="paid"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("transaction_date", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["shift_id"], ["shift_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("company_id", "transaction_number", name="uq_pos_transactions_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("pos_transactions", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_pos_transactions_company_id"), ["company_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_pos_transactions_shift_id"), ["shift_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_pos_transactions_transaction_date"), ["transaction_date"], unique=False)
        batch_op.create_index("ix_pos_transactions_shift_status", ["shift_id", "payment_status"], unique=False)


def downgrade():
    with op.batch_alter_table("pos_transactions", schema=None) as batch_op:
        batch_op.drop_index("ix_pos_transactions_shift_status")
        batch_op.drop_index(batch_op.f("ix_pos_transactions_transaction_date"))
        batch_op.drop_index(batch_op.f("ix_pos_transactions_shift_id"))
        batch_op.drop_index(batch_op.f("ix_pos_transactions_company_id"))
    op.drop_table("pos_transactions")

    op.drop_index("uq_shift_sessions_open_scope", table_name="shift_sessions")
    with op.batch_alter_table("shift_sessions", schema=None) as batch_op:
        batch_op.drop_index("ix_shift_sessions_company_opened")
        batch_op.drop_index(batch_op.f("ix_shift_sessions_opened_at"))
        batch_op.drop_index(batch_op.f("ix_shift_sessions_status"))
        batch_op.drop_index(batch_op.f("ix_shift_sessions_cashier_id"))
        batch_op.drop_index(batch_op.f("ix_shift_sessions_company_id"))
    op.drop_table("shift_sessions")

    with op.batch_alter_table("stock_movements", schema=None) as batch_op:
        batch_op.drop_index("ix_stock_movements_reference")
        batch_op.drop_index("ix_stock_movements_key")
        batch_op.drop_index(batch_op.f("ix_stock_movements_created_at"))
        batch_op.drop_index(batch_op.f("ix_stock_movements_movement_type"))
        batch_op.drop_index(batch_op.f("ix_stock_movements_company_id"))
    op.drop_table("stock_movements")

    with op.batch_alter_table("stock_records", schema=None) as batch_op:
        batch_op.drop_index("ix_stock_records_company_warehouse")
        batch_op.drop_index(batch_op.f("ix_stock_records_company_id"))
    op.drop_table("stock_records")
