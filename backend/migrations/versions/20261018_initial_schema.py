"""Initial schema: stores, products, inventory, sales and debts

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False)


def upgrade():
    op.create_table(
        "stores",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        _timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stores", schema=None) as batch_op:
        batch_op.create_index("ix_stores_code", ["code"], unique=True)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("selling_price_cents", sa.Integer(), nullable=True),
        sa.Column("purchase_price_cents", sa.Integer(), nullable=True),
        sa.Column("purchase_qty", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("supplier_name", sa.String(255), nullable=True),
        sa.Column("device_codes", sa.Text(), nullable=True),
        sa.Column("device_tags", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        _timestamps(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_products_store_name", ["store_id", "name"], unique=False)

    op.create_table(
        "inventory_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("available_qty", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("quantity_sold", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "store_id", name="uq_inventory_product_store"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_records", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_records_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_inventory_records_store_id", ["store_id"], unique=False)

    op.create_table(
        "sale_groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_method", sa.String(32), nullable=False),
        _timestamps(),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sale_groups", schema=None) as batch_op:
        batch_op.create_index("ix_sale_groups_store_id", ["store_id"], unique=False)

    op.create_table(
        "sale_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("sale_group_id", sa.Integer(), nullable=True),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("device_codes", sa.Text(), nullable=True),
        sa.Column("device_tags", sa.Text(), nullable=True),
        sa.Column("payment_method", sa.String(32), nullable=False),
        sa.Column("sold_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["sale_group_id"], ["sale_groups.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sale_lines", schema=None) as batch_op:
        batch_op.create_index("ix_sale_lines_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_sale_lines_sale_group_id", ["sale_group_id"], unique=False)
        batch_op.create_index("ix_sale_lines_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_sale_lines_store_sold", ["store_id", "sold_at"], unique=False)

    op.create_table(
        "debt_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("phone_number", sa.String(64), nullable=True),
        sa.Column("supplier", sa.String(255), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("owed_cents", sa.Integer(), nullable=False),
        sa.Column("deposited_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("remaining_balance_cents", sa.Integer(), nullable=False),
        sa.Column("device_codes", sa.Text(), nullable=False),
        sa.Column("device_tags", sa.Text(), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        _timestamps(),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("debt_entries", schema=None) as batch_op:
        batch_op.create_index("ix_debt_entries_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_debt_entries_product_id", ["product_id"], unique=False)


def downgrade():
    op.drop_table("debt_entries")
    op.drop_table("sale_lines")
    op.drop_table("sale_groups")
    op.drop_table("inventory_records")
    op.drop_table("products")
    op.drop_table("stores")
