"""Initial ERP schema: inventory, manufacturing, procurement, sales, financials

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

NOW = sa.text("(CURRENT_TIMESTAMP)")


def upgrade():
    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(120), nullable=True),
        sa.Column("unit_of_measure", sa.String(16), nullable=False, server_default="units"),
        sa.Column("purchase_cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("selling_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("current_stock", sa.Numeric(14, 3), nullable=False, server_default=sa.text("0")),
        sa.Column("reorder_level", sa.Numeric(14, 3), nullable=False, server_default=sa.text("0")),
        sa.Column("sku", sa.String(64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint("current_stock >= 0", name="ck_inventory_items_stock_nonneg"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sku"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_items", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_items_name", ["name"], unique=False)
        batch_op.create_index("ix_inventory_items_active", ["is_active"], unique=False)

    op.create_table(
        "inventory_adjustments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("item_name", sa.String(255), nullable=False),
        sa.Column("previous_quantity", sa.Numeric(14, 3), nullable=False),
        sa.Column("new_quantity", sa.Numeric(14, 3), nullable=False),
        sa.Column("quantity_delta", sa.Numeric(14, 3), nullable=False),
        sa.Column("reason", sa.String(32), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(120), nullable=False, server_default="System"),
        sa.Column("reference_number", sa.String(64), nullable=True),
        sa.Column("adjustment_date", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_adjustments", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_adjustments_item_id", ["item_id"], unique=False)
        batch_op.create_index("ix_inventory_adjustments_reason", ["reason"], unique=False)
        batch_op.create_index("ix_inventory_adjustments_reference_number", ["reference_number"], unique=False)
        batch_op.create_index("ix_inventory_adjustments_adjustment_date", ["adjustment_date"], unique=False)
        batch_op.create_index("ix_invadj_item_date", ["item_id", "adjustment_date"], unique=False)

    op.create_table(
        "boms",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("finished_item_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("boms", schema=None) as batch_op:
        batch_op.create_index("ix_boms_finished_item_id", ["finished_item_id"], unique=False)

    op.create_table(
        "bom_materials",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("bom_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False),
        sa.Column("unit_of_measure", sa.String(16), nullable=False, server_default="units"),
        sa.CheckConstraint("quantity > 0", name="ck_bom_materials_qty_positive"),
        sa.ForeignKeyConstraint(["bom_id"], ["boms.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("bom_materials", schema=None) as batch_op:
        batch_op.create_index("ix_bom_materials_bom_id", ["bom_id"], unique=False)
        batch_op.create_index("ix_bom_materials_item_id", ["item_id"], unique=False)

    op.create_table(
        "production_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("bom_id", sa.Integer(), nullable=False),
        sa.Column("quantity_to_produce", sa.Numeric(14, 3), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="planned"),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("labor_cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("additional_costs_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("material_cost_cents", sa.Integer(), nullable=True),
        sa.Column("batch_id", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("completion_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.CheckConstraint("quantity_to_produce > 0", name="ck_production_orders_qty_positive"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("production_orders", schema=None) as batch_op:
        batch_op.create_index("ix_production_orders_bom_id", ["bom_id"], unique=False)
        batch_op.create_index("ix_production_orders_batch_id", ["batch_id"], unique=False)
        batch_op.create_index("ix_production_orders_status", ["status"], unique=False)

    op.create_table(
        "suppliers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("telephone", sa.String(64), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("payment_terms", sa.String(120), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("suppliers", schema=None) as batch_op:
        batch_op.create_index("ix_suppliers_active", ["is_active"], unique=False)

    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(32), nullable=False),
        sa.Column("supplier_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("expected_delivery_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("purchase_orders", schema=None) as batch_op:
        batch_op.create_index("ix_purchase_orders_supplier_id", ["supplier_id"], unique=False)
        batch_op.create_index("ix_purchase_orders_status", ["status"], unique=False)

    op.create_table(
        "purchase_order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("purchase_order_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=False),
        sa.Column("total_cost_cents", sa.Integer(), nullable=False),
        sa.Column("received_quantity", sa.Numeric(14, 3), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("quantity > 0", name="ck_po_items_qty_positive"),
        sa.CheckConstraint("received_quantity >= 0", name="ck_po_items_received_nonneg"),
        sa.ForeignKeyConstraint(["purchase_order_id"], ["purchase_orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("purchase_order_items", schema=None) as batch_op:
        batch_op.create_index("ix_purchase_order_items_purchase_order_id", ["purchase_order_id"], unique=False)
        batch_op.create_index("ix_purchase_order_items_item_id", ["item_id"], unique=False)

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("telephone", sa.String(64), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "sales_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(32), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
        sa.Column("order_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_method", sa.String(16), nullable=False, server_default="cash"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sales_orders", schema=None) as batch_op:
        batch_op.create_index("ix_sales_orders_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_sales_orders_status", ["status"], unique=False)
        batch_op.create_index("ix_sales_orders_order_date", ["order_date"], unique=False)

    op.create_table(
        "sales_order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sales_order_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("discount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_price_cents", sa.Integer(), nullable=False),
        sa.Column("returned_quantity", sa.Numeric(14, 3), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("quantity > 0", name="ck_so_items_qty_positive"),
        sa.ForeignKeyConstraint(["sales_order_id"], ["sales_orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sales_order_items", schema=None) as batch_op:
        batch_op.create_index("ix_sales_order_items_sales_order_id", ["sales_order_id"], unique=False)
        batch_op.create_index("ix_sales_order_items_item_id", ["item_id"], unique=False)

    op.create_table(
        "financial_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("description", sa.String(255), nullable=False, server_default=""),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("payment_method", sa.String(16), nullable=False, server_default="cash"),
        sa.Column("reference_number", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("financial_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_financial_transactions_date", ["date"], unique=False)
        batch_op.create_index("ix_financial_transactions_reference_number", ["reference_number"], unique=False)
        batch_op.create_index("ix_fin_tx_type_date", ["type", "date"], unique=False)
        batch_op.create_index("ix_fin_tx_category", ["category"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_type", name="uq_document_sequences_type"),
        sqlite_autoincrement=True,
    )


def downgrade():
    op.drop_table("document_sequences")
    op.drop_table("financial_transactions")
    op.drop_table("sales_order_items")
    op.drop_table("sales_orders")
    op.drop_table("customers")
    op.drop_table("purchase_order_items")
    op.drop_table("purchase_orders")
    op.drop_table("suppliers")
    op.drop_table("production_orders")
    op.drop_table("bom_materials")
    op.drop_table("boms")
    op.drop_table("inventory_adjustments")
    op.drop_table("inventory_items")
