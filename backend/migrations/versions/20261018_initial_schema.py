"""Initial schema: tenancy, catalog, shop stock, promotions, sales, invoices, sync logs

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


def _created_at():
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False)


def upgrade():
    op.create_table(
        "merchants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "shops",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.ForeignKeyConstraint(["merchant_id"], ["merchants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("shops", schema=None) as batch_op:
        batch_op.create_index("ix_shops_merchant_id", ["merchant_id"], unique=False)
        batch_op.create_index("ix_shops_merchant_active", ["merchant_id", "is_active"], unique=False)

    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("sku", sa.String(64), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("selling_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("original_price_cents", sa.Integer(), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["merchant_id"], ["merchants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("merchant_id", "sku", name="uq_inventory_items_merchant_sku"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_items", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_items_merchant_id", ["merchant_id"], unique=False)
        batch_op.create_index("ix_inventory_items_merchant_archived", ["merchant_id", "is_archived"], unique=False)

    op.create_table(
        "shop_stock",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("shop_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_stocked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["shop_id"], ["shops.id"]),
        sa.ForeignKeyConstraint(["item_id"], ["inventory_items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("shop_id", "item_id", name="uq_shop_stock_shop_item"),
        sa.CheckConstraint("quantity >= 0", name="ck_shop_stock_quantity_nonnegative"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("shop_stock", schema=None) as batch_op:
        batch_op.create_index("ix_shop_stock_shop_id", ["shop_id"], unique=False)
        batch_op.create_index("ix_shop_stock_item_id", ["item_id"], unique=False)

    op.create_table(
        "promotions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.Integer(), nullable=False),
        sa.Column("shop_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("promo_type", sa.String(32), nullable=False),
        sa.Column("promo_value", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("min_spend_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.ForeignKeyConstraint(["merchant_id"], ["merchants.id"]),
        sa.ForeignKeyConstraint(["shop_id"], ["shops.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("promotions", schema=None) as batch_op:
        batch_op.create_index("ix_promotions_merchant_id", ["merchant_id"], unique=False)
        batch_op.create_index("ix_promotions_shop_id", ["shop_id"], unique=False)
        batch_op.create_index("ix_promotions_merchant_active", ["merchant_id", "is_active"], unique=False)

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("shop_id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.Integer(), nullable=False),
        sa.Column("staff_id", sa.Integer(), nullable=True),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("sale_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("discount_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("applied_promotion_id", sa.Integer(), nullable=True),
        sa.Column("payment_type", sa.String(32), nullable=False),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="succeeded"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("offline_local_id", sa.String(128), nullable=True),
        sa.Column("device_id", sa.String(128), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["shop_id"], ["shops.id"]),
        sa.ForeignKeyConstraint(["merchant_id"], ["merchants.id"]),
        sa.ForeignKeyConstraint(["applied_promotion_id"], ["promotions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("merchant_id", "offline_local_id", name="uq_sales_merchant_offline_local_id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.create_index("ix_sales_shop_id", ["shop_id"], unique=False)
        batch_op.create_index("ix_sales_merchant_id", ["merchant_id"], unique=False)
        batch_op.create_index("ix_sales_shop_sale_date", ["shop_id", "sale_date"], unique=False)

    op.create_table(
        "sale_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("item_name", sa.String(255), nullable=False),
        sa.Column("item_sku", sa.String(64), nullable=True),
        sa.Column("quantity_sold", sa.Integer(), nullable=False),
        sa.Column("selling_price_cents", sa.Integer(), nullable=False),
        sa.Column("original_price_cents", sa.Integer(), nullable=True),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.ForeignKeyConstraint(["item_id"], ["inventory_items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sale_items", schema=None) as batch_op:
        batch_op.create_index("ix_sale_items_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_sale_items_item_id", ["item_id"], unique=False)

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("shop_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("movement_type", sa.String(32), nullable=False),
        sa.Column("quantity_changed", sa.Integer(), nullable=False),
        sa.Column("new_quantity", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.Column("sale_id", sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["item_id"], ["inventory_items.id"]),
        sa.ForeignKeyConstraint(["shop_id"], ["shops.id"]),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_movements", schema=None) as batch_op:
        batch_op.create_index("ix_stock_movements_item_id", ["item_id"], unique=False)
        batch_op.create_index("ix_stock_movements_shop_id", ["shop_id"], unique=False)
        batch_op.create_index("ix_stock_movements_sale_id", ["sale_id"], unique=False)
        batch_op.create_index(
            "ix_stock_movements_shop_item_created", ["shop_id", "item_id", "created_at"], unique=False
        )

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("invoice_number", sa.String(64), nullable=False),
        sa.Column("merchant_id", sa.Integer(), nullable=False),
        sa.Column("shop_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("invoice_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("discount_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="paid"),
        _created_at(),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.ForeignKeyConstraint(["merchant_id"], ["merchants.id"]),
        sa.ForeignKeyConstraint(["shop_id"], ["shops.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sale_id", name="uq_invoices_sale_id"),
        sa.UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("invoices", schema=None) as batch_op:
        batch_op.create_index("ix_invoices_merchant_id", ["merchant_id"], unique=False)
        batch_op.create_index("ix_invoices_shop_id", ["shop_id"], unique=False)

    op.create_table(
        "invoice_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.Integer(), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["merchant_id"], ["merchants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("merchant_id", name="uq_invoice_sequences_merchant"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "sync_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.Integer(), nullable=False),
        sa.Column("device_id", sa.String(128), nullable=True),
        sa.Column("batch_id", sa.String(128), nullable=True),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("total_sales", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("synced_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("failed_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["merchant_id"], ["merchants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sync_logs", schema=None) as batch_op:
        batch_op.create_index("ix_sync_logs_merchant_created", ["merchant_id", "created_at"], unique=False)


def downgrade():
    op.drop_table("sync_logs")
    op.drop_table("invoice_sequences")
    op.drop_table("invoices")
    op.drop_table("stock_movements")
    op.drop_table("sale_items")
    op.drop_table("sales")
    op.drop_table("promotions")
    op.drop_table("shop_stock")
    op.drop_table("inventory_items")
    op.drop_table("shops")
    op.drop_table("merchants")
