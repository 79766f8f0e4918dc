from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


MOVEMENT_SALE = "sale"
MOVEMENT_STOCK_IN = "stock_in"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_TRANSFER_IN = "transfer_in"
MOVEMENT_TRANSFER_OUT = "transfer_out"

MOVEMENT_TYPES = (
    MOVEMENT_SALE,
    MOVEMENT_STOCK_IN,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
)


class InventoryItem(db.Model):
    """
    Merchant catalog entry (master data).

    SKU is unique within a merchant. Archived items stay referenced by past
    sales but can no longer be sold or stocked.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.UniqueConstraint("merchant_id", "sku", name="uq_inventory_items_merchant_sku"),
        db.Index("ix_inventory_items_merchant_archived", "merchant_id", "is_archived"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)
    original_price_cents = db.Column(db.Integer, nullable=True)

    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "name": self.name,
            "sku": self.sku,
            "description": self.description,
            "selling_price_cents": self.selling_price_cents,
            "original_price_cents": self.original_price_cents,
            "is_archived": self.is_archived,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ShopStock(db.Model):
    """
    Current on-hand quantity of one catalog item at one shop.

    INVARIANTS:
    - quantity never goes negative (DB check constraint backs the conditional decrement)
    - every change is written through stock_service together with a StockMovement

    No version_id column: quantity is only ever changed by single-statement
    atomic UPDATE/UPSERT, never by ORM read-modify-write.
    """
    __tablename__ = "shop_stock"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "item_id", name="uq_shop_stock_shop_item"),
        db.CheckConstraint("quantity >= 0", name="ck_shop_stock_quantity_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    last_stocked_in_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "last_stocked_in_at": to_utc_z(self.last_stocked_in_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only audit ledger entry for one ShopStock mutation.

    new_quantity is the ShopStock.quantity right after the mutation, read
    back inside the same transaction.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_shop_item_created", "shop_id", "item_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, nullable=True)

    movement_type = db.Column(db.String(32), nullable=False)  # sale, stock_in, adjustment, transfer_in, transfer_out
    quantity_changed = db.Column(db.Integer, nullable=False)  # signed
    new_quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "shop_id": self.shop_id,
            "user_id": self.user_id,
            "movement_type": self.movement_type,
            "quantity_changed": self.quantity_changed,
            "new_quantity": self.new_quantity,
            "reason": self.reason,
            "sale_id": self.sale_id,
            "created_at": to_utc_z(self.created_at),
        }
