from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Sale(db.Model):
    """
    Completed sale. Immutable after creation.

    Written together with its SaleItems, Invoice and sale StockMovements in one
    transaction. offline_local_id is the client-side id of a sale recorded by
    an offline POS device; it maps to at most one Sale per merchant, ever.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("merchant_id", "offline_local_id", name="uq_sales_merchant_offline_local_id"),
        db.Index("ix_sales_shop_sale_date", "shop_id", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)

    staff_id = db.Column(db.Integer, nullable=True)
    customer_id = db.Column(db.Integer, nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False)

    # All amounts in cents; total = sum(item subtotals) - discount
    total_amount_cents = db.Column(db.Integer, nullable=False)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    applied_promotion_id = db.Column(db.Integer, db.ForeignKey("promotions.id"), nullable=True)

    payment_type = db.Column(db.String(32), nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default="succeeded")
    notes = db.Column(db.Text, nullable=True)

    # Offline sync provenance
    offline_local_id = db.Column(db.String(128), nullable=True)
    device_id = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship("SaleItem", backref="sale", lazy=True, order_by="SaleItem.id")
    invoice = db.relationship("Invoice", backref="sale", uselist=False, lazy=True)

    def subtotal_cents(self) -> int:
        return self.total_amount_cents + self.discount_amount_cents

    def to_dict(self, *, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "shop_id": self.shop_id,
            "merchant_id": self.merchant_id,
            "staff_id": self.staff_id,
            "customer_id": self.customer_id,
            "created_by_user_id": self.created_by_user_id,
            "sale_date": to_utc_z(self.sale_date),
            "subtotal_cents": self.subtotal_cents(),
            "total_amount_cents": self.total_amount_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "applied_promotion_id": self.applied_promotion_id,
            "payment_type": self.payment_type,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "offline_local_id": self.offline_local_id,
            "device_id": self.device_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    Sale line with a denormalized snapshot of the catalog item at sale time.

    Name, SKU and prices are copied so the receipt stays stable if the
    catalog item is later renamed, repriced or archived.
    """
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    item_name = db.Column(db.String(255), nullable=False)
    item_sku = db.Column(db.String(64), nullable=True)

    quantity_sold = db.Column(db.Integer, nullable=False)
    selling_price_cents = db.Column(db.Integer, nullable=False)
    original_price_cents = db.Column(db.Integer, nullable=True)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "item_sku": self.item_sku,
            "quantity_sold": self.quantity_sold,
            "selling_price_cents": self.selling_price_cents,
            "original_price_cents": self.original_price_cents,
            "subtotal_cents": self.subtotal_cents,
        }


class Invoice(db.Model):
    """Invoice issued for exactly one Sale, created in the same transaction."""
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("sale_id", name="uq_invoices_sale_id"),
        db.UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False)
    invoice_number = db.Column(db.String(64), nullable=False)

    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, nullable=True)

    invoice_date = db.Column(db.DateTime(timezone=True), nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    payment_status = db.Column(db.String(16), nullable=False, default="paid")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "invoice_number": self.invoice_number,
            "merchant_id": self.merchant_id,
            "shop_id": self.shop_id,
            "customer_id": self.customer_id,
            "invoice_date": to_utc_z(self.invoice_date),
            "subtotal_cents": self.subtotal_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "tax_amount_cents": self.tax_amount_cents,
            "total_amount_cents": self.total_amount_cents,
            "payment_status": self.payment_status,
            "created_at": to_utc_z(self.created_at),
        }


class InvoiceSequence(db.Model):
    """
    Per-merchant invoice counter.

    next_number is the number the NEXT invoice will get. It is only advanced
    with an atomic UPDATE inside the sale's transaction, so the row lock
    serializes concurrent checkouts of the same merchant.
    """
    __tablename__ = "invoice_sequences"
    __table_args__ = (
        db.UniqueConstraint("merchant_id", name="uq_invoice_sequences_merchant"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
