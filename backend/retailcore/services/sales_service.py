# Overview: Service-layer operations for sales; the atomic checkout that ties stock, promotions and invoices together.

"""
Checkout Invariants

One checkout is one transaction:
1. shop belongs to the caller's merchant (and is the caller's shop when shop-bound)
2. promotion is validated against the subtotal of the requested line prices
3. every item is snapshotted from the merchant's catalog
4. every line is decremented with the conditional write; the FIRST shortfall
   aborts the whole cart
5. Sale, SaleItems, sale StockMovements and the Invoice are written
6. commit

Any error rolls back all of it: no stock, no Sale, no Invoice, no invoice
number consumed. Sale.total_amount_cents = sum(subtotals) - discount.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from ..errors import ServiceError, ValidationError
from ..extensions import db
from ..models import Sale, SaleItem
from ..models.inventory import MOVEMENT_SALE
from ..time_utils import utcnow
from .catalog_service import ItemSnapshot, load_item_snapshots
from .concurrency import run_atomic
from .invoice_service import create_invoice
from .promotion_service import validate_promotion
from .stock_service import decrement_stock
from .tenant_service import require_shop_in_merchant


class SaleNotFoundError(ServiceError):
    """Raised when a sale does not exist for the caller's merchant."""
    status_code = 404


@dataclass(frozen=True)
class CartLine:
    item_id: int
    quantity: int
    unit_price_cents: int | None = None

    def subtotal_cents(self) -> int:
        return self.quantity * (self.unit_price_cents or 0)


def _cart_subtotal(lines: list[CartLine]) -> int:
    return sum(line.subtotal_cents() for line in lines)


def _record_sale(
    *,
    shop_id: int,
    merchant_id: int,
    actor_id: int | None,
    lines: list[CartLine],
    snapshots: dict[int, ItemSnapshot],
    payment_type: str,
    discount_cents: int,
    promotion_id: int | None,
    customer_id: int | None,
    staff_id: int | None,
    notes: str | None,
    sale_date: datetime,
    offline_local_id: str | None = None,
    device_id: str | None = None,
) -> Sale:
    """
    Decrement stock and write Sale, SaleItems and Invoice. Does not commit.

    Shared by online checkout and offline sync; callers own the transaction
    (or savepoint) boundary. Every line must carry its unit price.
    """
    movements = []
    for line in lines:
        _, movement = decrement_stock(
            shop_id,
            line.item_id,
            line.quantity,
            actor_id=actor_id,
            movement_type=MOVEMENT_SALE,
        )
        movements.append(movement)

    subtotal_cents = _cart_subtotal(lines)
    sale = Sale(
        shop_id=shop_id,
        merchant_id=merchant_id,
        staff_id=staff_id,
        customer_id=customer_id,
        created_by_user_id=actor_id,
        sale_date=sale_date,
        total_amount_cents=subtotal_cents - discount_cents,
        discount_amount_cents=discount_cents,
        applied_promotion_id=promotion_id,
        payment_type=payment_type,
        payment_status="succeeded",
        notes=notes,
        offline_local_id=offline_local_id,
        device_id=device_id,
        created_at=utcnow(),
    )
    db.session.add(sale)
    db.session.flush()

    for line in lines:
        snapshot = snapshots[line.item_id]
        db.session.add(SaleItem(
            sale_id=sale.id,
            item_id=line.item_id,
            item_name=snapshot.name,
            item_sku=snapshot.sku,
            quantity_sold=line.quantity,
            selling_price_cents=line.unit_price_cents,
            original_price_cents=snapshot.original_price_cents,
            subtotal_cents=line.subtotal_cents(),
        ))

    # Link the movements written during the decrement to their sale
    for movement in movements:
        movement.sale_id = sale.id
        movement.reason = f"Sale #{sale.id}"

    create_invoice(sale, subtotal_cents)
    return sale


def checkout(
    *,
    shop_id: int,
    merchant_id: int,
    actor_id: int | None,
    lines: list[CartLine],
    payment_type: str,
    promotion_id: int | None = None,
    customer_id: int | None = None,
    staff_id: int | None = None,
    notes: str | None = None,
    restrict_shop_id: int | None = None,
) -> Sale:
    """
    Atomically sell a cart: all lines succeed together or nothing changes.

    Raises InsufficientStockError, ItemNotFoundError, InvalidPromotionError,
    ShopNotFoundError, ShopAccessDeniedError, InvoiceNumberError,
    TransactionError or ValidationError.
    """
    if not lines:
        raise ValidationError("at least one item is required")
    if not payment_type:
        raise ValidationError("payment_type required")
    if len(payment_type) > 32:
        raise ValidationError("payment_type too long (max 32)")
    for line in lines:
        if line.unit_price_cents is None:
            raise ValidationError("unit_price_cents required", {"item_id": line.item_id})

    subtotal_cents = _cart_subtotal(lines)

    def _op():
        require_shop_in_merchant(shop_id, merchant_id, restrict_shop_id=restrict_shop_id)

        now = utcnow()
        discount_cents = validate_promotion(promotion_id, merchant_id, shop_id, subtotal_cents, now)
        snapshots = load_item_snapshots([line.item_id for line in lines], merchant_id)

        sale = _record_sale(
            shop_id=shop_id,
            merchant_id=merchant_id,
            actor_id=actor_id,
            lines=lines,
            snapshots=snapshots,
            payment_type=payment_type,
            discount_cents=discount_cents,
            promotion_id=promotion_id,
            customer_id=customer_id,
            staff_id=staff_id,
            notes=notes,
            sale_date=now,
        )
        sale_id = sale.id

        db.session.commit()
        current_app.logger.info(
            "Checkout committed: sale=%s shop=%s lines=%s total_cents=%s",
            sale_id, shop_id, len(lines), subtotal_cents - discount_cents,
        )
        return sale

    return run_atomic(_op, action="Checkout")


def get_sale(sale_id: int, merchant_id: int, *, restrict_shop_id: int | None = None) -> Sale:
    """Sale with items and invoice (receipt view), scoped to the merchant (and shop)."""
    sale = db.session.query(Sale).filter_by(id=sale_id, merchant_id=merchant_id).first()
    if not sale or (restrict_shop_id is not None and sale.shop_id != restrict_shop_id):
        raise SaleNotFoundError("sale not found", {"sale_id": sale_id})
    return sale
