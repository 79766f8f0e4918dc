# Overview: Service-layer operations for shop stock; atomic quantity changes plus the movement ledger.

"""
Stock Ledger Invariants (authoritative)

Storage:
- ShopStock holds the current quantity per (shop, item); StockMovement is the
  append-only audit trail of every change to it.

Writes:
- decrement is ONE conditional statement:
    UPDATE shop_stock SET quantity = quantity - :q
    WHERE shop_id = :s AND item_id = :i AND quantity >= :q
  Zero affected rows means insufficient stock and nothing was touched.
  There is no read-then-write; the database serializes concurrent decrements,
  so the sum of successful decrements never exceeds what was on hand.
- increment is an upsert: the row is created at :q if absent, else :q is added.
- Every decrement/increment records its StockMovement in the same transaction.
  record_movement is never called on its own and never commits.

Reads:
- Quantities are always read from the database inside the current
  transaction; nothing is cached in-process.
"""

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from ..errors import ServiceError, ValidationError
from ..extensions import db
from ..models import ShopStock, StockMovement
from ..models.inventory import (
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_SALE,
    MOVEMENT_STOCK_IN,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
    MOVEMENT_TYPES,
)
from ..time_utils import utcnow
from .catalog_service import get_item_snapshot, load_item_snapshots
from .concurrency import run_atomic
from .tenant_service import require_shop_in_merchant


class InsufficientStockError(ServiceError):
    """Raised when the conditional decrement affects no row."""
    status_code = 409


def _read_quantity(shop_id: int, item_id: int) -> int | None:
    return (
        db.session.query(ShopStock.quantity)
        .filter_by(shop_id=shop_id, item_id=item_id)
        .scalar()
    )


def get_quantity(shop_id: int, item_id: int) -> int:
    """Current quantity; 0 when the item has never been stocked at the shop."""
    return _read_quantity(shop_id, item_id) or 0


def record_movement(
    *,
    shop_id: int,
    item_id: int,
    actor_id: int | None,
    movement_type: str,
    quantity_changed: int,
    new_quantity: int,
    reason: str | None = None,
    sale_id: int | None = None,
) -> StockMovement:
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError("invalid movement_type", {"movement_type": movement_type})

    movement = StockMovement(
        shop_id=shop_id,
        item_id=item_id,
        user_id=actor_id,
        movement_type=movement_type,
        quantity_changed=quantity_changed,
        new_quantity=new_quantity,
        reason=reason,
        sale_id=sale_id,
        created_at=utcnow(),
    )
    db.session.add(movement)
    return movement


def decrement_stock(
    shop_id: int,
    item_id: int,
    quantity: int,
    *,
    actor_id: int | None,
    movement_type: str = MOVEMENT_SALE,
    reason: str | None = None,
) -> tuple[int, StockMovement]:
    """
    Atomically remove quantity from a shop's stock, or fail without touching it.

    Returns (new_quantity, movement). Does not commit.
    """
    if quantity <= 0:
        raise ValidationError("quantity must be positive", {"quantity": quantity})

    stmt = (
        update(ShopStock)
        .where(
            ShopStock.shop_id == shop_id,
            ShopStock.item_id == item_id,
            ShopStock.quantity >= quantity,
        )
        .values(quantity=ShopStock.quantity - quantity, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise InsufficientStockError(
            "insufficient stock",
            {
                "shop_id": shop_id,
                "item_id": item_id,
                "requested": quantity,
                "available": get_quantity(shop_id, item_id),
            },
        )

    new_quantity = _read_quantity(shop_id, item_id)
    movement = record_movement(
        shop_id=shop_id,
        item_id=item_id,
        actor_id=actor_id,
        movement_type=movement_type,
        quantity_changed=-quantity,
        new_quantity=new_quantity,
        reason=reason,
    )
    return new_quantity, movement


def _upsert_quantity(shop_id: int, item_id: int, quantity: int, *, stocked_in: bool) -> None:
    now = utcnow()
    values = {"shop_id": shop_id, "item_id": item_id, "quantity": quantity, "updated_at": now}
    if stocked_in:
        values["last_stocked_in_at"] = now

    dialect = db.engine.dialect.name
    if dialect in ("sqlite", "postgresql"):
        insert_fn = sqlite_insert if dialect == "sqlite" else pg_insert
        stmt = insert_fn(ShopStock).values(**values)
        set_ = {
            "quantity": ShopStock.quantity + stmt.excluded.quantity,
            "updated_at": stmt.excluded.updated_at,
        }
        if stocked_in:
            set_["last_stocked_in_at"] = stmt.excluded.last_stocked_in_at
        stmt = stmt.on_conflict_do_update(index_elements=["shop_id", "item_id"], set_=set_)
        db.session.execute(stmt)
        return

    # Engines without ON CONFLICT: update, else insert in a savepoint and
    # fall back to the update if a concurrent insert won the race.
    update_values = {"quantity": ShopStock.quantity + quantity, "updated_at": now}
    if stocked_in:
        update_values["last_stocked_in_at"] = now
    stmt = (
        update(ShopStock)
        .where(ShopStock.shop_id == shop_id, ShopStock.item_id == item_id)
        .values(**update_values)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount:
        return

    nested = db.session.begin_nested()
    try:
        db.session.add(ShopStock(**values))
        db.session.flush()
        nested.commit()
    except IntegrityError:
        nested.rollback()
        if not db.session.execute(stmt).rowcount:
            raise


def increment_stock(
    shop_id: int,
    item_id: int,
    quantity: int,
    *,
    actor_id: int | None,
    movement_type: str = MOVEMENT_STOCK_IN,
    reason: str | None = None,
) -> tuple[int, StockMovement]:
    """
    Add quantity to a shop's stock, creating the row on first receipt.

    Returns (new_quantity, movement). Does not commit.
    """
    if quantity <= 0:
        raise ValidationError("quantity must be positive", {"quantity": quantity})

    _upsert_quantity(shop_id, item_id, quantity, stocked_in=movement_type == MOVEMENT_STOCK_IN)
    new_quantity = _read_quantity(shop_id, item_id)
    movement = record_movement(
        shop_id=shop_id,
        item_id=item_id,
        actor_id=actor_id,
        movement_type=movement_type,
        quantity_changed=quantity,
        new_quantity=new_quantity,
        reason=reason,
    )
    return new_quantity, movement


# =============================================================================
# Stock operations (each one committed unit of work)
# =============================================================================

def stock_in(
    shop_id: int,
    merchant_id: int,
    actor_id: int | None,
    lines: list[tuple[int, int]],
    reason: str | None = None,
) -> list[StockMovement]:
    """
    Receive goods into a shop. lines is [(item_id, quantity), ...].

    All lines are applied or none.
    """
    if not lines:
        raise ValidationError("at least one line is required")

    def _op():
        require_shop_in_merchant(shop_id, merchant_id)
        load_item_snapshots([item_id for item_id, _ in lines], merchant_id)

        movements = []
        for item_id, quantity in lines:
            _, movement = increment_stock(
                shop_id,
                item_id,
                quantity,
                actor_id=actor_id,
                movement_type=MOVEMENT_STOCK_IN,
                reason=reason or "Stock in",
            )
            movements.append(movement)

        db.session.commit()
        return movements

    return run_atomic(_op, action="Stock in")


def transfer_stock(
    from_shop_id: int,
    to_shop_id: int,
    item_id: int,
    quantity: int,
    merchant_id: int,
    actor_id: int | None,
    reason: str | None = None,
) -> tuple[StockMovement, StockMovement]:
    """
    Move stock between two shops of the same merchant.

    Source decrement is the same conditional write used by sales, so a
    transfer can never push the source negative. Returns (out, in) movements.
    """
    if from_shop_id == to_shop_id:
        raise ValidationError("source and destination shop must differ")

    def _op():
        require_shop_in_merchant(from_shop_id, merchant_id)
        require_shop_in_merchant(to_shop_id, merchant_id)
        get_item_snapshot(item_id, merchant_id)

        _, out_movement = decrement_stock(
            from_shop_id,
            item_id,
            quantity,
            actor_id=actor_id,
            movement_type=MOVEMENT_TRANSFER_OUT,
            reason=reason or f"Transfer to shop #{to_shop_id}",
        )
        _, in_movement = increment_stock(
            to_shop_id,
            item_id,
            quantity,
            actor_id=actor_id,
            movement_type=MOVEMENT_TRANSFER_IN,
            reason=reason or f"Transfer from shop #{from_shop_id}",
        )

        db.session.commit()
        return out_movement, in_movement

    return run_atomic(_op, action="Stock transfer")


def adjust_stock(
    shop_id: int,
    item_id: int,
    delta: int,
    merchant_id: int,
    actor_id: int | None,
    reason: str,
) -> StockMovement:
    """Signed correction (damage, shrinkage, recount). Negative deltas cannot go below zero."""
    if delta == 0:
        raise ValidationError("delta must be non-zero")
    if not reason:
        raise ValidationError("reason required for adjustments")

    def _op():
        require_shop_in_merchant(shop_id, merchant_id)
        get_item_snapshot(item_id, merchant_id)

        if delta > 0:
            _, movement = increment_stock(
                shop_id, item_id, delta,
                actor_id=actor_id, movement_type=MOVEMENT_ADJUSTMENT, reason=reason,
            )
        else:
            _, movement = decrement_stock(
                shop_id, item_id, -delta,
                actor_id=actor_id, movement_type=MOVEMENT_ADJUSTMENT, reason=reason,
            )

        db.session.commit()
        return movement

    return run_atomic(_op, action="Stock adjustment")


def list_shop_stock(shop_id: int, merchant_id: int) -> list[ShopStock]:
    require_shop_in_merchant(shop_id, merchant_id)
    return (
        db.session.query(ShopStock)
        .populate_existing()
        .filter_by(shop_id=shop_id)
        .order_by(ShopStock.item_id.asc())
        .all()
    )


def list_movements(
    shop_id: int,
    merchant_id: int,
    *,
    item_id: int | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    require_shop_in_merchant(shop_id, merchant_id)

    if limit < 1:
        limit = 1
    if limit > 500:
        limit = 500

    query = db.session.query(StockMovement).filter_by(shop_id=shop_id)
    if item_id is not None:
        query = query.filter_by(item_id=item_id)
    return query.order_by(StockMovement.id.desc()).limit(limit).all()
