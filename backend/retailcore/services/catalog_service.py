# Overview: Read-only catalog lookups; snapshots of item master data used by sales and stock.

from __future__ import annotations

from dataclasses import dataclass

from ..errors import ServiceError
from ..extensions import db
from ..models import InventoryItem


class ItemNotFoundError(ServiceError):
    """
    Raised when an item does not exist, belongs to another merchant, or is archived.

    The three cases are deliberately indistinguishable to the caller.
    """
    status_code = 404


@dataclass(frozen=True)
class ItemSnapshot:
    item_id: int
    name: str
    sku: str | None
    selling_price_cents: int
    original_price_cents: int | None


def _snapshot(item: InventoryItem) -> ItemSnapshot:
    return ItemSnapshot(
        item_id=item.id,
        name=item.name,
        sku=item.sku,
        selling_price_cents=item.selling_price_cents,
        original_price_cents=item.original_price_cents,
    )


def get_item_snapshot(item_id: int, merchant_id: int) -> ItemSnapshot:
    return load_item_snapshots([item_id], merchant_id)[item_id]


def load_item_snapshots(item_ids: list[int], merchant_id: int) -> dict[int, ItemSnapshot]:
    """
    Fetch snapshots for every requested item of one merchant.

    Raises ItemNotFoundError for the first id (in request order) that is
    missing, foreign, or archived.
    """
    unique_ids = list(dict.fromkeys(item_ids))
    if not unique_ids:
        return {}

    items = (
        db.session.query(InventoryItem)
        .filter(
            InventoryItem.id.in_(unique_ids),
            InventoryItem.merchant_id == merchant_id,
            InventoryItem.is_archived.is_(False),
        )
        .all()
    )
    found = {item.id: _snapshot(item) for item in items}

    for item_id in unique_ids:
        if item_id not in found:
            raise ItemNotFoundError("item not found", {"item_id": item_id})

    return found
