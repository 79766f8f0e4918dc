# Overview: Service-layer operations for offline POS sync; idempotent per-record replay of locally recorded sales.

"""
Offline Sync Semantics

A batch is a list of sales a POS device recorded while offline. Each record
is applied independently:

- Idempotency: (merchant_id, local_id) identifies a record forever. If a Sale
  with that offline_local_id already exists, the record is reported as
  synced with the existing server id and stock is not touched again.
  The shop is checked first; a local id already recorded at a different
  shop fails with "local_id already used".
- Isolation: each record runs in its own savepoint inside the batch
  transaction. A failing record is rolled back to its savepoint and reported
  as failed; earlier and later records are unaffected. This includes
  database errors raised by the record's statements. Only a lost
  connection aborts (and retries) the batch.
- The batch itself never fails because of a record. Callers must inspect
  results; status is success (all synced), failed (none synced) or partial.

Offline sales carry no promotion (discount 0). A line without a price is
sold at the current catalog price.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import ServiceError, ValidationError
from ..extensions import db
from ..models import Sale, SyncLog
from ..time_utils import to_utc_z, utcnow
from ..validation import (
    coerce_int,
    optional_datetime,
    optional_int,
    require_int,
    require_price_cents,
    require_quantity,
)
from .catalog_service import load_item_snapshots
from .concurrency import run_atomic
from .sales_service import CartLine, _record_sale
from .tenant_service import require_shop_in_merchant


SYNC_SYNCED = "synced"
SYNC_FAILED = "failed"

BATCH_SUCCESS = "success"
BATCH_PARTIAL = "partial"
BATCH_FAILED = "failed"


@dataclass(frozen=True)
class OfflineSaleRecord:
    local_id: str
    shop_id: int
    items: list[CartLine]
    payment_type: str
    timestamp: datetime | None = None
    total_amount_cents: int | None = None
    customer_id: int | None = None
    notes: str | None = None


@dataclass
class SyncResult:
    local_id: str | None
    status: str
    server_id: int | None = None
    error: str | None = None
    server_timestamp: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "local_id": self.local_id,
            "server_id": self.server_id,
            "status": self.status,
            "error": self.error,
            "server_timestamp": to_utc_z(self.server_timestamp),
        }


@dataclass
class BatchSyncResult:
    status: str
    sync_batch_id: str | None
    synced_count: int = 0
    failed_count: int = 0
    results: list[SyncResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "sync_batch_id": self.sync_batch_id,
            "synced_count": self.synced_count,
            "failed_count": self.failed_count,
            "results": [result.to_dict() for result in self.results],
        }


def parse_offline_record(raw) -> OfflineSaleRecord:
    """Validate one client record. Raises ValidationError (fails only that record)."""
    if not isinstance(raw, dict):
        raise ValidationError("sale record must be an object")

    local_id = raw.get("local_id")
    if isinstance(local_id, int) and not isinstance(local_id, bool):
        local_id = str(local_id)
    if not isinstance(local_id, str) or not local_id.strip():
        raise ValidationError("local_id required")
    local_id = local_id.strip()
    if len(local_id) > 128:
        raise ValidationError("local_id too long (max 128)")

    raw_items = raw.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("at least one item is required")

    items = []
    for raw_item in raw_items:
        if not isinstance(raw_item, dict):
            raise ValidationError("item must be an object")
        price = raw_item.get("selling_price_cents", raw_item.get("unit_price_cents"))
        items.append(CartLine(
            item_id=require_int(raw_item, "item_id"),
            quantity=require_quantity(raw_item.get("quantity")),
            unit_price_cents=require_price_cents(price, "selling_price_cents") if price is not None else None,
        ))

    payment_type = raw.get("payment_type")
    if not isinstance(payment_type, str) or not payment_type.strip():
        raise ValidationError("payment_type required")
    if len(payment_type.strip()) > 32:
        raise ValidationError("payment_type too long (max 32)")

    total = raw.get("total_amount_cents")
    notes = raw.get("notes")
    return OfflineSaleRecord(
        local_id=local_id,
        shop_id=require_int(raw, "shop_id"),
        items=items,
        payment_type=payment_type.strip(),
        timestamp=optional_datetime(raw, "timestamp"),
        total_amount_cents=coerce_int(total, "total_amount_cents") if total is not None else None,
        customer_id=optional_int(raw, "customer_id"),
        notes=notes if isinstance(notes, str) else None,
    )


def find_synced_sale(merchant_id: int, local_id: str) -> Sale | None:
    return (
        db.session.query(Sale)
        .filter_by(merchant_id=merchant_id, offline_local_id=local_id)
        .first()
    )


def _apply_record(
    record: OfflineSaleRecord,
    *,
    merchant_id: int,
    actor_id: int | None,
    staff_id: int | None,
    device_id: str | None,
) -> Sale:
    snapshots = load_item_snapshots([line.item_id for line in record.items], merchant_id)

    lines = [
        line if line.unit_price_cents is not None
        else replace(line, unit_price_cents=snapshots[line.item_id].selling_price_cents)
        for line in record.items
    ]

    sale = _record_sale(
        shop_id=record.shop_id,
        merchant_id=merchant_id,
        actor_id=actor_id,
        lines=lines,
        snapshots=snapshots,
        payment_type=record.payment_type,
        discount_cents=0,
        promotion_id=None,
        customer_id=record.customer_id,
        staff_id=staff_id,
        notes=record.notes,
        sale_date=record.timestamp or utcnow(),
        offline_local_id=record.local_id,
        device_id=device_id,
    )

    if record.total_amount_cents is not None and record.total_amount_cents != sale.total_amount_cents:
        current_app.logger.warning(
            "Offline sale %s total mismatch: client=%s server=%s (server total kept)",
            record.local_id, record.total_amount_cents, sale.total_amount_cents,
        )
    return sale


def _replayed(record: OfflineSaleRecord, existing: Sale) -> SyncResult:
    """Outcome for a local id the server has already recorded."""
    if existing.shop_id != record.shop_id:
        current_app.logger.warning(
            "Offline sale %s replayed for shop=%s but recorded at shop=%s",
            record.local_id, record.shop_id, existing.shop_id,
        )
        return SyncResult(local_id=record.local_id, status=SYNC_FAILED, error="local_id already used")
    return SyncResult(
        local_id=record.local_id,
        status=SYNC_SYNCED,
        server_id=existing.id,
        server_timestamp=existing.created_at,
    )


def _sync_record(
    raw,
    *,
    merchant_id: int,
    actor_id: int | None,
    staff_id: int | None,
    device_id: str | None,
    restrict_shop_id: int | None,
) -> SyncResult:
    raw_local_id = raw.get("local_id") if isinstance(raw, dict) else None
    try:
        record = parse_offline_record(raw)
    except ValidationError as e:
        return SyncResult(
            local_id=str(raw_local_id) if raw_local_id is not None else None,
            status=SYNC_FAILED,
            error=str(e),
        )

    # Shop scope is checked before the replay lookup
    try:
        require_shop_in_merchant(record.shop_id, merchant_id, restrict_shop_id=restrict_shop_id)
    except ServiceError as e:
        return SyncResult(local_id=record.local_id, status=SYNC_FAILED, error=str(e))

    existing = find_synced_sale(merchant_id, record.local_id)
    if existing:
        return _replayed(record, existing)

    nested = db.session.begin_nested()
    try:
        sale = _apply_record(
            record,
            merchant_id=merchant_id,
            actor_id=actor_id,
            staff_id=staff_id,
            device_id=device_id,
        )
        nested.commit()
    except ServiceError as e:
        nested.rollback()
        return SyncResult(local_id=record.local_id, status=SYNC_FAILED, error=str(e))
    except IntegrityError:
        nested.rollback()
        # A concurrent replay of the same record committed first
        existing = find_synced_sale(merchant_id, record.local_id)
        if existing:
            return _replayed(record, existing)
        current_app.logger.exception("Offline sale %s violated a constraint", record.local_id)
        return SyncResult(local_id=record.local_id, status=SYNC_FAILED, error="could not record sale")
    except SQLAlchemyError as exc:
        if getattr(exc, "connection_invalidated", False):
            # The outer transaction is gone with the connection; retry the batch
            raise
        nested.rollback()
        current_app.logger.exception("Offline sale %s failed", record.local_id)
        return SyncResult(local_id=record.local_id, status=SYNC_FAILED, error="could not record sale")

    return SyncResult(
        local_id=record.local_id,
        status=SYNC_SYNCED,
        server_id=sale.id,
        server_timestamp=sale.created_at,
    )


def sync_batch(
    *,
    merchant_id: int,
    actor_id: int | None,
    device_id: str | None,
    batch_id: str | None,
    records: list,
    staff_id: int | None = None,
    restrict_shop_id: int | None = None,
) -> BatchSyncResult:
    """
    Reconcile a batch of offline sales. Returns one SyncResult per record, in order.

    Only batch-level problems (empty or oversized batch, database failure
    after retries) raise; record problems are reported in results.
    """
    if not isinstance(records, list) or not records:
        raise ValidationError("sales required")
    max_size = current_app.config.get("SYNC_MAX_BATCH_SIZE", 500)
    if len(records) > max_size:
        raise ValidationError(
            f"batch exceeds maximum of {max_size} sales",
            {"max_batch_size": max_size, "received": len(records)},
        )

    def _op():
        results = [
            _sync_record(
                raw,
                merchant_id=merchant_id,
                actor_id=actor_id,
                staff_id=staff_id,
                device_id=device_id,
                restrict_shop_id=restrict_shop_id,
            )
            for raw in records
        ]

        synced = sum(1 for r in results if r.status == SYNC_SYNCED)
        failed = len(results) - synced
        if failed == 0:
            status = BATCH_SUCCESS
        elif synced == 0:
            status = BATCH_FAILED
        else:
            status = BATCH_PARTIAL

        db.session.add(SyncLog(
            merchant_id=merchant_id,
            device_id=device_id,
            batch_id=batch_id,
            actor_id=actor_id,
            total_sales=len(results),
            synced_count=synced,
            failed_count=failed,
            status=status,
            created_at=utcnow(),
        ))
        db.session.commit()

        current_app.logger.info(
            "Offline sync batch %s from device %s: %s synced, %s failed",
            batch_id, device_id, synced, failed,
        )
        return BatchSyncResult(
            status=status,
            sync_batch_id=batch_id,
            synced_count=synced,
            failed_count=failed,
            results=results,
        )

    return run_atomic(_op, action="Offline sync")
