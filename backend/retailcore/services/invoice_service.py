# Overview: Service-layer operations for invoices; numbering and creation inside the sale transaction.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ServiceError
from ..extensions import db
from ..models import Invoice, InvoiceSequence, Sale


class InvoiceNumberError(ServiceError):
    """Raised when an invoice number cannot be allocated."""
    status_code = 500


def _advance(merchant_id: int) -> int | None:
    """Bump the counter row; returns the number just claimed, or None if the row is missing."""
    stmt = (
        update(InvoiceSequence)
        .where(InvoiceSequence.merchant_id == merchant_id)
        .values(next_number=InvoiceSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(InvoiceSequence.next_number)
        .filter_by(merchant_id=merchant_id)
        .scalar()
    )
    return current - 1


def next_invoice_number(merchant_id: int) -> str:
    """
    Allocate the next invoice number for a merchant inside the current transaction.

    Uses an atomic UPDATE on the merchant's counter row, which holds the row
    lock until the enclosing sale commits or rolls back. Numbers are strictly
    increasing per merchant; including the merchant id makes them globally
    unique. A rolled-back sale releases its number together with the lock.

    Does not commit and does not retry: the enclosing unit of work does.
    """
    if not merchant_id:
        raise InvoiceNumberError("merchant_id is required")

    try:
        number = _advance(merchant_id)
        if number is None:
            # First invoice for this merchant. The savepoint keeps a lost
            # insert race from aborting the sale's transaction.
            nested = db.session.begin_nested()
            try:
                db.session.add(InvoiceSequence(merchant_id=merchant_id, next_number=2))
                db.session.flush()
                nested.commit()
                number = 1
            except IntegrityError:
                nested.rollback()
                number = _advance(merchant_id)
                if number is None:
                    raise InvoiceNumberError(
                        "invoice sequence unavailable", {"merchant_id": merchant_id}
                    )
    except IntegrityError as exc:
        raise InvoiceNumberError(
            "invoice number allocation failed", {"merchant_id": merchant_id}
        ) from exc

    prefix = current_app.config.get("INVOICE_PREFIX", "INV")
    pad = current_app.config.get("INVOICE_NUMBER_PAD", 6)
    return f"{prefix}-{merchant_id:03d}-{number:0{pad}d}"


def create_invoice(sale: Sale, subtotal_cents: int) -> Invoice:
    """Insert the Invoice for a just-flushed Sale. Tax is not computed (0)."""
    invoice = Invoice(
        sale_id=sale.id,
        invoice_number=next_invoice_number(sale.merchant_id),
        merchant_id=sale.merchant_id,
        shop_id=sale.shop_id,
        customer_id=sale.customer_id,
        invoice_date=sale.sale_date,
        subtotal_cents=subtotal_cents,
        discount_amount_cents=sale.discount_amount_cents,
        tax_amount_cents=0,
        total_amount_cents=sale.total_amount_cents,
        payment_status="paid",
    )
    db.session.add(invoice)
    try:
        db.session.flush()
    except IntegrityError as exc:
        current_app.logger.error("Invoice insert failed for sale %s: %s", sale.id, exc)
        raise InvoiceNumberError(
            "invoice could not be created", {"sale_id": sale.id}
        ) from exc
    return invoice
