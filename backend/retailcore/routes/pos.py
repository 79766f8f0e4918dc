# Overview: Flask API routes for point-of-sale checkout; parses input and returns JSON responses.

# backend/retailcore/routes/pos.py
"""
POS checkout entry points.

Merchant back-office, staff devices and shop terminals all sell through the
same sales_service.checkout; they differ only in how the shop is chosen:
- merchant: shop_id from the request body
- staff / shop terminal: the caller's assigned shop
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_identity
from ..errors import ServiceError, ValidationError
from ..identity import ROLE_MERCHANT, ROLE_SHOP, ROLE_STAFF
from ..services import promotion_service, sales_service
from ..services.sales_service import CartLine
from ..services.tenant_service import require_shop_in_merchant, resolve_caller_shop
from ..validation import json_object, optional_int, require_int, require_price_cents, require_quantity


pos_bp = Blueprint("pos", __name__, url_prefix="/api")


def _parse_cart_lines(raw_items) -> list[CartLine]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items required")

    lines = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object")
        lines.append(CartLine(
            item_id=require_int(raw, "item_id"),
            quantity=require_quantity(raw.get("quantity")),
            unit_price_cents=require_price_cents(raw.get("unit_price_cents"), "unit_price_cents"),
        ))
    return lines


def _checkout():
    identity = g.identity
    data = json_object(request.get_json(silent=True))

    shop_id = resolve_caller_shop(identity, optional_int(data, "shop_id"))
    payment_type = data.get("payment_type")
    if not isinstance(payment_type, str) or not payment_type.strip():
        raise ValidationError("payment_type required", {"field": "payment_type"})
    notes = data.get("notes")

    sale = sales_service.checkout(
        shop_id=shop_id,
        merchant_id=identity.merchant_id,
        actor_id=identity.actor_id,
        lines=_parse_cart_lines(data.get("items")),
        payment_type=payment_type.strip(),
        promotion_id=optional_int(data, "promotion_id"),
        customer_id=optional_int(data, "customer_id"),
        staff_id=identity.actor_id if identity.role == ROLE_STAFF else None,
        notes=notes if isinstance(notes, str) else None,
        restrict_shop_id=identity.restrict_shop_id,
    )
    return jsonify({
        "sale": sale.to_dict(include_items=True),
        "invoice": sale.invoice.to_dict(),
    }), 201


def _checkout_route(label: str):
    try:
        return _checkout()
    except ServiceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed %s checkout", label)
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.post("/merchant/pos/checkout")
@require_identity(ROLE_MERCHANT)
def merchant_checkout_route():
    """Checkout from the merchant back office. Body must name shop_id."""
    return _checkout_route("merchant")


@pos_bp.post("/staff/pos/checkout")
@require_identity(ROLE_STAFF)
def staff_checkout_route():
    """Checkout by a staff member at their assigned shop."""
    return _checkout_route("staff")


@pos_bp.post("/shop/pos/checkout")
@require_identity(ROLE_SHOP)
def shop_checkout_route():
    """Checkout from a shop terminal."""
    return _checkout_route("shop")


@pos_bp.get("/pos/promotions")
@require_identity()
def active_promotions_route():
    """
    Promotions a POS can offer right now.

    Merchant callers may pass ?shop_id= to include that shop's promotions;
    without it only merchant-wide promotions are listed.
    """
    identity = g.identity
    try:
        requested = optional_int(request.args, "shop_id")
        shop_id = None
        if identity.is_shop_bound or requested is not None:
            shop_id = resolve_caller_shop(identity, requested)
            require_shop_in_merchant(shop_id, identity.merchant_id)

        promotions = promotion_service.list_active_promotions(identity.merchant_id, shop_id)
        return jsonify({"promotions": [p.to_dict() for p in promotions]}), 200

    except ServiceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list promotions")
        return jsonify({"error": "Internal server error"}), 500
