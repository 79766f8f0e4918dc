# Overview: Flask API routes for shop stock; receipts, transfers, adjustments and the movement ledger.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_identity
from ..errors import ServiceError, ValidationError
from ..identity import ROLE_MERCHANT
from ..services import stock_service
from ..services.tenant_service import resolve_caller_shop
from ..validation import coerce_int, json_object, optional_int, require_int, require_quantity, require_string


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _error_response(e: ServiceError):
    return jsonify({"error": str(e), "details": e.details}), e.status_code


@stock_bp.post("/in")
@require_identity()
def stock_in_route():
    """
    Receive goods into a shop.

    Body: {"shop_id": int, "items": [{"item_id": int, "quantity": int}], "reason": str?}
    """
    identity = g.identity
    try:
        data = json_object(request.get_json(silent=True))
        shop_id = resolve_caller_shop(identity, optional_int(data, "shop_id"))

        raw_items = data.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise ValidationError("items required")
        lines = []
        for raw in raw_items:
            if not isinstance(raw, dict):
                raise ValidationError("each item must be an object")
            lines.append((require_int(raw, "item_id"), require_quantity(raw.get("quantity"))))

        reason = data.get("reason")
        movements = stock_service.stock_in(
            shop_id,
            identity.merchant_id,
            identity.actor_id,
            lines,
            reason=reason if isinstance(reason, str) else None,
        )
        return jsonify({"movements": [m.to_dict() for m in movements]}), 201

    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to stock in")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/transfer")
@require_identity(ROLE_MERCHANT)
def transfer_route():
    """Move stock between two shops of the caller's merchant."""
    identity = g.identity
    try:
        data = json_object(request.get_json(silent=True))
        reason = data.get("reason")
        out_movement, in_movement = stock_service.transfer_stock(
            require_int(data, "from_shop_id"),
            require_int(data, "to_shop_id"),
            require_int(data, "item_id"),
            require_quantity(data.get("quantity")),
            identity.merchant_id,
            identity.actor_id,
            reason=reason if isinstance(reason, str) else None,
        )
        return jsonify({
            "transfer_out": out_movement.to_dict(),
            "transfer_in": in_movement.to_dict(),
        }), 201

    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to transfer stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/adjust")
@require_identity()
def adjust_route():
    """Signed stock correction. Body: {"shop_id", "item_id", "delta", "reason"}."""
    identity = g.identity
    try:
        data = json_object(request.get_json(silent=True))
        shop_id = resolve_caller_shop(identity, optional_int(data, "shop_id"))
        if data.get("delta") is None:
            raise ValidationError("delta required", {"field": "delta"})

        movement = stock_service.adjust_stock(
            shop_id,
            require_int(data, "item_id"),
            coerce_int(data.get("delta"), "delta"),
            identity.merchant_id,
            identity.actor_id,
            require_string(data, "reason"),
        )
        return jsonify({"movement": movement.to_dict()}), 201

    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/<int:shop_id>")
@require_identity()
def stock_levels_route(shop_id: int):
    identity = g.identity
    try:
        shop_id = resolve_caller_shop(identity, shop_id)
        rows = stock_service.list_shop_stock(shop_id, identity.merchant_id)
        return jsonify({"shop_id": shop_id, "stock": [r.to_dict() for r in rows]}), 200

    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/<int:shop_id>/movements")
@require_identity()
def movements_route(shop_id: int):
    """Movement ledger, newest first. Query: item_id?, limit? (default 200, max 500)."""
    identity = g.identity
    try:
        shop_id = resolve_caller_shop(identity, shop_id)
        movements = stock_service.list_movements(
            shop_id,
            identity.merchant_id,
            item_id=optional_int(request.args, "item_id"),
            limit=optional_int(request.args, "limit") or 200,
        )
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200

    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500
