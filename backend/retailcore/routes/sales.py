# Overview: Flask API routes for completed sales; receipt lookup.

from flask import Blueprint, current_app, g, jsonify

from ..decorators import require_identity
from ..errors import ServiceError
from ..services import sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("/<int:sale_id>")
@require_identity()
def get_sale_route(sale_id: int):
    """
    Get sale with items and invoice.

    Staff and shop terminals only see sales of their own shop.
    """
    identity = g.identity
    try:
        sale = sales_service.get_sale(
            sale_id, identity.merchant_id, restrict_shop_id=identity.restrict_shop_id
        )
        return jsonify({
            "sale": sale.to_dict(include_items=True),
            "invoice": sale.invoice.to_dict() if sale.invoice else None,
        }), 200

    except ServiceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return jsonify({"error": "Internal server error"}), 500
