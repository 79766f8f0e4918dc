# Overview: Flask API routes for offline POS sync; parses the batch and returns per-record results.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_identity
from ..errors import ServiceError
from ..identity import ROLE_STAFF
from ..services import sync_service
from ..validation import json_object


sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


def _optional_str(data: dict, field: str) -> str | None:
    value = data.get(field)
    if value is None:
        return None
    return str(value)[:128]


@sync_bp.post("/sales")
@require_identity()
def sync_sales_route():
    """
    Upload sales recorded offline.

    Body: {"batch_id": str, "device_id": str, "sales": [record, ...]}

    Always 200 once the batch is processed, including partial and failed
    batches; per-record outcomes are in "results".
    """
    identity = g.identity
    try:
        data = json_object(request.get_json(silent=True))

        result = sync_service.sync_batch(
            merchant_id=identity.merchant_id,
            actor_id=identity.actor_id,
            device_id=_optional_str(data, "device_id"),
            batch_id=_optional_str(data, "batch_id"),
            records=data.get("sales"),
            staff_id=identity.actor_id if identity.role == ROLE_STAFF else None,
            restrict_shop_id=identity.restrict_shop_id,
        )
        return jsonify(result.to_dict()), 200

    except ServiceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to sync offline sales")
        return jsonify({"error": "Internal server error"}), 500
