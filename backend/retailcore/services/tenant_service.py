"""
Multi-Tenant Service: Shop ownership checks

Every shop_id arriving from client input (request body or offline record)
is validated against the caller's merchant before any stock is touched.

SECURITY INVARIANTS:
1. A merchant can only sell from, stock, or sync into its own shops
2. Staff and shop-terminal callers are additionally bound to one shop
3. Denied attempts are logged
"""

from flask import current_app

from ..errors import ServiceError, ValidationError
from ..extensions import db
from ..models import Shop


class ShopNotFoundError(ServiceError):
    """Raised when a shop id does not exist."""
    status_code = 404


class ShopAccessDeniedError(ServiceError):
    """Raised when a shop belongs to another merchant or the caller is bound to another shop."""
    status_code = 403


def require_shop_in_merchant(
    shop_id: int,
    merchant_id: int,
    *,
    restrict_shop_id: int | None = None,
) -> Shop:
    """
    Validate that a shop belongs to the merchant (and, for shop-bound callers,
    that it is their shop).

    Returns:
        The Shop object if valid

    Raises:
        ShopNotFoundError if the shop doesn't exist
        ShopAccessDeniedError if it belongs to a different merchant, is
        inactive, or differs from restrict_shop_id
    """
    shop = db.session.query(Shop).filter_by(id=shop_id).first()
    if not shop:
        raise ShopNotFoundError("shop not found", {"shop_id": shop_id})

    if shop.merchant_id != merchant_id:
        current_app.logger.warning(
            "Cross-merchant shop access denied: shop=%s owner=%s caller_merchant=%s",
            shop_id, shop.merchant_id, merchant_id,
        )
        raise ShopAccessDeniedError("shop does not belong to merchant", {"shop_id": shop_id})

    if restrict_shop_id is not None and shop.id != restrict_shop_id:
        current_app.logger.warning(
            "Shop-bound caller denied access: shop=%s assigned_shop=%s", shop_id, restrict_shop_id
        )
        raise ShopAccessDeniedError("shop not assigned to caller", {"shop_id": shop_id})

    if not shop.is_active:
        raise ShopAccessDeniedError("shop is inactive", {"shop_id": shop_id})

    return shop


def resolve_caller_shop(identity, requested_shop_id: int | None) -> int:
    """
    Pick the shop a request acts on.

    Shop-bound callers (staff, shop terminals) always act on their own shop;
    naming any other shop is denied. Merchant callers must name the shop.
    """
    if identity.is_shop_bound:
        if requested_shop_id is not None and requested_shop_id != identity.shop_id:
            current_app.logger.warning(
                "Shop-bound caller %s requested shop=%s assigned_shop=%s",
                identity.actor_id, requested_shop_id, identity.shop_id,
            )
            raise ShopAccessDeniedError("shop not assigned to caller", {"shop_id": requested_shop_id})
        return identity.shop_id

    if requested_shop_id is None:
        raise ValidationError("shop_id required", {"field": "shop_id"})
    return requested_shop_id
