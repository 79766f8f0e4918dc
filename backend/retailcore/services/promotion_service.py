# Overview: Service-layer operations for promotions; read-only eligibility checks and discount math.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_

from ..errors import ServiceError
from ..extensions import db
from ..models import Promotion
from ..models.promotions import PROMO_FIXED_AMOUNT, PROMO_PERCENTAGE
from ..time_utils import utcnow


class InvalidPromotionError(ServiceError):
    """Raised when a promotion cannot be applied to this sale."""
    status_code = 400


def compute_discount(promotion: Promotion, subtotal_cents: int) -> int:
    """
    Discount in cents for a subtotal.

    - percentage: subtotal * basis_points / 10000, nearest cent, half-up
    - fixed_amount: min(value, subtotal)

    Never exceeds the subtotal, so a sale total is never negative.
    """
    if subtotal_cents <= 0:
        return 0

    if promotion.promo_type == PROMO_PERCENTAGE:
        discount = (subtotal_cents * promotion.promo_value + 5000) // 10000
    elif promotion.promo_type == PROMO_FIXED_AMOUNT:
        discount = promotion.promo_value
    else:
        raise InvalidPromotionError(
            "unsupported promotion type",
            {"promotion_id": promotion.id, "promo_type": promotion.promo_type},
        )

    return max(0, min(discount, subtotal_cents))


def validate_promotion(
    promotion_id: int | None,
    merchant_id: int,
    shop_id: int,
    subtotal_cents: int,
    now: datetime | None = None,
) -> int:
    """
    Check that a promotion may be applied and return the discount in cents.

    Checks run in a fixed order and the first failure wins:
    exists, owned by merchant, active, inside [start_date, end_date],
    merchant-wide or for this shop, subtotal reaches min_spend.

    No promotion_id means no discount and no checks.
    """
    if promotion_id is None:
        return 0

    now = now or utcnow()
    details = {"promotion_id": promotion_id}

    promotion = db.session.query(Promotion).filter_by(id=promotion_id).first()
    if not promotion:
        raise InvalidPromotionError("promotion not found", details)
    if promotion.merchant_id != merchant_id:
        raise InvalidPromotionError("promotion not found", details)
    if not promotion.is_active:
        raise InvalidPromotionError("promotion is not active", details)
    if promotion.start_date and now < promotion.start_date:
        raise InvalidPromotionError("promotion has not started", details)
    if promotion.end_date and now > promotion.end_date:
        raise InvalidPromotionError("promotion has expired", details)
    if promotion.shop_id is not None and promotion.shop_id != shop_id:
        raise InvalidPromotionError("promotion not valid for this shop", details)
    if subtotal_cents < (promotion.min_spend_cents or 0):
        raise InvalidPromotionError(
            "minimum spend not reached",
            {**details, "min_spend_cents": promotion.min_spend_cents, "subtotal_cents": subtotal_cents},
        )

    return compute_discount(promotion, subtotal_cents)


def list_active_promotions(merchant_id: int, shop_id: int | None = None, now: datetime | None = None) -> list[Promotion]:
    """Promotions a POS at shop_id can offer right now (merchant-wide ones included)."""
    now = now or utcnow()
    query = db.session.query(Promotion).filter(
        Promotion.merchant_id == merchant_id,
        Promotion.is_active.is_(True),
        or_(Promotion.start_date.is_(None), Promotion.start_date <= now),
        or_(Promotion.end_date.is_(None), Promotion.end_date >= now),
    )
    if shop_id is not None:
        query = query.filter(or_(Promotion.shop_id.is_(None), Promotion.shop_id == shop_id))
    else:
        query = query.filter(Promotion.shop_id.is_(None))
    return query.order_by(Promotion.id.asc()).all()
