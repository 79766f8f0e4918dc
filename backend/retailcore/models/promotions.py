from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


PROMO_PERCENTAGE = "percentage"
PROMO_FIXED_AMOUNT = "fixed_amount"
PROMO_TYPES = (PROMO_PERCENTAGE, PROMO_FIXED_AMOUNT)


class Promotion(db.Model):
    """
    Promotions and discounts.

    Can be merchant-wide (shop_id=NULL) or shop-specific.
    promo_value is basis points for percentage (1000 = 10%) and cents for fixed_amount.
    Read-only for the sale engine.
    """
    __tablename__ = "promotions"
    __table_args__ = (
        db.Index("ix_promotions_merchant_active", "merchant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    promo_type = db.Column(db.String(32), nullable=False)
    # Percentage: basis points, not percent (1000 = 10%, 10 = 0.1%). Fixed amount: cents.
    promo_value = db.Column(db.Integer, nullable=False, default=0)
    min_spend_cents = db.Column(db.Integer, nullable=False, default=0)

    # Null bound means unbounded on that side
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "shop_id": self.shop_id,
            "name": self.name,
            "description": self.description,
            "promo_type": self.promo_type,
            "promo_value": self.promo_value,
            "min_spend_cents": self.min_spend_cents,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
