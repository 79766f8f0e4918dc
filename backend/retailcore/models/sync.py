from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class SyncLog(db.Model):
    """One audit row per offline sync batch received from a POS device."""
    __tablename__ = "sync_logs"
    __table_args__ = (
        db.Index("ix_sync_logs_merchant_created", "merchant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False)
    device_id = db.Column(db.String(128), nullable=True)
    batch_id = db.Column(db.String(128), nullable=True)
    actor_id = db.Column(db.Integer, nullable=True)

    total_sales = db.Column(db.Integer, nullable=False, default=0)
    synced_count = db.Column(db.Integer, nullable=False, default=0)
    failed_count = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False)  # success, partial, failed

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "device_id": self.device_id,
            "batch_id": self.batch_id,
            "actor_id": self.actor_id,
            "total_sales": self.total_sales,
            "synced_count": self.synced_count,
            "failed_count": self.failed_count,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
