from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class StockRecord(db.Model):
    """
    Current on-hand quantity for one product.

    Mutated only by stock_service.adjust_stock, which writes the paired
    StockAdjustment in the same transaction. version_id guards against
    lost updates when two writers race on the same row.
    """
    __tablename__ = "stock_records"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_stock_records_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, unique=True, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    last_updated = db.Column(db.DateTime(timezone=True), nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("stock_record", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "last_updated": to_utc_z(self.last_updated),
        }


class StockAdjustment(db.Model):
    """
    Immutable, append-only stock movement.

    quantity is always positive; quantity_delta carries the sign.
    new_quantity - previous_quantity == quantity_delta is enforced by the
    database as well as by the service.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.Index("ix_stock_adjustments_product_created", "product_id", "id"),
        db.Index("ix_stock_adjustments_reference", "reference_type", "reference_id"),
        db.CheckConstraint("quantity > 0", name="ck_stock_adjustments_positive_quantity"),
        db.CheckConstraint("new_quantity >= 0", name="ck_stock_adjustments_non_negative"),
        db.CheckConstraint(
            "new_quantity - previous_quantity = quantity_delta",
            name="ck_stock_adjustments_delta_chain",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    adjustment_type = db.Column(db.String(24), nullable=False, index=True)
    direction = db.Column(db.String(8), nullable=False)  # IN / OUT
    quantity = db.Column(db.Integer, nullable=False)
    quantity_delta = db.Column(db.Integer, nullable=False)
    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)

    # Originating entity (SALE, RETURN, REPAIR, WARRANTY_CLAIM, MANUAL)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "adjustment_type": self.adjustment_type,
            "direction": self.direction,
            "quantity": self.quantity,
            "quantity_delta": self.quantity_delta,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "reason": self.reason,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
