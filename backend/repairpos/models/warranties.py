from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow, days_until, as_utc_naive


class Warranty(db.Model):
    """
    Warranty issued for a sold unit, a repair, or manually.

    Expiry is derived: a warranty whose end_date has passed is expired
    whatever its stored status says. The periodic sweep only writes
    EXPIRED into status for query convenience. VOID is terminal.
    """
    __tablename__ = "warranties"
    __table_args__ = (
        db.Index("ix_warranties_status_end", "status", "end_date"),
        db.Index("ix_warranties_sale_product", "sale_id", "product_id"),
        db.CheckConstraint("duration_months >= 1", name="ck_warranties_duration"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warranty_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    source_type = db.Column(db.String(8), nullable=False)  # SALE, REPAIR, MANUAL
    warranty_type = db.Column(db.String(16), nullable=False, default="SHOP")  # MANUFACTURER, SHOP, EXTENDED, REPAIR

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=True)
    repair_job_id = db.Column(db.Integer, db.ForeignKey("repair_jobs.id"), nullable=True, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    serial_number = db.Column(db.String(128), nullable=True)

    customer_name = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=False, index=True)
    customer_email = db.Column(db.String(255), nullable=True)

    duration_months = db.Column(db.Integer, nullable=False)
    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    end_date = db.Column(db.DateTime(timezone=True), nullable=False)

    status = db.Column(db.String(8), nullable=False, default="ACTIVE", index=True)  # ACTIVE, EXPIRED, CLAIMED, VOID

    notes = db.Column(db.Text, nullable=True)

    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    claims = db.relationship(
        "WarrantyClaim",
        backref="warranty",
        lazy=True,
        order_by="WarrantyClaim.id",
        cascade="all, delete-orphan",
    )
    sale = db.relationship("Sale", foreign_keys=[sale_id])
    __mapper_args__ = {"version_id_col": version_id}

    def is_expired(self, now=None) -> bool:
        return as_utc_naive(self.end_date) < (now or utcnow())

    def effective_status(self, now=None) -> str:
        if self.status == "VOID":
            return "VOID"
        if self.status == "EXPIRED" or self.is_expired(now):
            return "EXPIRED"
        return self.status

    def is_valid(self, now=None) -> bool:
        return self.effective_status(now) in ("ACTIVE", "CLAIMED")

    def days_remaining(self, now=None) -> int:
        if not self.is_valid(now):
            return 0
        return max(0, days_until(self.end_date, now))

    def to_dict(self, include_claims: bool = True) -> dict:
        now = utcnow()
        data = {
            "id": self.id,
            "warranty_number": self.warranty_number,
            "source_type": self.source_type,
            "warranty_type": self.warranty_type,
            "sale_id": self.sale_id,
            "sale_item_id": self.sale_item_id,
            "repair_job_id": self.repair_job_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "serial_number": self.serial_number,
            "customer": {
                "name": self.customer_name,
                "phone": self.customer_phone,
                "email": self.customer_email,
            },
            "duration_months": self.duration_months,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "status": self.effective_status(now),
            "stored_status": self.status,
            "is_valid": self.is_valid(now),
            "days_remaining": self.days_remaining(now),
            "notes": self.notes,
            "voided_at": to_utc_z(self.voided_at),
            "voided_by_user_id": self.voided_by_user_id,
            "void_reason": self.void_reason,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_claims:
            data["claims"] = [claim.to_dict() for claim in self.claims]
        return data


class WarrantyClaim(db.Model):
    """
    Claim against a warranty, owned by it.

    The resolution's side effect (repair job, replacement stock
    deduction, refund return) is applied once, when the claim is created.
    """
    __tablename__ = "warranty_claims"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    warranty_id = db.Column(db.Integer, db.ForeignKey("warranties.id"), nullable=False, index=True)

    # CLM-YYYYMMDD-NNNN, sequence shared by all warranties for the day
    claim_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    issue_description = db.Column(db.Text, nullable=False)
    resolution = db.Column(db.String(16), nullable=True)  # REPAIR, REPLACE, REFUND, REJECTED

    claim_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    refund_amount_cents = db.Column(db.Integer, nullable=True)

    repair_job_id = db.Column(db.Integer, db.ForeignKey("repair_jobs.id"), nullable=True)
    replacement_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warranty_id": self.warranty_id,
            "claim_number": self.claim_number,
            "issue_description": self.issue_description,
            "resolution": self.resolution,
            "claim_cost_cents": self.claim_cost_cents,
            "refund_amount_cents": self.refund_amount_cents,
            "repair_job_id": self.repair_job_id,
            "replacement_product_id": self.replacement_product_id,
            "return_id": self.return_id,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
