from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


def derive_repair_payment_status(paid_cents: int, total_cents: int) -> str:
    if total_cents > 0 and paid_cents >= total_cents:
        return "PAID"
    if paid_cents > 0:
        return "PARTIAL"
    return "PENDING"


class RepairJob(db.Model):
    """
    Device repair job.

    Status flow: RECEIVED -> IN_PROGRESS -> READY -> COMPLETED, with
    CANCELLED reachable from any non-terminal state. Totals are
    recomputed from parts whenever labor or parts change (recalculate_totals).
    """
    __tablename__ = "repair_jobs"
    __table_args__ = (
        db.Index("ix_repair_jobs_status_created", "status", "created_at"),
        db.CheckConstraint(
            "total_cost_cents = labor_cost_cents + parts_total_cents",
            name="ck_repair_jobs_total_cost",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    job_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="RECEIVED", index=True)
    priority = db.Column(db.String(8), nullable=False, default="NORMAL")  # LOW, NORMAL, HIGH, URGENT

    # Customer snapshot
    customer_name = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=False, index=True)
    customer_email = db.Column(db.String(255), nullable=True)

    # Device snapshot
    device_type = db.Column(db.String(16), nullable=False, default="OTHER")
    device_brand = db.Column(db.String(64), nullable=True)
    device_model = db.Column(db.String(128), nullable=True)
    serial_number = db.Column(db.String(128), nullable=True)
    accessories = db.Column(db.Text, nullable=True)

    problem_description = db.Column(db.Text, nullable=False)
    diagnosis_notes = db.Column(db.Text, nullable=True)
    repair_notes = db.Column(db.Text, nullable=True)

    estimated_cost_cents = db.Column(db.Integer, nullable=True)
    estimated_completion_date = db.Column(db.DateTime(timezone=True), nullable=True)

    labor_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    parts_total_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    advance_payment_cents = db.Column(db.Integer, nullable=False, default=0)
    advance_paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    advance_received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    final_payment_cents = db.Column(db.Integer, nullable=False, default=0)
    final_paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    final_received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    payment_method = db.Column(db.String(16), nullable=True)

    assigned_to_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    assigned_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    pickup_date = db.Column(db.DateTime(timezone=True), nullable=True)

    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    # Warranty on the repair itself, issued at pickup when > 0
    warranty_months = db.Column(db.Integer, nullable=False, default=0)
    # Set when the job was opened by a warranty claim
    warranty_claim_id = db.Column(db.Integer, nullable=True, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    parts = db.relationship(
        "RepairPart",
        backref="repair_job",
        lazy=True,
        order_by="RepairPart.id",
        cascade="all, delete-orphan",
    )
    assigned_to = db.relationship("User", foreign_keys=[assigned_to_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    def recalculate_totals(self) -> None:
        self.parts_total_cents = sum(part.total_cents for part in self.parts)
        self.total_cost_cents = (self.labor_cost_cents or 0) + self.parts_total_cents

    @property
    def amount_paid_cents(self) -> int:
        return (self.advance_payment_cents or 0) + (self.final_payment_cents or 0)

    @property
    def balance_due_cents(self) -> int:
        return max(0, (self.total_cost_cents or 0) - self.amount_paid_cents)

    @property
    def payment_status(self) -> str:
        return derive_repair_payment_status(self.amount_paid_cents, self.total_cost_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_number": self.job_number,
            "status": self.status,
            "priority": self.priority,
            "customer": {
                "name": self.customer_name,
                "phone": self.customer_phone,
                "email": self.customer_email,
            },
            "device": {
                "type": self.device_type,
                "brand": self.device_brand,
                "model": self.device_model,
                "serial_number": self.serial_number,
                "accessories": self.accessories,
            },
            "problem_description": self.problem_description,
            "diagnosis_notes": self.diagnosis_notes,
            "repair_notes": self.repair_notes,
            "estimated_cost_cents": self.estimated_cost_cents,
            "estimated_completion_date": to_utc_z(self.estimated_completion_date),
            "labor_cost_cents": self.labor_cost_cents,
            "parts_total_cents": self.parts_total_cents,
            "total_cost_cents": self.total_cost_cents,
            "advance_payment_cents": self.advance_payment_cents,
            "final_payment_cents": self.final_payment_cents,
            "balance_due_cents": self.balance_due_cents,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "assigned_to_user_id": self.assigned_to_user_id,
            "assigned_by_user_id": self.assigned_by_user_id,
            "assigned_at": to_utc_z(self.assigned_at),
            "started_at": to_utc_z(self.started_at),
            "completed_at": to_utc_z(self.completed_at),
            "pickup_date": to_utc_z(self.pickup_date),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "warranty_months": self.warranty_months,
            "warranty_claim_id": self.warranty_claim_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "parts": [part.to_dict() for part in self.parts],
        }


class RepairPart(db.Model):
    """Part consumed by a repair job, with the price charged snapshotted."""
    __tablename__ = "repair_parts"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_repair_parts_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    repair_job_id = db.Column(db.Integer, db.ForeignKey("repair_jobs.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
        }
