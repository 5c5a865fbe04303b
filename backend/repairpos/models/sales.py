from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


def derive_payment_status(paid_cents: int, total_cents: int) -> str:
    if paid_cents >= total_cents:
        return "PAID"
    if paid_cents > 0:
        return "PARTIAL"
    return "UNPAID"


class Sale(db.Model):
    """
    Completed sale with snapshotted line items and tender.

    All amounts are in cents. grand_total_cents always equals
    subtotal_cents - discount_total_cents + tax_total_cents.
    Once VOIDED only the void_* columns are ever written.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "status", "created_at"),
        db.CheckConstraint(
            "grand_total_cents = subtotal_cents - discount_total_cents + tax_total_cents",
            name="ck_sales_grand_total",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number, e.g. SL-20240131-0001
    sale_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)  # PENDING, COMPLETED, VOIDED

    # Customer snapshot (optional)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True, index=True)
    customer_email = db.Column(db.String(255), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_type = db.Column(db.String(16), nullable=True)  # PERCENTAGE, FIXED
    discount_value = db.Column(db.Numeric(12, 2), nullable=True)
    discount_total_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_total_cents = db.Column(db.Integer, nullable=False, default=0)
    grand_total_cents = db.Column(db.Integer, nullable=False, default=0)

    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    # Void audit trail
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        order_by="SaleItem.id",
        cascade="all, delete-orphan",
    )
    payments = db.relationship(
        "SalePayment",
        backref="sale",
        lazy=True,
        order_by="SalePayment.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def payment_status(self) -> str:
        return derive_payment_status(self.amount_paid_cents or 0, self.grand_total_cents or 0)

    @property
    def customer(self) -> dict | None:
        if not (self.customer_name or self.customer_phone or self.customer_email):
            return None
        return {"name": self.customer_name, "phone": self.customer_phone, "email": self.customer_email}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "sale_number": self.sale_number,
            "status": self.status,
            "customer": self.customer,
            "subtotal_cents": self.subtotal_cents,
            "discount_type": self.discount_type,
            "discount_value": str(self.discount_value) if self.discount_value is not None else None,
            "discount_total_cents": self.discount_total_cents,
            "tax_total_cents": self.tax_total_cents,
            "grand_total_cents": self.grand_total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "change_cents": self.change_cents,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "voided_by_user_id": self.voided_by_user_id,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class SaleItem(db.Model):
    """Sale line with product name/sku and pricing snapshotted at sale time."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "tax_rate": str(self.tax_rate),
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
        }


class SalePayment(db.Model):
    __tablename__ = "sale_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents >= 0", name="ck_sale_payments_amount"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    method = db.Column(db.String(16), nullable=False)  # CASH, CARD, MOBILE, BANK_TRANSFER, OTHER
    amount_cents = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(128), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "reference": self.reference,
        }


class Return(db.Model):
    """
    Return document against an original sale.

    return_type is REFUND, EXCHANGE or WARRANTY_REFUND. For EXCHANGE,
    exchange_amount_due_cents = new_items_total_cents - total_refund_cents
    and may be negative (money owed back to the customer).
    """
    __tablename__ = "returns"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    original_sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    return_type = db.Column(db.String(24), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="COMPLETED")

    reason = db.Column(db.Text, nullable=True)
    refund_method = db.Column(db.String(16), nullable=True)
    total_refund_cents = db.Column(db.Integer, nullable=False, default=0)

    exchange_sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    new_items_total_cents = db.Column(db.Integer, nullable=True)
    exchange_amount_due_cents = db.Column(db.Integer, nullable=True)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    original_sale = db.relationship(
        "Sale",
        foreign_keys=[original_sale_id],
        backref=db.backref("returns", lazy=True, order_by="Return.id"),
    )
    exchange_sale = db.relationship("Sale", foreign_keys=[exchange_sale_id])
    items = db.relationship(
        "ReturnItem",
        backref="return_doc",
        lazy=True,
        order_by="ReturnItem.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_number": self.return_number,
            "original_sale_id": self.original_sale_id,
            "return_type": self.return_type,
            "status": self.status,
            "reason": self.reason,
            "refund_method": self.refund_method,
            "total_refund_cents": self.total_refund_cents,
            "exchange_sale_id": self.exchange_sale_id,
            "new_items_total_cents": self.new_items_total_cents,
            "exchange_amount_due_cents": self.exchange_amount_due_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "change_cents": self.change_cents,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class ReturnItem(db.Model):
    __tablename__ = "return_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_return_items_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    refund_cents = db.Column(db.Integer, nullable=False)

    condition = db.Column(db.String(16), nullable=False, default="GOOD")  # GOOD, DAMAGED, DEFECTIVE
    restocked = db.Column(db.Boolean, nullable=False, default=True)

    sale_item = db.relationship("SaleItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_item_id": self.sale_item_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "refund_cents": self.refund_cents,
            "condition": self.condition,
            "restocked": self.restocked,
        }
