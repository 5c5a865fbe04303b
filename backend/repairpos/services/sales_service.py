# Overview: Sale creation and voiding with their stock and warranty side effects.

"""
Sales.

create_sale and void_sale each run as one database transaction: the
Sale row, its lines and payments, every SALE/RETURN stock adjustment and
every warranty change commit together or not at all. A stock failure on
the third line of five leaves no trace of the first two.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime

from flask import current_app

from ..errors import InsufficientStockError, NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import Sale, SaleItem, SalePayment
from ..time_utils import utcnow
from . import catalog_service, stock_service
from .concurrency import lock_for_update, run_in_transaction
from .document_service import SALE, next_document_number
from .pricing import LinePrice, compute_totals, price_line


PAYMENT_METHODS = {"CASH", "CARD", "MOBILE", "BANK_TRANSFER", "OTHER"}
EXCHANGE_CREDIT = "EXCHANGE_CREDIT"

SALE_STATUSES = {"PENDING", "COMPLETED", "VOIDED"}


def _int_field(entry: dict, name: str, default=None):
    value = entry.get(name, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", {"field": name})
    return value


def normalize_payments(payments) -> list[dict]:
    normalized = []
    for payment in payments or []:
        method = str(payment.get("method") or "").upper()
        if method not in PAYMENT_METHODS:
            raise ValidationError(
                f"payment method must be one of: {', '.join(sorted(PAYMENT_METHODS))}",
                {"method": payment.get("method")},
            )
        amount = _int_field(payment, "amount_cents")
        if amount is None or amount < 0:
            raise ValidationError("payment amount_cents must be >= 0")
        normalized.append({"method": method, "amount_cents": amount, "reference": payment.get("reference")})
    return normalized


def has_warranty_customer(customer: dict | None) -> bool:
    return bool(customer and customer.get("name") and customer.get("phone"))


def price_items(items) -> list[tuple]:
    """
    Load, validate and price requested lines.

    Each product must exist and be active, and the summed requested
    quantity per product must not exceed its current stock. Returns
    (product, LinePrice) pairs in request order.
    """
    if not items:
        raise ValidationError("At least one item is required")

    priced = []
    requested = defaultdict(int)
    for entry in items:
        product_id = _int_field(entry, "product_id")
        quantity = _int_field(entry, "quantity")
        if product_id is None:
            raise ValidationError("product_id is required for every item")
        if quantity is None or quantity <= 0:
            raise ValidationError("quantity must be a positive integer", {"product_id": product_id})

        product = catalog_service.get_active_product(product_id)

        unit_price = _int_field(entry, "unit_price_cents")
        if unit_price is None:
            unit_price = product.selling_price_cents
        discount = _int_field(entry, "discount_cents") or 0

        line = price_line(
            unit_price_cents=unit_price,
            quantity=quantity,
            discount_cents=discount,
            tax_rate=catalog_service.get_tax_rate(product.id),
        )
        requested[product.id] += quantity
        priced.append((product, line))

    for product, _line in priced:
        available = stock_service.get_stock_quantity(product.id)
        if requested[product.id] > available:
            raise InsufficientStockError(
                product_id=product.id,
                available=available,
                requested=requested[product.id],
                product_name=product.name,
            )
    return priced


def _build_sale(
    *,
    priced: list[tuple],
    payments: list[dict],
    user_id: int | None,
    discount_type: str | None = None,
    discount_value=None,
    customer: dict | None = None,
    notes: str | None = None,
) -> Sale:
    lines: list[LinePrice] = [line for _product, line in priced]
    totals = compute_totals(lines, discount_type, discount_value)
    amount_paid = sum(p["amount_cents"] for p in payments)

    customer = customer or {}
    sale = Sale(
        sale_number=next_document_number(SALE),
        status="COMPLETED",
        customer_name=customer.get("name"),
        customer_phone=customer.get("phone"),
        customer_email=customer.get("email"),
        subtotal_cents=totals.subtotal_cents,
        discount_type=discount_type if totals.discount_total_cents else None,
        discount_value=discount_value if discount_type else None,
        discount_total_cents=totals.discount_total_cents,
        tax_total_cents=totals.tax_total_cents,
        grand_total_cents=totals.grand_total_cents,
        amount_paid_cents=amount_paid,
        change_cents=max(0, amount_paid - totals.grand_total_cents),
        notes=notes,
        created_by_user_id=user_id,
        created_at=utcnow(),
    )
    for product, line in priced:
        sale.items.append(SaleItem(
            product_id=product.id,
            product_name=product.name,
            sku=product.sku,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            discount_cents=line.discount_cents,
            tax_rate=line.tax_rate,
            tax_cents=line.tax_cents,
            total_cents=line.total_cents,
        ))
    for payment in payments:
        sale.payments.append(SalePayment(**payment))

    db.session.add(sale)
    db.session.flush()

    for item in sale.items:
        stock_service._adjust_stock_inner(
            product_id=item.product_id,
            adjustment_type="SALE",
            quantity=item.quantity,
            user_id=user_id,
            reason=f"Sale {sale.sale_number}",
            reference_type="SALE",
            reference_id=sale.id,
        )
    return sale


def _create_sale_inner(
    *,
    items,
    payments=None,
    user_id: int | None,
    discount_type: str | None = None,
    discount_value=None,
    customer: dict | None = None,
    notes: str | None = None,
) -> Sale:
    from . import warranty_service

    if discount_type is not None:
        discount_type = str(discount_type).upper()
    normalized_payments = normalize_payments(payments)
    priced = price_items(items)

    sale = _build_sale(
        priced=priced,
        payments=normalized_payments,
        user_id=user_id,
        discount_type=discount_type,
        discount_value=discount_value,
        customer=customer,
        notes=notes,
    )

    if has_warranty_customer(customer):
        warranty_service._create_sale_warranties_inner(sale, user_id=user_id)

    current_app.logger.info(
        "Sale %s created: %s line(s), grand total %s cents, status %s",
        sale.sale_number, len(sale.items), sale.grand_total_cents, sale.payment_status,
    )
    return sale


def create_sale(
    *,
    items,
    payments=None,
    user_id: int | None,
    discount_type: str | None = None,
    discount_value=None,
    customer: dict | None = None,
    notes: str | None = None,
) -> Sale:
    """
    Create a completed sale.

    Payment below the grand total is accepted and shows up as
    payment_status PARTIAL or UNPAID. When the customer has both a name and
    a phone, one warranty is issued per unit of every product that carries
    a warranty.
    """
    return run_in_transaction(lambda: _create_sale_inner(
        items=items,
        payments=payments,
        user_id=user_id,
        discount_type=discount_type,
        discount_value=discount_value,
        customer=customer,
        notes=notes,
    ))


def void_sale(sale_id: int, *, user_id: int | None, reason: str) -> Sale:
    """
    Void a completed sale: restore every line's stock, void its warranties.

    Irreversible. Refused for sales that already have returns recorded.
    """
    from . import warranty_service

    if not reason or not reason.strip():
        raise ValidationError("A void reason is required")

    def _op() -> Sale:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFoundError(f"Sale {sale_id} not found", {"sale_id": sale_id})
        if sale.status == "VOIDED":
            raise StateConflictError(f"Sale {sale.sale_number} is already voided")
        if sale.returns:
            raise StateConflictError(
                f"Sale {sale.sale_number} has returns and cannot be voided",
                {"return_ids": [r.id for r in sale.returns]},
            )

        for item in sale.items:
            stock_service._adjust_stock_inner(
                product_id=item.product_id,
                adjustment_type="RETURN",
                quantity=item.quantity,
                user_id=user_id,
                reason=f"Void of sale {sale.sale_number}",
                reference_type="SALE",
                reference_id=sale.id,
            )

        sale.status = "VOIDED"
        sale.voided_by_user_id = user_id
        sale.voided_at = utcnow()
        sale.void_reason = reason.strip()

        warranty_service._void_sale_warranties_inner(
            sale,
            user_id=user_id,
            reason=f"Sale voided: {sale.sale_number}",
        )
        current_app.logger.info("Sale %s voided by user %s", sale.sale_number, user_id)
        return sale

    return run_in_transaction(_op)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", {"sale_id": sale_id})
    return sale


def get_sale_by_number(sale_number: str) -> Sale:
    sale = db.session.query(Sale).filter_by(sale_number=(sale_number or "").upper()).first()
    if sale is None:
        raise NotFoundError(f"Sale {sale_number} not found", {"sale_number": sale_number})
    return sale


def list_sales(
    *,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    per_page: int = 50,
) -> dict:
    query = db.session.query(Sale)
    if status:
        if status not in SALE_STATUSES:
            raise ValidationError(f"Invalid sale status: {status}")
        query = query.filter(Sale.status == status)
    if start:
        query = query.filter(Sale.created_at >= start)
    if end:
        query = query.filter(Sale.created_at <= end)

    page = max(1, page)
    per_page = min(max(1, per_page), 200)
    total = query.count()
    sales = query.order_by(Sale.id.desc()).offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [s.to_dict(include_items=False) for s in sales],
        "page": page,
        "per_page": per_page,
        "total": total,
    }
