# Overview: Stock ledger; the only code path that changes on-hand quantities.

"""
Stock ledger.

A StockRecord holds the current quantity per product; every change to it
is paired with an immutable StockAdjustment written in the same flush.
Callers that already run inside a transaction use _adjust_stock_inner;
everything else goes through adjust_stock, which commits on its own.

Direction table:
  IN:  ADDITION, PURCHASE, RETURN, TRANSFER_IN
  OUT: REDUCTION, SALE, DAMAGE, THEFT, TRANSFER_OUT, WARRANTY_REPLACE
  CORRECTION: caller must pass direction=INCREASE or DECREASE
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import InsufficientStockError, InvalidAdjustmentType, InvariantViolation, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, StockAdjustment, StockRecord
from ..time_utils import to_utc_z, utcnow
from .concurrency import lock_for_update, run_in_transaction


IN = "IN"
OUT = "OUT"

ADJUSTMENT_DIRECTIONS = {
    "ADDITION": IN,
    "PURCHASE": IN,
    "RETURN": IN,
    "TRANSFER_IN": IN,
    "REDUCTION": OUT,
    "SALE": OUT,
    "DAMAGE": OUT,
    "THEFT": OUT,
    "TRANSFER_OUT": OUT,
    "WARRANTY_REPLACE": OUT,
    "CORRECTION": None,
}

CORRECTION_DIRECTIONS = {
    "INCREASE": IN,
    "IN": IN,
    "DECREASE": OUT,
    "OUT": OUT,
}

REFERENCE_TYPES = {"SALE", "RETURN", "REPAIR", "WARRANTY_CLAIM", "MANUAL"}


@dataclass
class AdjustmentResult:
    previous_quantity: int
    new_quantity: int
    adjustment: StockAdjustment

    def to_dict(self) -> dict:
        return {
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "adjustment": self.adjustment.to_dict(),
        }


def resolve_direction(adjustment_type: str, direction: str | None = None) -> str:
    """Map an adjustment type (plus explicit direction for CORRECTION) to IN or OUT."""
    if adjustment_type not in ADJUSTMENT_DIRECTIONS:
        raise InvalidAdjustmentType(
            f"Invalid adjustment type: {adjustment_type}",
            {"valid_types": sorted(ADJUSTMENT_DIRECTIONS)},
        )

    fixed = ADJUSTMENT_DIRECTIONS[adjustment_type]
    if fixed is not None:
        if direction is not None and CORRECTION_DIRECTIONS.get(str(direction).upper()) != fixed:
            raise ValidationError(f"{adjustment_type} adjustments always move stock {fixed}")
        return fixed

    if direction is None:
        raise ValidationError("CORRECTION adjustments require direction INCREASE or DECREASE")
    resolved = CORRECTION_DIRECTIONS.get(str(direction).upper())
    if resolved is None:
        raise ValidationError(f"Invalid correction direction: {direction}")
    return resolved


def adjustment_types() -> list[dict]:
    return [
        {"type": name, "direction": direction or "EITHER"}
        for name, direction in ADJUSTMENT_DIRECTIONS.items()
    ]


def get_or_create_stock(product_id: int, *, lock: bool = False) -> StockRecord:
    """
    Return the product's StockRecord, creating it at quantity 0 if missing.

    This is the only place StockRecord rows are created. Must run inside a
    transaction; it flushes but never commits.
    """
    query = db.session.query(StockRecord).filter_by(product_id=product_id)
    if lock:
        query = lock_for_update(query)
    record = query.first()
    if record:
        return record

    if db.session.get(Product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})

    try:
        with db.session.begin_nested():
            record = StockRecord(product_id=product_id, quantity=0, last_updated=utcnow())
            db.session.add(record)
    except IntegrityError:
        record = query.first()
        if record is None:
            raise
    return record


def get_stock_quantity(product_id: int) -> int:
    """Current quantity; a product without a StockRecord has 0."""
    quantity = (
        db.session.query(StockRecord.quantity)
        .filter_by(product_id=product_id)
        .scalar()
    )
    return quantity or 0


def _adjust_stock_inner(
    *,
    product_id: int,
    adjustment_type: str,
    quantity: int,
    user_id: int | None = None,
    reason: str | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    direction: str | None = None,
) -> AdjustmentResult:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer", {"quantity": quantity})
    if reference_type is not None and reference_type not in REFERENCE_TYPES:
        raise ValidationError(f"Invalid reference type: {reference_type}")

    resolved = resolve_direction(adjustment_type, direction)

    record = get_or_create_stock(product_id, lock=True)
    previous = record.quantity
    delta = quantity if resolved == IN else -quantity
    new_quantity = previous + delta

    if new_quantity < 0:
        product = db.session.get(Product, product_id)
        raise InsufficientStockError(
            product_id=product_id,
            available=previous,
            requested=quantity,
            product_name=product.name if product else None,
        )

    now = utcnow()
    record.quantity = new_quantity
    record.last_updated = now

    adjustment = StockAdjustment(
        product_id=product_id,
        adjustment_type=adjustment_type,
        direction=resolved,
        quantity=quantity,
        quantity_delta=delta,
        previous_quantity=previous,
        new_quantity=new_quantity,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
        created_by_user_id=user_id,
        created_at=now,
    )
    db.session.add(adjustment)
    db.session.flush()

    if adjustment.new_quantity - adjustment.previous_quantity != adjustment.quantity_delta:
        raise InvariantViolation("Stock adjustment delta does not match quantities", adjustment.to_dict())

    current_app.logger.info(
        "Stock %s product=%s %s %s: %s -> %s (ref %s:%s)",
        adjustment_type, product_id, resolved, quantity, previous, new_quantity,
        reference_type, reference_id,
    )
    return AdjustmentResult(previous_quantity=previous, new_quantity=new_quantity, adjustment=adjustment)


def adjust_stock(
    *,
    product_id: int,
    adjustment_type: str,
    quantity: int,
    user_id: int | None = None,
    reason: str | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    direction: str | None = None,
) -> AdjustmentResult:
    """
    Apply one stock movement and its audit record atomically.

    Raises InsufficientStockError (nothing written) when an OUT movement
    would take the quantity below zero.
    """
    return run_in_transaction(lambda: _adjust_stock_inner(
        product_id=product_id,
        adjustment_type=adjustment_type,
        quantity=quantity,
        user_id=user_id,
        reason=reason,
        reference_type=reference_type or "MANUAL",
        reference_id=reference_id,
        direction=direction,
    ))


def list_stock(*, include_inactive: bool = False) -> list[dict]:
    query = (
        db.session.query(Product, StockRecord.quantity, StockRecord.last_updated)
        .outerjoin(StockRecord, StockRecord.product_id == Product.id)
    )
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))

    rows = []
    for product, quantity, last_updated in query.order_by(Product.name).all():
        rows.append({
            "product_id": product.id,
            "sku": product.sku,
            "name": product.name,
            "quantity": quantity or 0,
            "min_stock_level": product.min_stock_level,
            "last_updated": to_utc_z(last_updated),
        })
    return rows


def get_low_stock() -> list[dict]:
    """
    Active products whose quantity is at or below min_stock_level,
    largest shortfall first.
    """
    rows = (
        db.session.query(Product, StockRecord.quantity)
        .outerjoin(StockRecord, StockRecord.product_id == Product.id)
        .filter(Product.is_active.is_(True))
        .all()
    )

    low = []
    for product, quantity in rows:
        quantity = quantity or 0
        min_level = product.min_stock_level or 0
        if quantity <= min_level:
            low.append({
                "product_id": product.id,
                "sku": product.sku,
                "name": product.name,
                "quantity": quantity,
                "min_stock_level": min_level,
                "shortfall": min_level - quantity,
            })

    low.sort(key=lambda row: (-row["shortfall"], row["name"]))
    return low


def get_stock_history(
    product_id: int,
    *,
    adjustment_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    per_page: int = 50,
) -> dict:
    """Adjustments for one product, newest first, paginated."""
    if db.session.get(Product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})
    if adjustment_type is not None and adjustment_type not in ADJUSTMENT_DIRECTIONS:
        raise InvalidAdjustmentType(f"Invalid adjustment type: {adjustment_type}")

    page = max(1, page)
    per_page = min(max(1, per_page), 200)

    query = db.session.query(StockAdjustment).filter(StockAdjustment.product_id == product_id)
    if adjustment_type:
        query = query.filter(StockAdjustment.adjustment_type == adjustment_type)
    if start:
        query = query.filter(StockAdjustment.created_at >= start)
    if end:
        query = query.filter(StockAdjustment.created_at <= end)

    total = query.count()
    items = (
        query.order_by(StockAdjustment.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "product_id": product_id,
        "current_quantity": get_stock_quantity(product_id),
        "items": [adj.to_dict() for adj in items],
        "page": page,
        "per_page": per_page,
        "total": total,
        "pages": (total + per_page - 1) // per_page,
    }


def get_inventory_value() -> dict:
    """Stock valued at cost and at selling price across active products."""
    row = (
        db.session.query(
            func.coalesce(func.sum(StockRecord.quantity * Product.cost_price_cents), 0),
            func.coalesce(func.sum(StockRecord.quantity * Product.selling_price_cents), 0),
            func.coalesce(func.sum(StockRecord.quantity), 0),
            func.count(Product.id),
        )
        .join(StockRecord, StockRecord.product_id == Product.id)
        .filter(Product.is_active.is_(True))
        .one()
    )
    cost_value, retail_value, units, product_count = (int(v or 0) for v in row)
    return {
        "total_cost_value_cents": cost_value,
        "total_retail_value_cents": retail_value,
        "potential_profit_cents": retail_value - cost_value,
        "total_units": units,
        "product_count": product_count,
    }


def verify_adjustment_chain(product_id: int) -> list[dict]:
    """
    Walk a product's adjustments oldest first and report every break:
    a delta that does not match its quantities, an adjustment whose
    previous_quantity differs from the prior new_quantity, or a final
    new_quantity that differs from the StockRecord.
    """
    problems = []
    expected_previous = 0
    adjustments = (
        db.session.query(StockAdjustment)
        .filter_by(product_id=product_id)
        .order_by(StockAdjustment.id)
        .all()
    )
    for adj in adjustments:
        if adj.new_quantity - adj.previous_quantity != adj.quantity_delta:
            problems.append({"adjustment_id": adj.id, "problem": "delta_mismatch"})
        if adj.previous_quantity != expected_previous:
            problems.append({
                "adjustment_id": adj.id,
                "problem": "chain_break",
                "expected_previous": expected_previous,
                "actual_previous": adj.previous_quantity,
            })
        expected_previous = adj.new_quantity

    current = get_stock_quantity(product_id)
    if current != expected_previous:
        problems.append({"problem": "record_mismatch", "ledger": expected_previous, "record": current})
    return problems
