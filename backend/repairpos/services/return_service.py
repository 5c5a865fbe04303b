# Overview: Returns, exchanges and warranty refunds against completed sales.

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..errors import NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import Return, ReturnItem, Sale, SaleItem
from ..time_utils import utcnow
from . import sales_service, stock_service
from .concurrency import lock_for_update, run_in_transaction
from .document_service import RETURN, next_document_number
from .pricing import round_cents


RETURN_TYPES = {"REFUND", "EXCHANGE", "WARRANTY_REFUND"}
REFUND_METHODS = {"CASH", "CARD", "MOBILE", "BANK_TRANSFER", "STORE_CREDIT", "OTHER"}
ITEM_CONDITIONS = {"GOOD", "DAMAGED", "DEFECTIVE"}


def returned_quantity(sale_item_id: int) -> int:
    """Units of a sale line already covered by earlier returns."""
    total = (
        db.session.query(func.coalesce(func.sum(ReturnItem.quantity), 0))
        .filter(ReturnItem.sale_item_id == sale_item_id)
        .scalar()
    )
    return int(total or 0)


def line_refund_cents(sale_item: SaleItem, quantity: int) -> int:
    """unit price * quantity minus the returned units' share of the line discount."""
    discount_share = round_cents(Decimal(sale_item.discount_cents) * quantity / sale_item.quantity)
    return sale_item.unit_price_cents * quantity - discount_share


def _load_returnable_sale(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", {"sale_id": sale_id})
    if sale.status == "VOIDED":
        raise StateConflictError(f"Cannot return items from voided sale {sale.sale_number}")
    return sale


def _build_return_lines(sale: Sale, items) -> list[ReturnItem]:
    """
    Match requested lines to the original sale and price their refunds.

    The quantity returned for a sale line, across this and all earlier
    returns, may not exceed the quantity purchased.
    """
    if not items:
        raise ValidationError("At least one return item is required")

    by_id = {item.id: item for item in sale.items}
    requested = defaultdict(int)
    lines = []
    for entry in items:
        sale_item_id = entry.get("sale_item_id")
        quantity = entry.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("Return quantity must be a positive integer", {"sale_item_id": sale_item_id})
        sale_item = by_id.get(sale_item_id)
        if sale_item is None:
            raise ValidationError(
                f"Item {sale_item_id} not found in sale {sale.sale_number}",
                {"sale_item_id": sale_item_id},
            )

        condition = str(entry.get("condition") or "GOOD").upper()
        if condition not in ITEM_CONDITIONS:
            raise ValidationError(f"condition must be one of: {', '.join(sorted(ITEM_CONDITIONS))}")

        requested[sale_item.id] += quantity
        already = returned_quantity(sale_item.id)
        if already + requested[sale_item.id] > sale_item.quantity:
            raise ValidationError(
                f"Return quantity exceeds purchased quantity for {sale_item.product_name}",
                {
                    "sale_item_id": sale_item.id,
                    "purchased": sale_item.quantity,
                    "already_returned": already,
                    "requested": requested[sale_item.id],
                },
            )

        lines.append(ReturnItem(
            sale_item_id=sale_item.id,
            product_id=sale_item.product_id,
            product_name=sale_item.product_name,
            quantity=quantity,
            unit_price_cents=sale_item.unit_price_cents,
            refund_cents=line_refund_cents(sale_item, quantity),
            condition=condition,
            restocked=True,
        ))
    return lines


def _restock_and_release(ret: Return, sale: Sale, *, user_id: int | None) -> None:
    from . import warranty_service

    for line in ret.items:
        stock_service._adjust_stock_inner(
            product_id=line.product_id,
            adjustment_type="RETURN",
            quantity=line.quantity,
            user_id=user_id,
            reason=f"Return {ret.return_number}",
            reference_type="RETURN",
            reference_id=ret.id,
        )
        warranty_service._void_returned_warranties_inner(
            sale,
            product_id=line.product_id,
            user_id=user_id,
            reason=f"Product returned: {ret.return_number}",
        )


def _refund_method(value) -> str | None:
    if value is None:
        return None
    method = str(value).upper()
    if method not in REFUND_METHODS:
        raise ValidationError(f"refund_method must be one of: {', '.join(sorted(REFUND_METHODS))}")
    return method


def create_return(
    *,
    original_sale_id: int,
    items,
    user_id: int | None,
    reason: str | None = None,
    refund_method: str | None = "CASH",
    notes: str | None = None,
) -> Return:
    """
    Refund returned units of a completed sale.

    Restocks every returned unit and voids the warranties issued for them.
    """
    method = _refund_method(refund_method)

    def _op() -> Return:
        sale = _load_returnable_sale(original_sale_id)
        lines = _build_return_lines(sale, items)

        ret = Return(
            return_number=next_document_number(RETURN),
            original_sale_id=sale.id,
            return_type="REFUND",
            status="COMPLETED",
            reason=reason,
            refund_method=method,
            total_refund_cents=sum(line.refund_cents for line in lines),
            notes=notes,
            created_by_user_id=user_id,
            created_at=utcnow(),
        )
        ret.items.extend(lines)
        db.session.add(ret)
        db.session.flush()

        _restock_and_release(ret, sale, user_id=user_id)
        current_app.logger.info(
            "Return %s against sale %s: refund %s cents",
            ret.return_number, sale.sale_number, ret.total_refund_cents,
        )
        return ret

    return run_in_transaction(_op)


def create_exchange(
    *,
    original_sale_id: int,
    return_items,
    new_items,
    payments=None,
    user_id: int | None,
    reason: str | None = None,
    notes: str | None = None,
) -> Return:
    """
    Return items and sell replacements in one step.

    exchange_amount_due = new items total - total refund. When positive the
    customer must pay at least that much; when negative the difference is
    owed back to the customer. The new sale is paid by an EXCHANGE_CREDIT
    tender for the refunded value plus the customer's own payments.
    """
    from . import warranty_service

    def _op() -> Return:
        sale = _load_returnable_sale(original_sale_id)
        lines = _build_return_lines(sale, return_items)
        total_refund = sum(line.refund_cents for line in lines)

        priced = sales_service.price_items(new_items)
        new_items_total = sum(line.total_cents for _product, line in priced)
        amount_due = new_items_total - total_refund

        customer_payments = sales_service.normalize_payments(payments)
        amount_paid = sum(p["amount_cents"] for p in customer_payments)
        if amount_due > 0 and amount_paid < amount_due:
            raise ValidationError(
                "Insufficient payment for exchange",
                {"amount_due_cents": amount_due, "amount_paid_cents": amount_paid},
            )

        return_number = next_document_number(RETURN)

        credit = min(total_refund, new_items_total)
        sale_payments = []
        if credit:
            sale_payments.append({
                "method": sales_service.EXCHANGE_CREDIT,
                "amount_cents": credit,
                "reference": return_number,
            })
        sale_payments.extend(customer_payments)

        customer = sale.customer
        exchange_sale = sales_service._build_sale(
            priced=priced,
            payments=sale_payments,
            user_id=user_id,
            customer=customer,
            notes=f"Exchange from Return: {return_number}",
        )

        ret = Return(
            return_number=return_number,
            original_sale_id=sale.id,
            return_type="EXCHANGE",
            status="COMPLETED",
            reason=reason,
            refund_method="EXCHANGE" if amount_due >= 0 else "CASH",
            total_refund_cents=total_refund,
            exchange_sale_id=exchange_sale.id,
            new_items_total_cents=new_items_total,
            exchange_amount_due_cents=amount_due,
            amount_paid_cents=amount_paid,
            change_cents=max(0, amount_paid - max(0, amount_due)),
            notes=notes,
            created_by_user_id=user_id,
            created_at=utcnow(),
        )
        ret.items.extend(lines)
        db.session.add(ret)
        db.session.flush()

        _restock_and_release(ret, sale, user_id=user_id)
        if sales_service.has_warranty_customer(customer):
            warranty_service._create_sale_warranties_inner(exchange_sale, user_id=user_id)

        current_app.logger.info(
            "Exchange %s against sale %s: new sale %s, amount due %s cents",
            ret.return_number, sale.sale_number, exchange_sale.sale_number, amount_due,
        )
        return ret

    return run_in_transaction(_op)


def _create_warranty_refund_inner(
    *,
    warranty,
    refund_cents: int,
    user_id: int | None,
    claim_number: str,
) -> Return:
    """
    One-unit WARRANTY_REFUND return for a defective unit.

    The unit is not restocked and no stock adjustment is written.
    """
    ret = Return(
        return_number=next_document_number(RETURN),
        original_sale_id=warranty.sale_id,
        return_type="WARRANTY_REFUND",
        status="COMPLETED",
        reason=f"Warranty claim {claim_number}",
        refund_method="CASH",
        total_refund_cents=refund_cents,
        notes=f"Warranty {warranty.warranty_number}",
        created_by_user_id=user_id,
        created_at=utcnow(),
    )
    ret.items.append(ReturnItem(
        sale_item_id=warranty.sale_item_id,
        product_id=warranty.product_id,
        product_name=warranty.product_name,
        quantity=1,
        unit_price_cents=refund_cents,
        refund_cents=refund_cents,
        condition="DEFECTIVE",
        restocked=False,
    ))
    db.session.add(ret)
    db.session.flush()
    return ret


def get_return(return_id: int) -> Return:
    ret = db.session.get(Return, return_id)
    if ret is None:
        raise NotFoundError(f"Return {return_id} not found", {"return_id": return_id})
    return ret


def get_return_by_number(return_number: str) -> Return:
    ret = db.session.query(Return).filter_by(return_number=(return_number or "").upper()).first()
    if ret is None:
        raise NotFoundError(f"Return {return_number} not found", {"return_number": return_number})
    return ret


def list_returns(*, sale_id: int | None = None, return_type: str | None = None, page: int = 1, per_page: int = 50) -> dict:
    query = db.session.query(Return)
    if sale_id is not None:
        query = query.filter(Return.original_sale_id == sale_id)
    if return_type:
        if return_type not in RETURN_TYPES:
            raise ValidationError(f"Invalid return type: {return_type}")
        query = query.filter(Return.return_type == return_type)

    page = max(1, page)
    per_page = min(max(1, per_page), 200)
    total = query.count()
    returns = query.order_by(Return.id.desc()).offset((page - 1) * per_page).limit(per_page).all()
    return {"items": [r.to_dict() for r in returns], "page": page, "per_page": per_page, "total": total}
