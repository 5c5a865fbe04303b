# Overview: Warranty issuance, validity checks, claims and the expiry sweep.

"""
Warranties.

Expiry is a derived predicate (end_date < now) evaluated on every read;
expire_warranties() only copies that fact into the status column so
list queries can filter on it. VOID is terminal.

Claims are owned by their warranty. A claim's resolution side effect
(repair job, replacement stock deduction, refund return) is applied
exactly once, inside the transaction that records the claim.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import and_, func, or_

from ..errors import NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import Product, RepairJob, Sale, SaleItem, Warranty, WarrantyClaim
from ..time_utils import add_months, as_utc_naive, utcnow
from ..utils.fsm import TransitionValidator
from . import catalog_service, stock_service
from .concurrency import lock_for_update, run_in_transaction
from .document_service import CLAIM, WARRANTY, next_document_number
from .pricing import round_cents


ACTIVE = "ACTIVE"
CLAIMED = "CLAIMED"
EXPIRED = "EXPIRED"
VOID = "VOID"

WARRANTY_FSM = TransitionValidator({
    ACTIVE: {CLAIMED, EXPIRED, VOID},
    CLAIMED: {EXPIRED, VOID},
    EXPIRED: {VOID},
    VOID: set(),
})

SOURCE_TYPES = {"SALE", "REPAIR", "MANUAL"}
WARRANTY_TYPES = {"MANUFACTURER", "SHOP", "EXTENDED", "REPAIR"}
CLAIM_RESOLUTIONS = {"REPAIR", "REPLACE", "REFUND", "REJECTED"}


def _get_warranty_for_update(warranty_id: int) -> Warranty:
    warranty = lock_for_update(db.session.query(Warranty).filter_by(id=warranty_id)).first()
    if warranty is None:
        raise NotFoundError(f"Warranty {warranty_id} not found", {"warranty_id": warranty_id})
    return warranty


def _new_warranty(
    *,
    source_type: str,
    warranty_type: str,
    product_name: str,
    customer: dict,
    duration_months: int,
    start_date: datetime,
    user_id: int | None,
    **fields,
) -> Warranty:
    if isinstance(duration_months, bool) or not isinstance(duration_months, int) or duration_months < 1:
        raise ValidationError("duration_months must be at least 1", {"duration_months": duration_months})
    if not customer or not customer.get("name") or not customer.get("phone"):
        raise ValidationError("Customer name and phone are required for a warranty")

    start = as_utc_naive(start_date)
    warranty = Warranty(
        warranty_number=next_document_number(WARRANTY),
        source_type=source_type,
        warranty_type=warranty_type or "SHOP",
        product_name=product_name,
        customer_name=customer["name"],
        customer_phone=customer["phone"],
        customer_email=customer.get("email"),
        duration_months=duration_months,
        start_date=start,
        end_date=add_months(start, duration_months),
        status=ACTIVE,
        created_by_user_id=user_id,
        created_at=utcnow(),
        **fields,
    )
    db.session.add(warranty)
    return warranty


def _create_sale_warranties_inner(sale: Sale, *, user_id: int | None) -> list[Warranty]:
    """One warranty per sold unit of every product that carries one."""
    customer = sale.customer
    created = []
    for item in sale.items:
        product = db.session.get(Product, item.product_id)
        if product is None or not product.warranty_months:
            continue
        for _ in range(item.quantity):
            created.append(_new_warranty(
                source_type="SALE",
                warranty_type=product.warranty_type,
                product_name=item.product_name,
                customer=customer,
                duration_months=product.warranty_months,
                start_date=sale.created_at,
                user_id=user_id,
                sale_id=sale.id,
                sale_item_id=item.id,
                product_id=product.id,
            ))
    if created:
        db.session.flush()
        current_app.logger.info("Issued %s warranty(ies) for sale %s", len(created), sale.sale_number)
    return created


def _create_repair_warranty_inner(job: RepairJob, *, user_id: int | None) -> Warranty:
    device = " ".join(part for part in (job.device_brand, job.device_model) if part)
    warranty = _new_warranty(
        source_type="REPAIR",
        warranty_type="REPAIR",
        product_name=f"Repair: {device or job.device_type}",
        customer={"name": job.customer_name, "phone": job.customer_phone, "email": job.customer_email},
        duration_months=job.warranty_months,
        start_date=job.pickup_date or utcnow(),
        user_id=user_id,
        repair_job_id=job.id,
        serial_number=job.serial_number,
    )
    db.session.flush()
    current_app.logger.info("Issued repair warranty %s for job %s", warranty.warranty_number, job.job_number)
    return warranty


def _void_inner(warranty: Warranty, *, user_id: int | None, reason: str) -> None:
    WARRANTY_FSM.assert_can_transition(warranty.status, VOID)
    warranty.status = VOID
    warranty.voided_at = utcnow()
    warranty.voided_by_user_id = user_id
    warranty.void_reason = reason


def _void_sale_warranties_inner(sale: Sale, *, user_id: int | None, reason: str) -> int:
    warranties = lock_for_update(
        db.session.query(Warranty).filter(Warranty.sale_id == sale.id, Warranty.status != VOID)
    ).all()
    for warranty in warranties:
        _void_inner(warranty, user_id=user_id, reason=reason)
    return len(warranties)


def _void_returned_warranties_inner(sale: Sale, *, product_id: int, user_id: int | None, reason: str) -> int:
    """Void every ACTIVE warranty the sale issued for a returned product, kept units included."""
    warranties = lock_for_update(
        db.session.query(Warranty).filter(
            Warranty.sale_id == sale.id,
            Warranty.product_id == product_id,
            Warranty.status == ACTIVE,
        )
    ).all()
    for warranty in warranties:
        _void_inner(warranty, user_id=user_id, reason=reason)
    return len(warranties)


def create_warranty(
    *,
    customer: dict,
    user_id: int | None,
    product_id: int | None = None,
    product_name: str | None = None,
    duration_months: int | None = None,
    warranty_type: str | None = None,
    serial_number: str | None = None,
    start_date: datetime | None = None,
    sale_id: int | None = None,
    notes: str | None = None,
) -> Warranty:
    """
    Issue a warranty by hand.

    duration_months defaults to the product's warranty months, then to
    DEFAULT_WARRANTY_MONTHS.
    """
    if warranty_type is not None:
        warranty_type = warranty_type.upper()
        if warranty_type not in WARRANTY_TYPES:
            raise ValidationError(f"warranty_type must be one of: {', '.join(sorted(WARRANTY_TYPES))}")

    def _op() -> Warranty:
        product = catalog_service.get_product(product_id) if product_id is not None else None
        if product is None and not product_name:
            raise ValidationError("product_id or product_name is required")
        if sale_id is not None and db.session.get(Sale, sale_id) is None:
            raise NotFoundError(f"Sale {sale_id} not found", {"sale_id": sale_id})

        months = duration_months
        if months is None:
            months = (product.warranty_months if product else 0) or current_app.config["DEFAULT_WARRANTY_MONTHS"]

        warranty = _new_warranty(
            source_type="MANUAL",
            warranty_type=warranty_type or (product.warranty_type if product else "SHOP"),
            product_name=product.name if product else product_name,
            customer=customer,
            duration_months=months,
            start_date=start_date or utcnow(),
            user_id=user_id,
            product_id=product.id if product else None,
            serial_number=serial_number,
            sale_id=sale_id,
            notes=notes,
        )
        db.session.flush()
        return warranty

    return run_in_transaction(_op)


def check_validity(warranty_id: int, *, now: datetime | None = None) -> dict:
    warranty = get_warranty(warranty_id)
    now = now or utcnow()
    status = warranty.effective_status(now)
    result = {
        "warranty_number": warranty.warranty_number,
        "is_valid": warranty.is_valid(now),
        "status": status,
        "days_remaining": warranty.days_remaining(now),
    }
    if status == VOID:
        result["reason"] = "Warranty has been voided"
    elif status == EXPIRED:
        result["reason"] = "Warranty has expired"
    return result


def _refund_amount_cents(warranty: Warranty) -> int:
    item = db.session.get(SaleItem, warranty.sale_item_id) if warranty.sale_item_id else None
    if item is None and warranty.sale_id is not None:
        item = (
            db.session.query(SaleItem)
            .filter_by(sale_id=warranty.sale_id, product_id=warranty.product_id)
            .order_by(SaleItem.id)
            .first()
        )
    if item is not None and item.quantity:
        return round_cents(Decimal(item.total_cents) / item.quantity)
    return catalog_service.get_selling_price(warranty.product_id)


def create_claim(
    warranty_id: int,
    *,
    issue_description: str,
    user_id: int | None,
    resolution: str | None = None,
    repair_job_id: int | None = None,
    replacement_product_id: int | None = None,
    notes: str | None = None,
) -> WarrantyClaim:
    """
    Record a claim against a currently valid warranty and apply its
    resolution.

    REPAIR links repair_job_id or opens a new job for the device.
    REPLACE takes one unit of the replacement (default: the warranted
    product) out of stock at cost. REFUND writes a WARRANTY_REFUND return
    for one defective unit and voids the warranty. REJECTED and no
    resolution have no side effect. An ACTIVE warranty becomes CLAIMED
    unless the claim voided it.
    """
    from . import repair_service, return_service

    if not issue_description or not issue_description.strip():
        raise ValidationError("issue_description is required")
    if resolution is not None:
        resolution = resolution.upper()
        if resolution not in CLAIM_RESOLUTIONS:
            raise ValidationError(f"resolution must be one of: {', '.join(sorted(CLAIM_RESOLUTIONS))}")

    def _op() -> WarrantyClaim:
        warranty = _get_warranty_for_update(warranty_id)
        if not warranty.is_valid():
            raise StateConflictError(
                f"Warranty {warranty.warranty_number} is not valid ({warranty.effective_status()})",
                {"status": warranty.effective_status()},
            )
        if resolution == "REFUND" and warranty.product_id is None:
            raise ValidationError("Refund claims need a warranty issued for a product")

        claim = WarrantyClaim(
            warranty_id=warranty.id,
            claim_number=next_document_number(CLAIM),
            issue_description=issue_description.strip(),
            resolution=resolution,
            claim_cost_cents=0,
            notes=notes,
            created_by_user_id=user_id,
            created_at=utcnow(),
        )
        warranty.claims.append(claim)
        db.session.flush()

        if resolution == "REPAIR":
            if repair_job_id is not None:
                job = db.session.get(RepairJob, repair_job_id)
                if job is None:
                    raise NotFoundError(f"Repair job {repair_job_id} not found", {"repair_job_id": repair_job_id})
            else:
                job = repair_service._create_repair_inner(
                    customer={
                        "name": warranty.customer_name,
                        "phone": warranty.customer_phone,
                        "email": warranty.customer_email,
                    },
                    device={"model": warranty.product_name, "serial_number": warranty.serial_number},
                    problem_description=f"Warranty Claim: {claim.issue_description}",
                    user_id=user_id,
                    warranty_claim_id=claim.id,
                )
            claim.repair_job_id = job.id

        elif resolution == "REPLACE":
            product = catalog_service.get_product(replacement_product_id or warranty.product_id)
            stock_service._adjust_stock_inner(
                product_id=product.id,
                adjustment_type="WARRANTY_REPLACE",
                quantity=1,
                user_id=user_id,
                reason=f"Warranty replacement {claim.claim_number}",
                reference_type="WARRANTY_CLAIM",
                reference_id=claim.id,
            )
            claim.replacement_product_id = product.id
            claim.claim_cost_cents = product.cost_price_cents

        elif resolution == "REFUND":
            amount = _refund_amount_cents(warranty)
            ret = return_service._create_warranty_refund_inner(
                warranty=warranty,
                refund_cents=amount,
                user_id=user_id,
                claim_number=claim.claim_number,
            )
            claim.return_id = ret.id
            claim.refund_amount_cents = amount
            claim.claim_cost_cents = amount
            _void_inner(warranty, user_id=user_id, reason=f"Refunded via claim {claim.claim_number}")

        if warranty.status == ACTIVE:
            warranty.status = CLAIMED

        current_app.logger.info(
            "Claim %s on warranty %s (%s)", claim.claim_number, warranty.warranty_number, resolution or "unresolved"
        )
        return claim

    return run_in_transaction(_op)


def update_claim(
    claim_id: int,
    *,
    notes: str | None = None,
    repair_job_id: int | None = None,
) -> WarrantyClaim:
    """Notes, and the repair job link of REPAIR claims. Resolutions are never re-applied."""
    def _op() -> WarrantyClaim:
        claim = db.session.get(WarrantyClaim, claim_id)
        if claim is None:
            raise NotFoundError(f"Warranty claim {claim_id} not found", {"claim_id": claim_id})
        if repair_job_id is not None:
            if claim.resolution != "REPAIR":
                raise StateConflictError("Only REPAIR claims can be linked to a repair job")
            if db.session.get(RepairJob, repair_job_id) is None:
                raise NotFoundError(f"Repair job {repair_job_id} not found", {"repair_job_id": repair_job_id})
            claim.repair_job_id = repair_job_id
        if notes is not None:
            claim.notes = notes
        claim.updated_at = utcnow()
        return claim

    return run_in_transaction(_op)


def void_warranty(warranty_id: int, *, user_id: int | None, reason: str) -> Warranty:
    if not reason or not reason.strip():
        raise ValidationError("A void reason is required")

    def _op() -> Warranty:
        warranty = _get_warranty_for_update(warranty_id)
        if warranty.status == VOID:
            raise StateConflictError(f"Warranty {warranty.warranty_number} is already void")
        _void_inner(warranty, user_id=user_id, reason=reason.strip())
        return warranty

    return run_in_transaction(_op)


def expire_warranties(*, now: datetime | None = None) -> int:
    """Write EXPIRED into ACTIVE/CLAIMED warranties past their end date."""
    now = now or utcnow()

    def _op() -> int:
        count = (
            db.session.query(Warranty)
            .filter(Warranty.status.in_((ACTIVE, CLAIMED)), Warranty.end_date < now)
            .update(
                {Warranty.status: EXPIRED, Warranty.version_id: Warranty.version_id + 1},
                synchronize_session=False,
            )
        )
        return count

    count = run_in_transaction(_op)
    if count:
        current_app.logger.info("Expired %s warranty(ies)", count)
    return count


def get_warranty(warranty_id: int) -> Warranty:
    warranty = db.session.get(Warranty, warranty_id)
    if warranty is None:
        raise NotFoundError(f"Warranty {warranty_id} not found", {"warranty_id": warranty_id})
    return warranty


def get_warranty_by_number(warranty_number: str) -> Warranty:
    warranty = db.session.query(Warranty).filter_by(warranty_number=(warranty_number or "").upper()).first()
    if warranty is None:
        raise NotFoundError(f"Warranty {warranty_number} not found", {"warranty_number": warranty_number})
    return warranty


def _effective_status_filter(status: str, now: datetime):
    if status == VOID:
        return Warranty.status == VOID
    if status == EXPIRED:
        return or_(
            Warranty.status == EXPIRED,
            and_(Warranty.status.in_((ACTIVE, CLAIMED)), Warranty.end_date < now),
        )
    return and_(Warranty.status == status, Warranty.end_date >= now)


def list_warranties(
    *,
    status: str | None = None,
    customer_phone: str | None = None,
    sale_id: int | None = None,
    page: int = 1,
    per_page: int = 50,
) -> dict:
    query = db.session.query(Warranty)
    if status:
        if status not in WARRANTY_FSM.states:
            raise ValidationError(f"Invalid warranty status: {status}")
        query = query.filter(_effective_status_filter(status, utcnow()))
    if customer_phone:
        query = query.filter(Warranty.customer_phone == customer_phone)
    if sale_id is not None:
        query = query.filter(Warranty.sale_id == sale_id)

    page = max(1, page)
    per_page = min(max(1, per_page), 200)
    total = query.count()
    rows = query.order_by(Warranty.id.desc()).offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [w.to_dict(include_claims=False) for w in rows],
        "page": page,
        "per_page": per_page,
        "total": total,
    }


def search_by_phone(phone: str) -> list[Warranty]:
    if not phone or not phone.strip():
        raise ValidationError("phone is required")
    return (
        db.session.query(Warranty)
        .filter(Warranty.customer_phone == phone.strip())
        .order_by(Warranty.end_date.desc())
        .all()
    )


def get_expiring_soon(days: int | None = None) -> list[Warranty]:
    if days is None:
        days = current_app.config["WARRANTY_EXPIRING_SOON_DAYS"]
    if days < 0:
        raise ValidationError("days must be non-negative")
    now = utcnow()
    return (
        db.session.query(Warranty)
        .filter(
            Warranty.status.in_((ACTIVE, CLAIMED)),
            Warranty.end_date >= now,
            Warranty.end_date <= now + timedelta(days=days),
        )
        .order_by(Warranty.end_date.asc())
        .all()
    )


def get_stats() -> dict:
    now = utcnow()
    by_status = {
        status: db.session.query(func.count(Warranty.id)).filter(_effective_status_filter(status, now)).scalar() or 0
        for status in (ACTIVE, CLAIMED, EXPIRED, VOID)
    }
    claims_by_resolution = {
        (resolution or "UNRESOLVED"): count
        for resolution, count in db.session.query(WarrantyClaim.resolution, func.count(WarrantyClaim.id))
        .group_by(WarrantyClaim.resolution)
        .all()
    }
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "claims": sum(claims_by_resolution.values()),
        "claims_by_resolution": claims_by_resolution,
        "expiring_soon": len(get_expiring_soon()),
    }
