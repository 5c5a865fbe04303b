# Overview: Device repair job workflow, including parts consumption against the stock ledger.

"""
Repair workflow.

    RECEIVED ──> IN_PROGRESS ──> READY ──> COMPLETED
       │  └──────────────────────^  │
       └──────────┴────────────────┴──> CANCELLED

Assigning a technician does not change status. Only the assigned
technician may start or complete a job. Completing consumes parts from
stock (SALE adjustments referencing the job); cancelling puts them back
(RETURN adjustments).
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func, or_

from ..errors import AuthorizationError, NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import RepairJob, RepairPart, User
from ..time_utils import utcnow
from ..utils.fsm import TransitionValidator
from . import catalog_service, stock_service
from .concurrency import lock_for_update, run_in_transaction
from .document_service import REPAIR, next_document_number


RECEIVED = "RECEIVED"
IN_PROGRESS = "IN_PROGRESS"
READY = "READY"
COMPLETED = "COMPLETED"
CANCELLED = "CANCELLED"

REPAIR_FSM = TransitionValidator({
    RECEIVED: {IN_PROGRESS, READY, CANCELLED},
    IN_PROGRESS: {READY, CANCELLED},
    READY: {COMPLETED, CANCELLED},
    COMPLETED: set(),
    CANCELLED: set(),
})

PRIORITIES = {"LOW", "NORMAL", "HIGH", "URGENT"}
DEVICE_TYPES = {"MOBILE_PHONE", "TABLET", "LAPTOP", "SMARTWATCH", "OTHER"}
PAYMENT_METHODS = {"CASH", "CARD", "MOBILE", "BANK_TRANSFER", "OTHER"}


def _get_job_for_update(job_id: int) -> RepairJob:
    job = lock_for_update(db.session.query(RepairJob).filter_by(id=job_id)).first()
    if job is None:
        raise NotFoundError(f"Repair job {job_id} not found", {"repair_job_id": job_id})
    return job


def _require_open(job: RepairJob, action: str) -> None:
    if REPAIR_FSM.is_terminal(job.status):
        raise StateConflictError(
            f"Cannot {action} a {job.status.lower()} repair job",
            {"status": job.status},
        )


def _require_assignee(job: RepairJob, user_id: int | None, action: str) -> None:
    if job.assigned_to_user_id is None or job.assigned_to_user_id != user_id:
        raise AuthorizationError(f"Only the assigned technician can {action} this repair job")


def _active_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise ValidationError(f"User {user_id} not found or inactive", {"user_id": user_id})
    return user


def _non_negative(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer (cents)")
    return value


def _create_repair_inner(
    *,
    customer: dict,
    device: dict | None,
    problem_description: str,
    user_id: int | None,
    priority: str = "NORMAL",
    assigned_to_user_id: int | None = None,
    estimated_cost_cents: int | None = None,
    estimated_completion_date: datetime | None = None,
    advance_payment_cents: int = 0,
    warranty_claim_id: int | None = None,
) -> RepairJob:
    customer = customer or {}
    device = device or {}
    if not customer.get("name") or not customer.get("phone"):
        raise ValidationError("Customer name and phone are required")
    if not problem_description or not problem_description.strip():
        raise ValidationError("problem_description is required")

    priority = (priority or "NORMAL").upper()
    if priority not in PRIORITIES:
        raise ValidationError(f"priority must be one of: {', '.join(sorted(PRIORITIES))}")
    device_type = (device.get("type") or "OTHER").upper()
    if device_type not in DEVICE_TYPES:
        raise ValidationError(f"device type must be one of: {', '.join(sorted(DEVICE_TYPES))}")
    advance = _non_negative("advance_payment_cents", advance_payment_cents or 0)
    if estimated_cost_cents is not None:
        _non_negative("estimated_cost_cents", estimated_cost_cents)

    assignee = assigned_to_user_id if assigned_to_user_id is not None else user_id
    if assigned_to_user_id is not None:
        _active_user(assigned_to_user_id)

    now = utcnow()
    job = RepairJob(
        job_number=next_document_number(REPAIR),
        status=RECEIVED,
        priority=priority,
        customer_name=customer["name"],
        customer_phone=customer["phone"],
        customer_email=customer.get("email"),
        device_type=device_type,
        device_brand=device.get("brand"),
        device_model=device.get("model"),
        serial_number=device.get("serial_number"),
        accessories=device.get("accessories"),
        problem_description=problem_description.strip(),
        estimated_cost_cents=estimated_cost_cents,
        estimated_completion_date=estimated_completion_date,
        labor_cost_cents=0,
        advance_payment_cents=advance,
        advance_paid_at=now if advance else None,
        advance_received_by_user_id=user_id if advance else None,
        assigned_to_user_id=assignee,
        assigned_by_user_id=user_id if assignee is not None else None,
        assigned_at=now if assignee is not None else None,
        warranty_claim_id=warranty_claim_id,
        created_by_user_id=user_id,
        created_at=now,
    )
    job.recalculate_totals()
    db.session.add(job)
    db.session.flush()
    current_app.logger.info("Repair job %s received for %s", job.job_number, job.customer_phone)
    return job


def create_repair(**kwargs) -> RepairJob:
    """
    Open a job in RECEIVED. Unless a technician is named the creator is
    assigned. An advance payment is recorded with actor and time.
    """
    return run_in_transaction(lambda: _create_repair_inner(**kwargs))


def assign_technician(job_id: int, *, technician_id: int, user_id: int | None) -> RepairJob:
    def _op() -> RepairJob:
        job = _get_job_for_update(job_id)
        _require_open(job, "assign")
        _active_user(technician_id)
        job.assigned_to_user_id = technician_id
        job.assigned_by_user_id = user_id
        job.assigned_at = utcnow()
        return job
    return run_in_transaction(_op)


def start_repair(job_id: int, *, user_id: int | None, diagnosis_notes: str | None = None) -> RepairJob:
    def _op() -> RepairJob:
        job = _get_job_for_update(job_id)
        _require_assignee(job, user_id, "start")
        if job.status != RECEIVED:
            raise StateConflictError(f"Only received jobs can be started (status {job.status})")
        REPAIR_FSM.assert_can_transition(job.status, IN_PROGRESS)
        job.status = IN_PROGRESS
        job.started_at = utcnow()
        if diagnosis_notes:
            job.diagnosis_notes = diagnosis_notes
        return job
    return run_in_transaction(_op)


def complete_repair(
    job_id: int,
    *,
    user_id: int | None,
    parts=None,
    labor_cost_cents: int = 0,
    repair_notes: str | None = None,
    warranty_months: int = 0,
) -> RepairJob:
    """
    Mark the job READY: consume parts from stock and fix the final cost.

    parts: [{product_id, quantity, unit_price_cents?}]; price defaults to
    the product's selling price. Stock is checked per part; any shortage
    aborts the whole completion.
    """
    labor = _non_negative("labor_cost_cents", labor_cost_cents or 0)
    months = _non_negative("warranty_months", warranty_months or 0)

    def _op() -> RepairJob:
        job = _get_job_for_update(job_id)
        _require_assignee(job, user_id, "complete")
        if job.status not in (RECEIVED, IN_PROGRESS):
            raise StateConflictError(f"Cannot complete a repair job in status {job.status}")
        REPAIR_FSM.assert_can_transition(job.status, READY)

        for entry in parts or []:
            product_id = entry.get("product_id")
            quantity = entry.get("quantity")
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                raise ValidationError("Part quantity must be a positive integer", {"product_id": product_id})
            product = catalog_service.get_active_product(product_id)
            unit_price = entry.get("unit_price_cents")
            if unit_price is None:
                unit_price = product.selling_price_cents
            _non_negative("unit_price_cents", unit_price)

            stock_service._adjust_stock_inner(
                product_id=product.id,
                adjustment_type="SALE",
                quantity=quantity,
                user_id=user_id,
                reason=f"Parts for repair {job.job_number}",
                reference_type="REPAIR",
                reference_id=job.id,
            )
            job.parts.append(RepairPart(
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                unit_price_cents=unit_price,
                total_cents=unit_price * quantity,
            ))

        with db.session.no_autoflush:
            job.labor_cost_cents = labor
            job.recalculate_totals()
        job.warranty_months = months
        if repair_notes:
            job.repair_notes = repair_notes
        job.status = READY
        job.completed_at = utcnow()
        job.completed_by_user_id = user_id
        current_app.logger.info("Repair job %s ready, total %s cents", job.job_number, job.total_cost_cents)
        return job

    return run_in_transaction(_op)


def collect_payment(
    job_id: int,
    *,
    user_id: int | None,
    amount_received_cents: int,
    payment_method: str = "CASH",
) -> tuple[RepairJob, dict]:
    """
    Take the final payment and hand the device back.

    Returns (job, receipt) where receipt carries balance_due, amount
    received and change. A repair warranty is issued here when the job
    was completed with warranty_months > 0.
    """
    from . import warranty_service

    amount = _non_negative("amount_received_cents", amount_received_cents)
    method = (payment_method or "CASH").upper()
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(sorted(PAYMENT_METHODS))}")

    def _op():
        job = _get_job_for_update(job_id)
        if job.status != READY:
            raise StateConflictError(f"Payment can only be collected for READY jobs (status {job.status})")
        REPAIR_FSM.assert_can_transition(job.status, COMPLETED)

        job.recalculate_totals()
        balance_due = max(0, job.total_cost_cents - job.advance_payment_cents)
        if amount < balance_due:
            raise ValidationError(
                "Amount received is less than the balance due",
                {"balance_due_cents": balance_due, "amount_received_cents": amount},
            )
        change = max(0, amount - balance_due)

        now = utcnow()
        job.final_payment_cents = amount - change
        job.final_paid_at = now
        job.final_received_by_user_id = user_id
        job.payment_method = method
        job.status = COMPLETED
        job.pickup_date = now

        warranty = None
        if job.warranty_months > 0:
            warranty = warranty_service._create_repair_warranty_inner(job, user_id=user_id)

        receipt = {
            "balance_due_cents": balance_due,
            "amount_received_cents": amount,
            "change_cents": change,
            "warranty_number": warranty.warranty_number if warranty else None,
        }
        return job, receipt

    return run_in_transaction(_op)


def cancel_repair(job_id: int, *, user_id: int | None, reason: str | None = None) -> RepairJob:
    """Cancel a non-completed job; consumed parts go back into stock."""
    def _op() -> RepairJob:
        job = _get_job_for_update(job_id)
        if job.status == COMPLETED:
            raise StateConflictError("Completed repair jobs cannot be cancelled")
        REPAIR_FSM.assert_can_transition(job.status, CANCELLED)

        for part in job.parts:
            stock_service._adjust_stock_inner(
                product_id=part.product_id,
                adjustment_type="RETURN",
                quantity=part.quantity,
                user_id=user_id,
                reason=f"Cancelled repair {job.job_number}",
                reference_type="REPAIR",
                reference_id=job.id,
            )

        job.status = CANCELLED
        job.cancelled_at = utcnow()
        job.cancelled_by_user_id = user_id
        job.cancellation_reason = reason
        current_app.logger.info("Repair job %s cancelled", job.job_number)
        return job

    return run_in_transaction(_op)


def update_advance_payment(job_id: int, *, amount_cents: int, user_id: int | None) -> RepairJob:
    amount = _non_negative("amount_cents", amount_cents)

    def _op() -> RepairJob:
        job = _get_job_for_update(job_id)
        _require_open(job, "take an advance payment for")
        job.advance_payment_cents = amount
        job.advance_paid_at = utcnow()
        job.advance_received_by_user_id = user_id
        return job

    return run_in_transaction(_op)


def update_repair_details(job_id: int, **fields) -> RepairJob:
    """Notes, priority and estimates; never status, costs or payments."""
    allowed = {"diagnosis_notes", "repair_notes", "priority", "estimated_cost_cents", "estimated_completion_date"}
    unknown = set(fields) - allowed
    if unknown:
        raise ValidationError(f"Fields cannot be updated here: {', '.join(sorted(unknown))}")
    if "priority" in fields:
        fields["priority"] = (fields["priority"] or "").upper()
        if fields["priority"] not in PRIORITIES:
            raise ValidationError(f"priority must be one of: {', '.join(sorted(PRIORITIES))}")

    def _op() -> RepairJob:
        job = _get_job_for_update(job_id)
        _require_open(job, "update")
        for key, value in fields.items():
            setattr(job, key, value)
        return job

    return run_in_transaction(_op)


def get_repair(job_id: int) -> RepairJob:
    job = db.session.get(RepairJob, job_id)
    if job is None:
        raise NotFoundError(f"Repair job {job_id} not found", {"repair_job_id": job_id})
    return job


def get_repair_by_number(job_number: str) -> RepairJob:
    job = db.session.query(RepairJob).filter_by(job_number=(job_number or "").upper()).first()
    if job is None:
        raise NotFoundError(f"Repair job {job_number} not found", {"job_number": job_number})
    return job


def list_repairs(
    *,
    status: str | None = None,
    assigned_to_user_id: int | None = None,
    search: str | None = None,
    page: int = 1,
    per_page: int = 50,
) -> dict:
    query = db.session.query(RepairJob)
    if status:
        if status not in REPAIR_FSM.states:
            raise ValidationError(f"Invalid repair status: {status}")
        query = query.filter(RepairJob.status == status)
    if assigned_to_user_id is not None:
        query = query.filter(RepairJob.assigned_to_user_id == assigned_to_user_id)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            RepairJob.job_number.ilike(pattern),
            RepairJob.customer_phone.ilike(pattern),
            RepairJob.customer_name.ilike(pattern),
        ))

    page = max(1, page)
    per_page = min(max(1, per_page), 200)
    total = query.count()
    jobs = query.order_by(RepairJob.id.desc()).offset((page - 1) * per_page).limit(per_page).all()
    return {"items": [j.to_dict() for j in jobs], "page": page, "per_page": per_page, "total": total}


def get_dashboard(*, assigned_to_user_id: int | None = None) -> dict:
    query = db.session.query(RepairJob.status, func.count(RepairJob.id))
    if assigned_to_user_id is not None:
        query = query.filter(RepairJob.assigned_to_user_id == assigned_to_user_id)
    counts = {status: 0 for status in sorted(REPAIR_FSM.states)}
    for status, count in query.group_by(RepairJob.status).all():
        counts[status] = count

    overdue_query = db.session.query(func.count(RepairJob.id)).filter(
        RepairJob.status.in_((RECEIVED, IN_PROGRESS)),
        RepairJob.estimated_completion_date.isnot(None),
        RepairJob.estimated_completion_date < utcnow(),
    )
    if assigned_to_user_id is not None:
        overdue_query = overdue_query.filter(RepairJob.assigned_to_user_id == assigned_to_user_id)

    return {
        "by_status": counts,
        "open": counts[RECEIVED] + counts[IN_PROGRESS],
        "ready_for_pickup": counts[READY],
        "overdue": overdue_query.scalar() or 0,
    }
