"""
Repair workflow tests.

Covers the status machine, the assigned-technician rule, parts
consumption against stock, and final payment collection.
"""

from datetime import timedelta

import pytest

from repairpos.errors import AuthorizationError, InsufficientStockError, StateConflictError, ValidationError
from repairpos.models import StockAdjustment, Warranty
from repairpos.services import repair_service, stock_service
from repairpos.services.repair_service import REPAIR_FSM
from repairpos.time_utils import utcnow


CUSTOMER = {"name": "Nimal Silva", "phone": "0719876543"}
DEVICE = {"type": "mobile_phone", "brand": "Acme", "model": "X1"}


@pytest.fixture
def job(technician_user):
    return repair_service.create_repair(
        customer=CUSTOMER,
        device=DEVICE,
        problem_description="Cracked screen",
        user_id=technician_user.id,
    )


# =============================================================================
# STATUS MACHINE
# =============================================================================


class TestRepairStateMachine:

    @pytest.mark.parametrize("current,target", [
        ("RECEIVED", "IN_PROGRESS"),
        ("RECEIVED", "READY"),
        ("IN_PROGRESS", "READY"),
        ("READY", "COMPLETED"),
        ("READY", "CANCELLED"),
    ])
    def test_allowed_transitions(self, current, target):
        assert REPAIR_FSM.can_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        ("IN_PROGRESS", "RECEIVED"),
        ("READY", "IN_PROGRESS"),
        ("COMPLETED", "CANCELLED"),
        ("CANCELLED", "RECEIVED"),
        ("RECEIVED", "COMPLETED"),
    ])
    def test_rejected_transitions(self, current, target):
        with pytest.raises(StateConflictError):
            REPAIR_FSM.assert_can_transition(current, target)

    def test_terminal_states(self):
        assert REPAIR_FSM.is_terminal("COMPLETED")
        assert REPAIR_FSM.is_terminal("CANCELLED")
        assert not REPAIR_FSM.is_terminal("READY")


# =============================================================================
# CREATE AND ASSIGN
# =============================================================================


class TestCreateRepair:

    def test_create_defaults(self, job, technician_user):
        assert job.status == "RECEIVED"
        assert job.job_number.startswith("RJ-")
        assert job.device_type == "MOBILE_PHONE"
        assert job.assigned_to_user_id == technician_user.id
        assert job.total_cost_cents == 0

    def test_requires_customer_phone(self, technician_user):
        with pytest.raises(ValidationError):
            repair_service.create_repair(
                customer={"name": "No Phone"},
                device=DEVICE,
                problem_description="Battery",
                user_id=technician_user.id,
            )

    def test_advance_payment_recorded(self, cashier_user):
        job = repair_service.create_repair(
            customer=CUSTOMER,
            device=DEVICE,
            problem_description="Battery swelling",
            user_id=cashier_user.id,
            advance_payment_cents=2000,
        )
        assert job.advance_payment_cents == 2000
        assert job.advance_received_by_user_id == cashier_user.id
        assert job.advance_paid_at is not None

    def test_assign_does_not_change_status(self, job, make_user, manager_user):
        other = make_user("tech2", roles=("TECHNICIAN",))
        assigned = repair_service.assign_technician(job.id, technician_id=other.id, user_id=manager_user.id)
        assert assigned.status == "RECEIVED"
        assert assigned.assigned_to_user_id == other.id
        assert assigned.assigned_by_user_id == manager_user.id


# =============================================================================
# START AND COMPLETE
# =============================================================================


class TestWorkOnRepair:

    def test_only_assignee_may_start(self, job, cashier_user):
        with pytest.raises(AuthorizationError):
            repair_service.start_repair(job.id, user_id=cashier_user.id)

    def test_start_then_start_again_refused(self, job, technician_user):
        started = repair_service.start_repair(job.id, user_id=technician_user.id, diagnosis_notes="LCD dead")
        assert started.status == "IN_PROGRESS"
        assert started.diagnosis_notes == "LCD dead"

        with pytest.raises(StateConflictError):
            repair_service.start_repair(job.id, user_id=technician_user.id)

    def test_complete_consumes_parts(self, job, technician_user, make_product, db_session):
        screen = make_product(stock=4, name="Screen X1", selling_price_cents=8000)
        repair_service.start_repair(job.id, user_id=technician_user.id)

        done = repair_service.complete_repair(
            job.id,
            user_id=technician_user.id,
            parts=[{"product_id": screen.id, "quantity": 1}],
            labor_cost_cents=3000,
        )

        assert done.status == "READY"
        assert done.parts_total_cents == 8000
        assert done.total_cost_cents == 11000
        assert done.completed_by_user_id == technician_user.id
        assert stock_service.get_stock_quantity(screen.id) == 3

        adjustment = db_session.query(StockAdjustment).filter_by(reference_type="REPAIR", reference_id=job.id).one()
        assert adjustment.adjustment_type == "SALE"

    def test_complete_directly_from_received(self, job, technician_user):
        done = repair_service.complete_repair(job.id, user_id=technician_user.id, labor_cost_cents=1500)
        assert done.status == "READY"
        assert done.total_cost_cents == 1500

    def test_complete_with_labor_only_persists_totals(self, job, technician_user, db_session):
        repair_service.start_repair(job.id, user_id=technician_user.id)

        repair_service.complete_repair(job.id, user_id=technician_user.id, labor_cost_cents=5000)

        db_session.expire_all()
        stored = repair_service.get_repair(job.id)
        assert stored.status == "READY"
        assert stored.labor_cost_cents == 5000
        assert stored.parts_total_cents == 0
        assert stored.total_cost_cents == 5000
        assert stored.balance_due_cents == 5000

    def test_part_shortage_aborts_completion(self, job, technician_user, make_product):
        screen = make_product(stock=1)
        battery = make_product(stock=0)

        with pytest.raises(InsufficientStockError):
            repair_service.complete_repair(
                job.id,
                user_id=technician_user.id,
                parts=[
                    {"product_id": screen.id, "quantity": 1},
                    {"product_id": battery.id, "quantity": 1},
                ],
            )

        assert repair_service.get_repair(job.id).status == "RECEIVED"
        assert stock_service.get_stock_quantity(screen.id) == 1

    def test_only_assignee_may_complete(self, job, cashier_user):
        with pytest.raises(AuthorizationError):
            repair_service.complete_repair(job.id, user_id=cashier_user.id)


# =============================================================================
# PAYMENT AND PICKUP
# =============================================================================


class TestCollectPayment:

    @pytest.fixture
    def ready_job(self, technician_user):
        job = repair_service.create_repair(
            customer=CUSTOMER,
            device=DEVICE,
            problem_description="Charging port",
            user_id=technician_user.id,
            advance_payment_cents=2000,
        )
        return repair_service.complete_repair(
            job.id, user_id=technician_user.id, labor_cost_cents=10000, warranty_months=3,
        )

    def test_collect_with_change_issues_warranty(self, ready_job, cashier_user, db_session):
        job, receipt = repair_service.collect_payment(
            ready_job.id, user_id=cashier_user.id, amount_received_cents=10000,
        )

        assert receipt["balance_due_cents"] == 8000
        assert receipt["change_cents"] == 2000
        assert job.status == "COMPLETED"
        assert job.final_payment_cents == 8000
        assert job.balance_due_cents == 0
        assert job.payment_status == "PAID"
        assert job.pickup_date is not None

        warranty = db_session.query(Warranty).filter_by(repair_job_id=job.id).one()
        assert receipt["warranty_number"] == warranty.warranty_number
        assert warranty.source_type == "REPAIR"
        assert warranty.duration_months == 3
        assert warranty.product_name == "Repair: Acme X1"

    def test_underpayment_refused(self, ready_job, cashier_user):
        with pytest.raises(ValidationError):
            repair_service.collect_payment(ready_job.id, user_id=cashier_user.id, amount_received_cents=7999)
        assert repair_service.get_repair(ready_job.id).status == "READY"

    def test_collect_requires_ready(self, job, cashier_user):
        with pytest.raises(StateConflictError):
            repair_service.collect_payment(job.id, user_id=cashier_user.id, amount_received_cents=0)


# =============================================================================
# CANCEL
# =============================================================================


class TestCancelRepair:

    def test_cancel_restores_parts(self, job, technician_user, make_product):
        part = make_product(stock=2)
        repair_service.complete_repair(
            job.id, user_id=technician_user.id, parts=[{"product_id": part.id, "quantity": 2}],
        )
        assert stock_service.get_stock_quantity(part.id) == 0

        cancelled = repair_service.cancel_repair(job.id, user_id=technician_user.id, reason="Customer declined")
        assert cancelled.status == "CANCELLED"
        assert cancelled.cancellation_reason == "Customer declined"
        assert stock_service.get_stock_quantity(part.id) == 2
        assert stock_service.verify_adjustment_chain(part.id) == []

    def test_completed_job_cannot_be_cancelled(self, technician_user, cashier_user):
        job = repair_service.create_repair(
            customer=CUSTOMER, device=DEVICE, problem_description="Speaker", user_id=technician_user.id,
        )
        repair_service.complete_repair(job.id, user_id=technician_user.id)
        repair_service.collect_payment(job.id, user_id=cashier_user.id, amount_received_cents=0)

        with pytest.raises(StateConflictError):
            repair_service.cancel_repair(job.id, user_id=technician_user.id)

    def test_terminal_job_rejects_detail_updates(self, job, technician_user):
        repair_service.cancel_repair(job.id, user_id=technician_user.id)
        with pytest.raises(StateConflictError):
            repair_service.update_repair_details(job.id, repair_notes="late note")
        with pytest.raises(StateConflictError):
            repair_service.update_advance_payment(job.id, amount_cents=100, user_id=technician_user.id)


# =============================================================================
# QUERIES
# =============================================================================


class TestRepairQueries:

    def test_dashboard_counts(self, job, technician_user):
        repair_service.create_repair(
            customer=CUSTOMER,
            device=DEVICE,
            problem_description="Water damage",
            user_id=technician_user.id,
            estimated_completion_date=utcnow() - timedelta(days=1),
        )
        other = repair_service.create_repair(
            customer=CUSTOMER, device=DEVICE, problem_description="Camera", user_id=technician_user.id,
        )
        repair_service.complete_repair(other.id, user_id=technician_user.id)

        dashboard = repair_service.get_dashboard(assigned_to_user_id=technician_user.id)
        assert dashboard["open"] == 2
        assert dashboard["ready_for_pickup"] == 1
        assert dashboard["overdue"] == 1

    def test_search_by_phone(self, job):
        listing = repair_service.list_repairs(search="98765")
        assert listing["total"] == 1
        assert repair_service.get_repair_by_number(job.job_number.lower()).id == job.id
