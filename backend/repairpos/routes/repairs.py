# Overview: Flask API routes for repair job operations; parses input and returns JSON responses.

"""
Repair job routes.

Technicians holding only VIEW_OWN_REPAIRS see the jobs assigned to them;
VIEW_REPAIRS sees every job. Starting and completing a job is limited to
its assigned technician by the service layer.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission, require_any_permission
from ..errors import ServiceError
from ..permissions import PermissionCode as P
from ..services import permission_service, repair_service
from ..validation import get_cents, get_customer, get_datetime, get_int, get_list, get_str

repairs_bp = Blueprint("repairs", __name__, url_prefix="/api/repairs")


def _can_view_all() -> bool:
    return permission_service.user_has_permission(g.current_user.id, P.VIEW_REPAIRS)


def _visible(job) -> bool:
    return _can_view_all() or job.assigned_to_user_id == g.current_user.id


@repairs_bp.post("/")
@require_auth
@require_permission(P.CREATE_REPAIR)
def create_repair_route():
    """
    Request body:
    {
        "customer": {"name": "...", "phone": "...", "email": "..."},
        "device": {"type": "MOBILE_PHONE", "brand": "...", "model": "...",
                   "serial_number": "...", "accessories": "..."},
        "problem_description": "...",
        "priority": "NORMAL",
        "assigned_to_user_id": 3,                (optional, defaults to caller)
        "estimated_cost_cents": 5000,
        "estimated_completion_date": "2024-05-01T12:00:00Z",
        "advance_payment_cents": 1000
    }
    """
    try:
        payload = request.get_json(silent=True) or {}
        device = payload.get("device") or {}
        if not isinstance(device, dict):
            return jsonify({"error": "device must be an object"}), 400

        job = repair_service.create_repair(
            customer=get_customer(payload),
            device=device,
            problem_description=get_str(payload, "problem_description", required=True),
            priority=get_str(payload, "priority", upper=True) or "NORMAL",
            assigned_to_user_id=get_int(payload, "assigned_to_user_id", minimum=1),
            estimated_cost_cents=get_cents(payload, "estimated_cost_cents"),
            estimated_completion_date=get_datetime(payload, "estimated_completion_date"),
            advance_payment_cents=get_cents(payload, "advance_payment_cents", default=0),
            user_id=g.current_user.id,
        )
        return jsonify({"repair": job.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create repair job")
        return jsonify({"error": "Internal server error"}), 500


@repairs_bp.get("/")
@require_auth
@require_permission(P.VIEW_REPAIRS)
def list_repairs_route():
    """Query params: status, technician_id, search, page, per_page."""
    try:
        result = repair_service.list_repairs(
            status=(request.args.get("status") or "").upper() or None,
            assigned_to_user_id=request.args.get("technician_id", type=int),
            search=request.args.get("search"),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 50, type=int),
        )
        return jsonify(result)
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@repairs_bp.get("/mine")
@require_auth
@require_any_permission(P.VIEW_OWN_REPAIRS, P.VIEW_REPAIRS)
def my_repairs_route():
    try:
        result = repair_service.list_repairs(
            status=(request.args.get("status") or "").upper() or None,
            assigned_to_user_id=g.current_user.id,
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 50, type=int),
        )
        return jsonify(result)
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@repairs_bp.get("/dashboard")
@require_auth
@require_any_permission(P.VIEW_OWN_REPAIRS, P.VIEW_REPAIRS)
def dashboard_route():
    scope = None if _can_view_all() else g.current_user.id
    return jsonify(repair_service.get_dashboard(assigned_to_user_id=scope))


@repairs_bp.get("/<int:job_id>")
@require_auth
@require_any_permission(P.VIEW_OWN_REPAIRS, P.VIEW_REPAIRS)
def get_repair_route(job_id: int):
    try:
        job = repair_service.get_repair(job_id)
        if not _visible(job):
            return jsonify({"error": "Permission denied", "missing_permissions": [P.VIEW_REPAIRS.value]}), 403
        return jsonify({"repair": job.to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@repairs_bp.get("/number/<string:job_number>")
@require_auth
@require_any_permission(P.VIEW_OWN_REPAIRS, P.VIEW_REPAIRS)
def get_repair_by_number_route(job_number: str):
    try:
        job = repair_service.get_repair_by_number(job_number)
        if not _visible(job):
            return jsonify({"error": "Permission denied", "missing_permissions": [P.VIEW_REPAIRS.value]}), 403
        return jsonify({"repair": job.to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@repairs_bp.patch("/<int:job_id>")
@require_auth
@require_permission(P.UPDATE_REPAIR)
def update_repair_route(job_id: int):
    """Notes, priority and estimates only."""
    try:
        payload = request.get_json(silent=True) or {}
        readers = {
            "diagnosis_notes": lambda: get_str(payload, "diagnosis_notes"),
            "repair_notes": lambda: get_str(payload, "repair_notes"),
            "priority": lambda: get_str(payload, "priority", upper=True),
            "estimated_cost_cents": lambda: get_cents(payload, "estimated_cost_cents"),
            "estimated_completion_date": lambda: get_datetime(payload, "estimated_completion_date"),
        }
        fields = {name: read() for name, read in readers.items() if name in payload}
        job = repair_service.update_repair_details(job_id, **fields)
        return jsonify({"repair": job.to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@repairs_bp.post("/<int:job_id>/assign")
@require_auth
@require_permission(P.ASSIGN_REPAIR)
def assign_technician_route(job_id: int):
    """Request body: {"technician_id": 3}"""
    try:
        payload = request.get_json(silent=True) or {}
        job = repair_service.assign_technician(
            job_id,
            technician_id=get_int(payload, "technician_id", required=True, minimum=1),
            user_id=g.current_user.id,
        )
        return jsonify({"repair": job.to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@repairs_bp.post("/<int:job_id>/start")
@require_auth
@require_permission(P.UPDATE_REPAIR)
def start_repair_route(job_id: int):
    try:
        payload = request.get_json(silent=True) or {}
        job = repair_service.start_repair(
            job_id,
            user_id=g.current_user.id,
            diagnosis_notes=get_str(payload, "diagnosis_notes"),
        )
        return jsonify({"repair": job.to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@repairs_bp.post("/<int:job_id>/complete")
@require_auth
@require_permission(P.COMPLETE_REPAIR)
def complete_repair_route(job_id: int):
    """
    Request body:
    {
        "parts": [{"product_id": 5, "quantity": 1, "unit_price_cents": 2500}],
        "labor_cost_cents": 3000,
        "repair_notes": "...",
        "warranty_months": 3
    }
    """
    try:
        payload = request.get_json(silent=True) or {}
        job = repair_service.complete_repair(
            job_id,
            user_id=g.current_user.id,
            parts=get_list(payload, "parts"),
            labor_cost_cents=get_cents(payload, "labor_cost_cents", default=0),
            repair_notes=get_str(payload, "repair_notes"),
            warranty_months=get_int(payload, "warranty_months", default=0, minimum=0),
        )
        return jsonify({"repair": job.to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete repair job")
        return jsonify({"error": "Internal server error"}), 500


@repairs_bp.post("/<int:job_id>/collect")
@require_auth
@require_permission(P.COLLECT_REPAIR_PAYMENT)
def collect_payment_route(job_id: int):
    """Request body: {"amount_received_cents": 5000, "payment_method": "CASH"}"""
    try:
        payload = request.get_json(silent=True) or {}
        job, receipt = repair_service.collect_payment(
            job_id,
            user_id=g.current_user.id,
            amount_received_cents=get_cents(payload, "amount_received_cents", required=True),
            payment_method=get_str(payload, "payment_method", upper=True) or "CASH",
        )
        return jsonify({"repair": job.to_dict(), "receipt": receipt})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to collect repair payment")
        return jsonify({"error": "Internal server error"}), 500


@repairs_bp.put("/<int:job_id>/advance-payment")
@require_auth
@require_permission(P.COLLECT_REPAIR_PAYMENT)
def advance_payment_route(job_id: int):
    """Request body: {"amount_cents": 2000}"""
    try:
        payload = request.get_json(silent=True) or {}
        job = repair_service.update_advance_payment(
            job_id,
            amount_cents=get_cents(payload, "amount_cents", required=True),
            user_id=g.current_user.id,
        )
        return jsonify({"repair": job.to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@repairs_bp.post("/<int:job_id>/cancel")
@require_auth
@require_permission(P.CANCEL_REPAIR)
def cancel_repair_route(job_id: int):
    """Request body: {"reason": "..."}. Consumed parts are restocked."""
    try:
        payload = request.get_json(silent=True) or {}
        job = repair_service.cancel_repair(
            job_id,
            user_id=g.current_user.id,
            reason=get_str(payload, "reason"),
        )
        return jsonify({"repair": job.to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
