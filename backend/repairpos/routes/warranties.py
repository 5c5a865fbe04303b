# Overview: Flask API routes for warranty and claim operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import ServiceError
from ..permissions import PermissionCode as P
from ..services import warranty_service
from ..validation import get_customer, get_datetime, get_int, get_str

warranties_bp = Blueprint("warranties", __name__, url_prefix="/api/warranties")


@warranties_bp.post("/")
@require_auth
@require_permission(P.CREATE_WARRANTY)
def create_warranty_route():
    """
    Issue a warranty by hand.

    Request body:
    {
        "customer": {"name": "...", "phone": "..."},
        "product_id": 1,                 (or "product_name")
        "duration_months": 12,           (optional; product's months, then the configured default)
        "warranty_type": "SHOP",
        "serial_number": "...",
        "start_date": "2024-01-01",
        "sale_id": 10,
        "notes": "..."
    }
    """
    try:
        payload = request.get_json(silent=True) or {}
        warranty = warranty_service.create_warranty(
            customer=get_customer(payload),
            user_id=g.current_user.id,
            product_id=get_int(payload, "product_id", minimum=1),
            product_name=get_str(payload, "product_name", max_length=255),
            duration_months=get_int(payload, "duration_months"),
            warranty_type=get_str(payload, "warranty_type", upper=True),
            serial_number=get_str(payload, "serial_number", max_length=128),
            start_date=get_datetime(payload, "start_date"),
            sale_id=get_int(payload, "sale_id", minimum=1),
            notes=get_str(payload, "notes"),
        )
        return jsonify({"warranty": warranty.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create warranty")
        return jsonify({"error": "Internal server error"}), 500


@warranties_bp.get("/")
@require_auth
@require_permission(P.VIEW_WARRANTIES)
def list_warranties_route():
    """Query params: status (effective), phone, sale_id, page, per_page."""
    try:
        result = warranty_service.list_warranties(
            status=(request.args.get("status") or "").upper() or None,
            customer_phone=request.args.get("phone"),
            sale_id=request.args.get("sale_id", type=int),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 50, type=int),
        )
        return jsonify(result)
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@warranties_bp.get("/search")
@require_auth
@require_permission(P.VIEW_WARRANTIES)
def search_warranties_route():
    try:
        warranties = warranty_service.search_by_phone(request.args.get("phone") or "")
        return jsonify({"warranties": [w.to_dict() for w in warranties]})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@warranties_bp.get("/expiring")
@require_auth
@require_permission(P.VIEW_WARRANTIES)
def expiring_warranties_route():
    try:
        warranties = warranty_service.get_expiring_soon(request.args.get("days", type=int))
        return jsonify({"warranties": [w.to_dict(include_claims=False) for w in warranties]})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@warranties_bp.get("/stats")
@require_auth
@require_permission(P.VIEW_WARRANTY_REPORTS)
def warranty_stats_route():
    return jsonify(warranty_service.get_stats())


@warranties_bp.get("/<int:warranty_id>")
@require_auth
@require_permission(P.VIEW_WARRANTIES)
def get_warranty_route(warranty_id: int):
    try:
        return jsonify({"warranty": warranty_service.get_warranty(warranty_id).to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@warranties_bp.get("/number/<string:warranty_number>")
@require_auth
@require_permission(P.VIEW_WARRANTIES)
def get_warranty_by_number_route(warranty_number: str):
    try:
        return jsonify({"warranty": warranty_service.get_warranty_by_number(warranty_number).to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@warranties_bp.get("/<int:warranty_id>/validity")
@require_auth
@require_permission(P.VIEW_WARRANTIES)
def check_validity_route(warranty_id: int):
    try:
        return jsonify(warranty_service.check_validity(warranty_id))
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@warranties_bp.post("/<int:warranty_id>/claims")
@require_auth
@require_permission(P.CREATE_WARRANTY_CLAIM)
def create_claim_route(warranty_id: int):
    """
    Request body:
    {
        "issue_description": "...",
        "resolution": "REPAIR" | "REPLACE" | "REFUND" | "REJECTED",   (optional)
        "repair_job_id": 4,              (REPAIR: link instead of opening a job)
        "replacement_product_id": 7,     (REPLACE: defaults to the warranted product)
        "notes": "..."
    }
    """
    try:
        payload = request.get_json(silent=True) or {}
        claim = warranty_service.create_claim(
            warranty_id,
            issue_description=get_str(payload, "issue_description", required=True),
            resolution=get_str(payload, "resolution", upper=True),
            repair_job_id=get_int(payload, "repair_job_id", minimum=1),
            replacement_product_id=get_int(payload, "replacement_product_id", minimum=1),
            notes=get_str(payload, "notes"),
            user_id=g.current_user.id,
        )
        return jsonify({
            "claim": claim.to_dict(),
            "warranty": warranty_service.get_warranty(warranty_id).to_dict(include_claims=False),
        }), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create warranty claim")
        return jsonify({"error": "Internal server error"}), 500


@warranties_bp.patch("/claims/<int:claim_id>")
@require_auth
@require_permission(P.UPDATE_WARRANTY)
def update_claim_route(claim_id: int):
    try:
        payload = request.get_json(silent=True) or {}
        claim = warranty_service.update_claim(
            claim_id,
            notes=get_str(payload, "notes"),
            repair_job_id=get_int(payload, "repair_job_id", minimum=1),
        )
        return jsonify({"claim": claim.to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@warranties_bp.post("/<int:warranty_id>/void")
@require_auth
@require_permission(P.VOID_WARRANTY)
def void_warranty_route(warranty_id: int):
    """Request body: {"reason": "..."} (required). Irreversible."""
    try:
        payload = request.get_json(silent=True) or {}
        warranty = warranty_service.void_warranty(
            warranty_id,
            user_id=g.current_user.id,
            reason=get_str(payload, "reason", required=True, max_length=255),
        )
        return jsonify({"warranty": warranty.to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
