# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sales API Routes

Sales are created complete in one request: lines, payments, stock
deductions and warranties commit together. Price overrides and
discounts additionally require APPLY_DISCOUNT.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import ServiceError
from ..permissions import PermissionCode as P
from ..services import permission_service, sales_service
from ..time_utils import parse_iso_datetime
from ..validation import get_customer, get_decimal, get_list, get_str

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _wants_discount(payload: dict, items: list) -> bool:
    if payload.get("discount_type") or payload.get("discount_value"):
        return True
    return any(
        isinstance(item, dict) and (item.get("discount_cents") or item.get("unit_price_cents") is not None)
        for item in items
    )


@sales_bp.post("/")
@require_auth
@require_permission(P.CREATE_SALE)
def create_sale_route():
    """
    Create a completed sale.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 2, "discount_cents": 0}],
        "payments": [{"method": "CASH", "amount_cents": 33000}],
        "discount_type": "PERCENTAGE" | "FIXED",   (optional)
        "discount_value": 10,                      (optional)
        "customer": {"name": "...", "phone": "...", "email": "..."},
        "notes": "..."
    }

    Returns:
        201: Sale created
        400: Invalid input
        403: Missing APPLY_DISCOUNT for discounts or price overrides
        409: Insufficient stock or inactive product
    """
    try:
        payload = request.get_json(silent=True) or {}
        items = get_list(payload, "items", required=True)

        if _wants_discount(payload, items):
            permission_service.require_permissions(
                g.current_user.id,
                [P.APPLY_DISCOUNT],
                resource=request.path,
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
            )

        sale = sales_service.create_sale(
            items=items,
            payments=get_list(payload, "payments"),
            user_id=g.current_user.id,
            discount_type=get_str(payload, "discount_type", upper=True),
            discount_value=get_decimal(payload, "discount_value"),
            customer=get_customer(payload),
            notes=get_str(payload, "notes"),
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/")
@require_auth
@require_permission(P.VIEW_SALES)
def list_sales_route():
    """Query params: status, start, end, page, per_page."""
    try:
        result = sales_service.list_sales(
            status=(request.args.get("status") or "").upper() or None,
            start=parse_iso_datetime(request.args.get("start")),
            end=parse_iso_datetime(request.args.get("end")),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 50, type=int),
        )
        return jsonify(result)
    except ValueError:
        return jsonify({"error": "start and end must be ISO-8601 datetimes"}), 400
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission(P.VIEW_SALES)
def get_sale_route(sale_id: int):
    try:
        return jsonify({"sale": sales_service.get_sale(sale_id).to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.get("/number/<string:sale_number>")
@require_auth
@require_permission(P.VIEW_SALES)
def get_sale_by_number_route(sale_number: str):
    try:
        return jsonify({"sale": sales_service.get_sale_by_number(sale_number).to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.post("/<int:sale_id>/void")
@require_auth
@require_permission(P.VOID_SALE)
def void_sale_route(sale_id: int):
    """
    Void a sale. Restores stock and voids its warranties.

    Request body: {"reason": "..."} (required)
    """
    try:
        payload = request.get_json(silent=True) or {}
        sale = sales_service.void_sale(
            sale_id,
            user_id=g.current_user.id,
            reason=get_str(payload, "reason", required=True, max_length=255),
        )
        return jsonify({"sale": sale.to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return jsonify({"error": "Internal server error"}), 500
