# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import ServiceError
from ..permissions import PermissionCode as P
from ..services import catalog_service, stock_service
from ..time_utils import parse_iso_datetime
from ..validation import get_int, get_str

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/")
@require_auth
@require_permission(P.VIEW_INVENTORY)
def list_stock_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    return jsonify({"stock": stock_service.list_stock(include_inactive=include_inactive)})


@inventory_bp.get("/<int:product_id>")
@require_auth
@require_permission(P.VIEW_INVENTORY)
def get_stock_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
        return jsonify({
            "product_id": product.id,
            "sku": product.sku,
            "quantity": stock_service.get_stock_quantity(product_id),
        })
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.get("/low-stock")
@require_auth
@require_permission(P.VIEW_INVENTORY)
def low_stock_route():
    return jsonify({"items": stock_service.get_low_stock()})


@inventory_bp.get("/value")
@require_auth
@require_permission(P.VIEW_INVENTORY)
def inventory_value_route():
    return jsonify(stock_service.get_inventory_value())


@inventory_bp.get("/adjustment-types")
@require_auth
@require_permission(P.VIEW_INVENTORY)
def adjustment_types_route():
    return jsonify({"adjustment_types": stock_service.adjustment_types()})


@inventory_bp.get("/<int:product_id>/history")
@require_auth
@require_permission(P.VIEW_INVENTORY)
def stock_history_route(product_id: int):
    """Query params: type, start, end (ISO-8601), page, per_page."""
    try:
        history = stock_service.get_stock_history(
            product_id,
            adjustment_type=(request.args.get("type") or "").upper() or None,
            start=parse_iso_datetime(request.args.get("start")),
            end=parse_iso_datetime(request.args.get("end")),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 50, type=int),
        )
        return jsonify(history)
    except ValueError:
        return jsonify({"error": "start and end must be ISO-8601 datetimes"}), 400
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.post("/adjust")
@require_auth
@require_permission(P.MANAGE_INVENTORY)
def adjust_stock_route():
    """
    Apply a manual stock movement.

    Request body:
    {
        "product_id": 1,
        "adjustment_type": "PURCHASE" | "DAMAGE" | "CORRECTION" | ...,
        "quantity": 5,
        "direction": "INCREASE" | "DECREASE",   (required for CORRECTION)
        "reason": "..."
    }
    """
    try:
        payload = request.get_json(silent=True) or {}
        result = stock_service.adjust_stock(
            product_id=get_int(payload, "product_id", required=True, minimum=1),
            adjustment_type=get_str(payload, "adjustment_type", required=True, upper=True),
            quantity=get_int(payload, "quantity", required=True, minimum=1),
            direction=get_str(payload, "direction", upper=True),
            reason=get_str(payload, "reason", max_length=255),
            user_id=g.current_user.id,
        )
        return jsonify(result.to_dict()), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500
