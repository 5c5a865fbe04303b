# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

"""
Return and exchange routes.

Returns restock the returned units and void their warranties in the same
transaction. Exchanges additionally create the replacement sale.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission, require_all_permissions
from ..errors import ServiceError
from ..permissions import PermissionCode as P
from ..services import permission_service, return_service
from ..validation import get_int, get_list, get_str

returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


def _overrides_price(items: list) -> bool:
    return any(
        isinstance(item, dict) and (item.get("discount_cents") or item.get("unit_price_cents") is not None)
        for item in items
    )


@returns_bp.post("/")
@require_auth
@require_permission(P.CREATE_RETURN)
def create_return_route():
    """
    Request body:
    {
        "original_sale_id": 123,
        "items": [{"sale_item_id": 456, "quantity": 1, "condition": "GOOD"}],
        "reason": "...",
        "refund_method": "CASH"
    }
    """
    try:
        payload = request.get_json(silent=True) or {}
        ret = return_service.create_return(
            original_sale_id=get_int(payload, "original_sale_id", required=True, minimum=1),
            items=get_list(payload, "items", required=True),
            user_id=g.current_user.id,
            reason=get_str(payload, "reason", max_length=255),
            refund_method=get_str(payload, "refund_method", upper=True) or "CASH",
            notes=get_str(payload, "notes"),
        )
        return jsonify({"return": ret.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/exchange")
@require_auth
@require_all_permissions(P.CREATE_RETURN, P.CREATE_SALE)
def create_exchange_route():
    """
    Request body:
    {
        "original_sale_id": 123,
        "return_items": [{"sale_item_id": 456, "quantity": 1}],
        "new_items": [{"product_id": 9, "quantity": 1}],
        "payments": [{"method": "CASH", "amount_cents": 500}],
        "reason": "..."
    }

    Price overrides or discounts on new items require APPLY_DISCOUNT.
    """
    try:
        payload = request.get_json(silent=True) or {}
        new_items = get_list(payload, "new_items", required=True)
        if _overrides_price(new_items):
            permission_service.require_permissions(
                g.current_user.id,
                [P.APPLY_DISCOUNT],
                resource=request.path,
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
            )

        ret = return_service.create_exchange(
            original_sale_id=get_int(payload, "original_sale_id", required=True, minimum=1),
            return_items=get_list(payload, "return_items", required=True),
            new_items=new_items,
            payments=get_list(payload, "payments"),
            user_id=g.current_user.id,
            reason=get_str(payload, "reason", max_length=255),
            notes=get_str(payload, "notes"),
        )
        return jsonify({"return": ret.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create exchange")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/")
@require_auth
@require_permission(P.VIEW_RETURNS)
def list_returns_route():
    try:
        result = return_service.list_returns(
            sale_id=request.args.get("sale_id", type=int),
            return_type=(request.args.get("type") or "").upper() or None,
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 50, type=int),
        )
        return jsonify(result)
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@returns_bp.get("/<int:return_id>")
@require_auth
@require_permission(P.VIEW_RETURNS)
def get_return_route(return_id: int):
    try:
        return jsonify({"return": return_service.get_return(return_id).to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@returns_bp.get("/number/<string:return_number>")
@require_auth
@require_permission(P.VIEW_RETURNS)
def get_return_by_number_route(return_number: str):
    try:
        return jsonify({"return": return_service.get_return_by_number(return_number).to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
