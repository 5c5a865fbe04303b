# Overview: Flask API routes for product and category operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_permission
from ..errors import ServiceError
from ..permissions import PermissionCode as P
from ..services import catalog_service
from ..validation import get_bool, get_cents, get_decimal, get_int, get_str

products_bp = Blueprint("products", __name__, url_prefix="/api")


def _product_fields(payload: dict, *, partial: bool) -> dict:
    """Coerce a product payload; on partial updates absent keys are skipped."""
    readers = {
        "sku": lambda: get_str(payload, "sku", required=not partial, max_length=64, upper=True),
        "name": lambda: get_str(payload, "name", required=not partial, max_length=255),
        "description": lambda: get_str(payload, "description"),
        "category_id": lambda: get_int(payload, "category_id", minimum=1),
        "selling_price_cents": lambda: get_cents(payload, "selling_price_cents", required=not partial),
        "cost_price_cents": lambda: get_cents(payload, "cost_price_cents", default=0),
        "tax_rate": lambda: get_decimal(payload, "tax_rate", default=0),
        "warranty_months": lambda: get_int(payload, "warranty_months", default=0, minimum=0),
        "warranty_type": lambda: get_str(payload, "warranty_type", upper=True) or "SHOP",
        "min_stock_level": lambda: get_int(payload, "min_stock_level", default=0, minimum=0),
        "is_active": lambda: get_bool(payload, "is_active", default=True),
    }
    fields = {}
    for name, read in readers.items():
        if partial and name not in payload:
            continue
        fields[name] = read()
    return fields


@products_bp.get("/products")
@require_auth
@require_permission(P.VIEW_PRODUCTS)
def list_products_route():
    """Query params: search, category_id, include_inactive."""
    products = catalog_service.list_products(
        search=request.args.get("search"),
        category_id=request.args.get("category_id", type=int),
        include_inactive=request.args.get("include_inactive", "false").lower() == "true",
    )
    return jsonify({"products": [p.to_dict() for p in products]})


@products_bp.get("/products/<int:product_id>")
@require_auth
@require_permission(P.VIEW_PRODUCTS)
def get_product_route(product_id: int):
    try:
        return jsonify({"product": catalog_service.get_product(product_id).to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.post("/products")
@require_auth
@require_permission(P.CREATE_PRODUCT)
def create_product_route():
    try:
        payload = request.get_json(silent=True) or {}
        product = catalog_service.create_product(**_product_fields(payload, partial=False))
        return jsonify({"product": product.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/products/<int:product_id>")
@require_auth
@require_permission(P.UPDATE_PRODUCT)
def update_product_route(product_id: int):
    try:
        payload = request.get_json(silent=True) or {}
        product = catalog_service.update_product(product_id, **_product_fields(payload, partial=True))
        return jsonify({"product": product.to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/categories")
@require_auth
@require_permission(P.VIEW_CATEGORIES)
def list_categories_route():
    categories = catalog_service.list_categories(
        include_inactive=request.args.get("include_inactive", "false").lower() == "true",
    )
    return jsonify({"categories": [c.to_dict() for c in categories]})


@products_bp.post("/categories")
@require_auth
@require_permission(P.CREATE_CATEGORY)
def create_category_route():
    try:
        payload = request.get_json(silent=True) or {}
        category = catalog_service.create_category(
            name=get_str(payload, "name", required=True, max_length=128),
            description=get_str(payload, "description"),
        )
        return jsonify({"category": category.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
