# Overview: Product and category catalog; pricing lookups used by the sale, repair and warranty engines.

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import or_

from ..errors import NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import Category, Product
from .concurrency import run_in_transaction


WARRANTY_TYPES = {"MANUFACTURER", "SHOP", "EXTENDED", "REPAIR"}

PRODUCT_FIELDS = {
    "sku", "name", "description", "category_id",
    "selling_price_cents", "cost_price_cents", "tax_rate",
    "warranty_months", "warranty_type", "min_stock_level", "is_active",
}


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})
    return product


def get_active_product(product_id: int) -> Product:
    """Product that may be sold or consumed; inactive products are refused."""
    product = get_product(product_id)
    if not product.is_active:
        raise StateConflictError(f"Product {product.name} is inactive", {"product_id": product_id})
    return product


def get_selling_price(product_id: int) -> int:
    return get_product(product_id).selling_price_cents


def get_tax_rate(product_id: int) -> Decimal:
    rate = get_product(product_id).tax_rate
    return Decimal(str(rate)) if rate is not None else Decimal("0")


def _apply_product_fields(product: Product, fields: dict) -> None:
    unknown = set(fields) - PRODUCT_FIELDS
    if unknown:
        raise ValidationError(f"Unknown product fields: {', '.join(sorted(unknown))}")

    if "warranty_type" in fields and fields["warranty_type"] not in WARRANTY_TYPES:
        raise ValidationError(f"warranty_type must be one of: {', '.join(sorted(WARRANTY_TYPES))}")
    if "tax_rate" in fields:
        rate = Decimal(str(fields["tax_rate"]))
        if rate < 0 or rate > 100:
            raise ValidationError("tax_rate must be between 0 and 100")
    for name in ("selling_price_cents", "cost_price_cents", "warranty_months", "min_stock_level"):
        if name in fields and fields[name] is not None and fields[name] < 0:
            raise ValidationError(f"{name} must be >= 0")
    if fields.get("category_id") is not None and db.session.get(Category, fields["category_id"]) is None:
        raise NotFoundError(f"Category {fields['category_id']} not found")

    for key, value in fields.items():
        setattr(product, key, value)


def create_product(**fields) -> Product:
    def _op() -> Product:
        if not fields.get("sku") or not fields.get("name"):
            raise ValidationError("sku and name are required")
        if db.session.query(Product).filter_by(sku=fields["sku"]).first():
            raise StateConflictError(f"SKU {fields['sku']} already exists")
        product = Product()
        _apply_product_fields(product, fields)
        db.session.add(product)
        db.session.flush()
        return product
    return run_in_transaction(_op)


def update_product(product_id: int, **fields) -> Product:
    def _op() -> Product:
        product = get_product(product_id)
        if "sku" in fields and fields["sku"] != product.sku:
            if db.session.query(Product).filter_by(sku=fields["sku"]).first():
                raise StateConflictError(f"SKU {fields['sku']} already exists")
        _apply_product_fields(product, fields)
        return product
    return run_in_transaction(_op)


def list_products(*, search: str | None = None, category_id: int | None = None, include_inactive: bool = False):
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    return query.order_by(Product.name).all()


def create_category(*, name: str, description: str | None = None) -> Category:
    def _op() -> Category:
        if db.session.query(Category).filter_by(name=name).first():
            raise StateConflictError(f"Category {name} already exists")
        category = Category(name=name, description=description)
        db.session.add(category)
        db.session.flush()
        return category
    return run_in_transaction(_op)


def list_categories(*, include_inactive: bool = False):
    query = db.session.query(Category)
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    return query.order_by(Category.name).all()
