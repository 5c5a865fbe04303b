"""
Sale transaction tests.

Verifies:
- Totals in integer cents with half-up tax rounding
- Stock is deducted per line and restored on void
- A failing line leaves no trace of the others
- Warranty issuance per unit when the customer is identified
"""

from decimal import Decimal

import pytest

from repairpos.errors import InsufficientStockError, StateConflictError, ValidationError
from repairpos.models import Sale, StockAdjustment, Warranty
from repairpos.services import return_service, sales_service, stock_service
from repairpos.services.pricing import price_line


CUSTOMER = {"name": "Ada Perera", "phone": "0771234567"}


def _cash(amount_cents):
    return [{"method": "CASH", "amount_cents": amount_cents}]


# =============================================================================
# PRICING
# =============================================================================


class TestPricing:

    def test_line_tax_half_up(self):
        line = price_line(unit_price_cents=105, quantity=1, tax_rate=Decimal("10"))
        assert line.tax_cents == 11
        assert line.total_cents == 116

    def test_line_discount_cannot_exceed_subtotal(self):
        with pytest.raises(ValidationError):
            price_line(unit_price_cents=100, quantity=1, discount_cents=101)


# =============================================================================
# CREATE SALE
# =============================================================================


class TestCreateSale:

    def test_reference_sale(self, make_product, cashier_user, db_session):
        product = make_product(stock=5)

        sale = sales_service.create_sale(
            items=[{"product_id": product.id, "quantity": 2}],
            payments=_cash(33000),
            user_id=cashier_user.id,
        )

        assert sale.status == "COMPLETED"
        assert sale.items[0].total_cents == 33000
        assert sale.subtotal_cents == 30000
        assert sale.tax_total_cents == 3000
        assert sale.grand_total_cents == 33000
        assert sale.payment_status == "PAID"
        assert sale.sale_number.startswith("SL-")
        assert stock_service.get_stock_quantity(product.id) == 3

        adjustment = (
            db_session.query(StockAdjustment)
            .filter_by(reference_type="SALE", reference_id=sale.id)
            .one()
        )
        assert adjustment.adjustment_type == "SALE"
        assert adjustment.quantity_delta == -2

    def test_percentage_discount(self, make_product, cashier_user):
        product = make_product(stock=5, tax_rate=Decimal("0"))
        sale = sales_service.create_sale(
            items=[{"product_id": product.id, "quantity": 2}],
            payments=_cash(27000),
            user_id=cashier_user.id,
            discount_type="percentage",
            discount_value=10,
        )
        assert sale.discount_type == "PERCENTAGE"
        assert sale.discount_total_cents == 3000
        assert sale.grand_total_cents == 27000

    def test_fixed_discount_and_line_discount(self, make_product, cashier_user):
        product = make_product(stock=5, tax_rate=Decimal("0"))
        sale = sales_service.create_sale(
            items=[{"product_id": product.id, "quantity": 1, "discount_cents": 500}],
            payments=_cash(13500),
            user_id=cashier_user.id,
            discount_type="FIXED",
            discount_value=1000,
        )
        assert sale.discount_total_cents == 1500
        assert sale.grand_total_cents == 13500

    def test_discount_cannot_exceed_subtotal(self, make_product, cashier_user):
        product = make_product(stock=5)
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                items=[{"product_id": product.id, "quantity": 1}],
                user_id=cashier_user.id,
                discount_type="FIXED",
                discount_value=20000,
            )
        assert stock_service.get_stock_quantity(product.id) == 5

    def test_partial_payment_and_change(self, make_product, cashier_user):
        product = make_product(stock=5)

        partial = sales_service.create_sale(
            items=[{"product_id": product.id, "quantity": 1}],
            payments=_cash(10000),
            user_id=cashier_user.id,
        )
        assert partial.payment_status == "PARTIAL"
        assert partial.change_cents == 0

        overpaid = sales_service.create_sale(
            items=[{"product_id": product.id, "quantity": 1}],
            payments=_cash(20000),
            user_id=cashier_user.id,
        )
        assert overpaid.payment_status == "PAID"
        assert overpaid.change_cents == 20000 - 16500

    def test_insufficient_stock_leaves_no_trace(self, make_product, cashier_user, db_session):
        plenty = make_product(stock=10)
        scarce = make_product(stock=1)

        with pytest.raises(InsufficientStockError):
            sales_service.create_sale(
                items=[
                    {"product_id": plenty.id, "quantity": 3},
                    {"product_id": scarce.id, "quantity": 2},
                ],
                user_id=cashier_user.id,
            )

        assert db_session.query(Sale).count() == 0
        assert stock_service.get_stock_quantity(plenty.id) == 10
        assert stock_service.get_stock_quantity(scarce.id) == 1

    def test_repeated_product_lines_are_summed_against_stock(self, make_product, cashier_user):
        product = make_product(stock=3)
        with pytest.raises(InsufficientStockError):
            sales_service.create_sale(
                items=[
                    {"product_id": product.id, "quantity": 2},
                    {"product_id": product.id, "quantity": 2},
                ],
                user_id=cashier_user.id,
            )

    def test_requires_items(self, cashier_user):
        with pytest.raises(ValidationError):
            sales_service.create_sale(items=[], user_id=cashier_user.id)

    def test_invalid_payment_method(self, make_product, cashier_user):
        product = make_product(stock=1)
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                items=[{"product_id": product.id, "quantity": 1}],
                payments=[{"method": "BITCOIN", "amount_cents": 100}],
                user_id=cashier_user.id,
            )


# =============================================================================
# WARRANTIES ON SALE
# =============================================================================


class TestSaleWarranties:

    def test_one_warranty_per_unit(self, make_product, cashier_user, db_session):
        product = make_product(stock=5, warranty_months=12)
        sale = sales_service.create_sale(
            items=[{"product_id": product.id, "quantity": 3}],
            payments=_cash(49500),
            user_id=cashier_user.id,
            customer=CUSTOMER,
        )

        warranties = db_session.query(Warranty).filter_by(sale_id=sale.id).all()
        assert len(warranties) == 3
        assert len({w.warranty_number for w in warranties}) == 3
        for warranty in warranties:
            assert warranty.status == "ACTIVE"
            assert warranty.source_type == "SALE"
            assert warranty.duration_months == 12
            assert warranty.customer_phone == CUSTOMER["phone"]

    def test_no_warranty_without_customer_phone(self, make_product, cashier_user, db_session):
        product = make_product(stock=5, warranty_months=12)
        sales_service.create_sale(
            items=[{"product_id": product.id, "quantity": 1}],
            user_id=cashier_user.id,
            customer={"name": "Walk-in"},
        )
        assert db_session.query(Warranty).count() == 0

    def test_no_warranty_for_products_without_months(self, make_product, cashier_user, db_session):
        product = make_product(stock=5)
        sales_service.create_sale(
            items=[{"product_id": product.id, "quantity": 1}],
            user_id=cashier_user.id,
            customer=CUSTOMER,
        )
        assert db_session.query(Warranty).count() == 0


# =============================================================================
# VOID
# =============================================================================


class TestVoidSale:

    def test_void_restores_stock(self, make_product, cashier_user, manager_user):
        product = make_product(stock=5)
        sale = sales_service.create_sale(
            items=[{"product_id": product.id, "quantity": 2}],
            payments=_cash(33000),
            user_id=cashier_user.id,
        )

        voided = sales_service.void_sale(sale.id, user_id=manager_user.id, reason="Keyed twice")

        assert voided.status == "VOIDED"
        assert voided.void_reason == "Keyed twice"
        assert voided.voided_by_user_id == manager_user.id
        assert stock_service.get_stock_quantity(product.id) == 5
        assert stock_service.verify_adjustment_chain(product.id) == []

    def test_void_twice_refused(self, make_product, cashier_user):
        product = make_product(stock=5)
        sale = sales_service.create_sale(items=[{"product_id": product.id, "quantity": 1}], user_id=cashier_user.id)
        sales_service.void_sale(sale.id, user_id=cashier_user.id, reason="Wrong item")

        with pytest.raises(StateConflictError):
            sales_service.void_sale(sale.id, user_id=cashier_user.id, reason="Again")
        assert stock_service.get_stock_quantity(product.id) == 5

    def test_void_requires_reason(self, make_product, cashier_user):
        product = make_product(stock=5)
        sale = sales_service.create_sale(items=[{"product_id": product.id, "quantity": 1}], user_id=cashier_user.id)
        with pytest.raises(ValidationError):
            sales_service.void_sale(sale.id, user_id=cashier_user.id, reason="  ")

    def test_void_voids_warranties(self, make_product, cashier_user, db_session):
        product = make_product(stock=5, warranty_months=6)
        sale = sales_service.create_sale(
            items=[{"product_id": product.id, "quantity": 2}],
            user_id=cashier_user.id,
            customer=CUSTOMER,
        )
        sales_service.void_sale(sale.id, user_id=cashier_user.id, reason="Customer changed mind")

        statuses = {w.status for w in db_session.query(Warranty).filter_by(sale_id=sale.id)}
        assert statuses == {"VOID"}

    def test_void_refused_after_return(self, make_product, cashier_user):
        product = make_product(stock=5)
        sale = sales_service.create_sale(
            items=[{"product_id": product.id, "quantity": 2}],
            payments=_cash(33000),
            user_id=cashier_user.id,
        )
        return_service.create_return(
            original_sale_id=sale.id,
            items=[{"sale_item_id": sale.items[0].id, "quantity": 1}],
            user_id=cashier_user.id,
            reason="Unwanted",
        )

        with pytest.raises(StateConflictError):
            sales_service.void_sale(sale.id, user_id=cashier_user.id, reason="Too late")


# =============================================================================
# LOOKUPS
# =============================================================================


class TestSaleLookups:

    def test_lookup_by_number_and_list(self, make_product, cashier_user):
        product = make_product(stock=5)
        first = sales_service.create_sale(items=[{"product_id": product.id, "quantity": 1}], user_id=cashier_user.id)
        second = sales_service.create_sale(items=[{"product_id": product.id, "quantity": 1}], user_id=cashier_user.id)
        sales_service.void_sale(first.id, user_id=cashier_user.id, reason="Test")

        assert sales_service.get_sale_by_number(second.sale_number.lower()).id == second.id

        listing = sales_service.list_sales(status="COMPLETED")
        assert listing["total"] == 1
        assert listing["items"][0]["id"] == second.id
