"""
Return and exchange tests.
"""

from decimal import Decimal

import pytest

from repairpos.errors import StateConflictError, ValidationError
from repairpos.models import Sale, StockAdjustment, Warranty
from repairpos.services import return_service, sales_service, stock_service


CUSTOMER = {"name": "Ada Perera", "phone": "0771234567"}


@pytest.fixture
def sold(make_product, cashier_user):
    """Three units of a 150.00 tax-free product sold to a known customer."""
    product = make_product(stock=5, tax_rate=Decimal("0"), warranty_months=12)
    sale = sales_service.create_sale(
        items=[{"product_id": product.id, "quantity": 3}],
        payments=[{"method": "CASH", "amount_cents": 45000}],
        user_id=cashier_user.id,
        customer=CUSTOMER,
    )
    return product, sale


# =============================================================================
# REFUND RETURNS
# =============================================================================


class TestCreateReturn:

    def test_return_restocks_and_refunds(self, sold, cashier_user, db_session):
        product, sale = sold

        ret = return_service.create_return(
            original_sale_id=sale.id,
            items=[{"sale_item_id": sale.items[0].id, "quantity": 2}],
            user_id=cashier_user.id,
            reason="Wrong colour",
        )

        assert ret.return_type == "REFUND"
        assert ret.return_number.startswith("RT-")
        assert ret.total_refund_cents == 30000
        assert ret.refund_method == "CASH"
        assert stock_service.get_stock_quantity(product.id) == 4

        adjustment = db_session.query(StockAdjustment).filter_by(reference_type="RETURN", reference_id=ret.id).one()
        assert adjustment.adjustment_type == "RETURN"
        assert adjustment.quantity_delta == 2

    def test_return_voids_all_active_warranties_for_product(self, sold, cashier_user, db_session):
        _product, sale = sold
        return_service.create_return(
            original_sale_id=sale.id,
            items=[{"sale_item_id": sale.items[0].id, "quantity": 1}],
            user_id=cashier_user.id,
        )

        statuses = [w.status for w in db_session.query(Warranty).filter_by(sale_id=sale.id)]
        assert len(statuses) == 3
        assert statuses.count("ACTIVE") == 0
        assert set(statuses) == {"VOID"}

    def test_return_leaves_other_products_warranties(self, make_product, cashier_user, db_session):
        phone = make_product(stock=2, tax_rate=Decimal("0"), warranty_months=12)
        charger = make_product(stock=2, tax_rate=Decimal("0"), warranty_months=6, selling_price_cents=2000)
        sale = sales_service.create_sale(
            items=[
                {"product_id": phone.id, "quantity": 1},
                {"product_id": charger.id, "quantity": 1},
            ],
            payments=[{"method": "CASH", "amount_cents": 17000}],
            user_id=cashier_user.id,
            customer=CUSTOMER,
        )
        charger_line = next(item for item in sale.items if item.product_id == charger.id)

        return_service.create_return(
            original_sale_id=sale.id,
            items=[{"sale_item_id": charger_line.id, "quantity": 1}],
            user_id=cashier_user.id,
        )

        by_product = {w.product_id: w.status for w in db_session.query(Warranty).filter_by(sale_id=sale.id)}
        assert by_product == {phone.id: "ACTIVE", charger.id: "VOID"}

    def test_cumulative_quantity_capped(self, sold, cashier_user):
        _product, sale = sold
        item_id = sale.items[0].id
        return_service.create_return(
            original_sale_id=sale.id, items=[{"sale_item_id": item_id, "quantity": 2}], user_id=cashier_user.id,
        )

        with pytest.raises(ValidationError) as exc:
            return_service.create_return(
                original_sale_id=sale.id, items=[{"sale_item_id": item_id, "quantity": 2}], user_id=cashier_user.id,
            )
        assert exc.value.details["already_returned"] == 2

        last = return_service.create_return(
            original_sale_id=sale.id, items=[{"sale_item_id": item_id, "quantity": 1}], user_id=cashier_user.id,
        )
        assert last.total_refund_cents == 15000

    def test_refund_excludes_tax_and_shares_line_discount(self, make_product, cashier_user):
        product = make_product(stock=5)
        sale = sales_service.create_sale(
            items=[{"product_id": product.id, "quantity": 2, "discount_cents": 1000}],
            user_id=cashier_user.id,
        )
        ret = return_service.create_return(
            original_sale_id=sale.id,
            items=[{"sale_item_id": sale.items[0].id, "quantity": 1}],
            user_id=cashier_user.id,
        )
        assert ret.total_refund_cents == 15000 - 500

    def test_item_must_belong_to_sale(self, sold, make_product, cashier_user):
        _product, sale = sold
        other_product = make_product(stock=1)
        other = sales_service.create_sale(
            items=[{"product_id": other_product.id, "quantity": 1}], user_id=cashier_user.id,
        )
        with pytest.raises(ValidationError):
            return_service.create_return(
                original_sale_id=sale.id,
                items=[{"sale_item_id": other.items[0].id, "quantity": 1}],
                user_id=cashier_user.id,
            )

    def test_voided_sale_cannot_be_returned(self, sold, cashier_user):
        _product, sale = sold
        item_id = sale.items[0].id
        sales_service.void_sale(sale.id, user_id=cashier_user.id, reason="Mistake")
        with pytest.raises(StateConflictError):
            return_service.create_return(
                original_sale_id=sale.id, items=[{"sale_item_id": item_id, "quantity": 1}], user_id=cashier_user.id,
            )

    def test_invalid_condition(self, sold, cashier_user):
        _product, sale = sold
        with pytest.raises(ValidationError):
            return_service.create_return(
                original_sale_id=sale.id,
                items=[{"sale_item_id": sale.items[0].id, "quantity": 1, "condition": "SHINY"}],
                user_id=cashier_user.id,
            )


# =============================================================================
# EXCHANGES
# =============================================================================


class TestExchange:

    def test_exchange_customer_pays_difference(self, sold, make_product, cashier_user, db_session):
        old_product, sale = sold
        upgrade = make_product(stock=2, tax_rate=Decimal("0"), selling_price_cents=20000)

        ret = return_service.create_exchange(
            original_sale_id=sale.id,
            return_items=[{"sale_item_id": sale.items[0].id, "quantity": 1}],
            new_items=[{"product_id": upgrade.id, "quantity": 1}],
            payments=[{"method": "CASH", "amount_cents": 6000}],
            user_id=cashier_user.id,
        )

        assert ret.return_type == "EXCHANGE"
        assert ret.total_refund_cents == 15000
        assert ret.new_items_total_cents == 20000
        assert ret.exchange_amount_due_cents == 5000
        assert ret.change_cents == 1000
        assert stock_service.get_stock_quantity(old_product.id) == 3
        assert stock_service.get_stock_quantity(upgrade.id) == 1

        exchange_sale = db_session.get(Sale, ret.exchange_sale_id)
        assert exchange_sale.payment_status == "PAID"
        assert [p.method for p in exchange_sale.payments] == ["EXCHANGE_CREDIT", "CASH"]
        assert exchange_sale.customer_phone == CUSTOMER["phone"]

    def test_exchange_voids_original_warranties(self, sold, make_product, cashier_user, db_session):
        _product, sale = sold
        upgrade = make_product(stock=2, tax_rate=Decimal("0"), selling_price_cents=15000, warranty_months=6)

        ret = return_service.create_exchange(
            original_sale_id=sale.id,
            return_items=[{"sale_item_id": sale.items[0].id, "quantity": 1}],
            new_items=[{"product_id": upgrade.id, "quantity": 1}],
            user_id=cashier_user.id,
        )

        original = [w.status for w in db_session.query(Warranty).filter_by(sale_id=sale.id)]
        assert len(original) == 3
        assert set(original) == {"VOID"}

        issued = db_session.query(Warranty).filter_by(sale_id=ret.exchange_sale_id).all()
        assert [(w.product_id, w.status) for w in issued] == [(upgrade.id, "ACTIVE")]

    def test_exchange_underpayment_rejected(self, sold, make_product, cashier_user):
        old_product, sale = sold
        upgrade = make_product(stock=2, tax_rate=Decimal("0"), selling_price_cents=20000)

        with pytest.raises(ValidationError):
            return_service.create_exchange(
                original_sale_id=sale.id,
                return_items=[{"sale_item_id": sale.items[0].id, "quantity": 1}],
                new_items=[{"product_id": upgrade.id, "quantity": 1}],
                payments=[{"method": "CASH", "amount_cents": 1000}],
                user_id=cashier_user.id,
            )
        assert stock_service.get_stock_quantity(old_product.id) == 2
        assert stock_service.get_stock_quantity(upgrade.id) == 2

    def test_exchange_for_cheaper_item_owes_customer(self, sold, make_product, cashier_user):
        _product, sale = sold
        cheaper = make_product(stock=2, tax_rate=Decimal("0"), selling_price_cents=5000)

        ret = return_service.create_exchange(
            original_sale_id=sale.id,
            return_items=[{"sale_item_id": sale.items[0].id, "quantity": 1}],
            new_items=[{"product_id": cheaper.id, "quantity": 1}],
            user_id=cashier_user.id,
        )
        assert ret.exchange_amount_due_cents == -10000
        assert ret.refund_method == "CASH"


# =============================================================================
# LISTING
# =============================================================================


class TestReturnListing:

    def test_list_and_lookup(self, sold, cashier_user):
        _product, sale = sold
        ret = return_service.create_return(
            original_sale_id=sale.id, items=[{"sale_item_id": sale.items[0].id, "quantity": 1}], user_id=cashier_user.id,
        )

        listing = return_service.list_returns(sale_id=sale.id)
        assert listing["total"] == 1
        assert return_service.get_return_by_number(ret.return_number).id == ret.id
