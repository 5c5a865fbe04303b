"""
CLI command tests via Flask's CLI runner.
"""

import pytest

from repairpos.models import User
from repairpos.services import stock_service


@pytest.fixture
def runner(app, db_session):
    return app.test_cli_runner()


class TestSystemInit:

    def test_init_is_idempotent(self, runner, db_session):
        first = runner.invoke(args=["system", "init", "--admin-password", "Password123!"])
        assert first.exit_code == 0, first.output
        assert "PASS Created super admin 'admin'" in first.output

        second = runner.invoke(args=["system", "init"])
        assert second.exit_code == 0, second.output
        assert "already exists" in second.output
        assert "PASS 0 roles, 0 permissions, 0 role assignments created" in second.output

        admin = db_session.query(User).filter_by(username="admin").one()
        assert admin.is_super_admin


class TestPermissionCommands:

    def test_check_and_grant(self, runner, cashier_user):
        result = runner.invoke(args=["perms", "check", "cashier", "void_sale"])
        assert "FAIL cashier lacks VOID_SALE" in result.output

        result = runner.invoke(args=["perms", "grant", "cashier", "VOID_SALE"])
        assert result.exit_code == 0, result.output

        result = runner.invoke(args=["perms", "check", "cashier", "VOID_SALE"])
        assert "PASS cashier has VOID_SALE" in result.output

    def test_unknown_code_fails(self, runner, cashier_user):
        result = runner.invoke(args=["perms", "check", "cashier", "FLY"])
        assert result.exit_code != 0

    def test_list_by_role(self, runner, setup_roles):
        result = runner.invoke(args=["perms", "list", "--role", "technician"])
        assert "COMPLETE_REPAIR" in result.output
        assert "VOID_SALE" not in result.output


class TestMaintenanceCommands:

    def test_verify_ledger(self, runner, make_product, db_session):
        good = make_product(stock=4)
        bad = make_product(stock=4)
        assert runner.invoke(args=["inventory", "verify-ledger", "--product-id", str(good.id)]).exit_code == 0

        record = stock_service.get_or_create_stock(bad.id)
        record.quantity = 9
        db_session.commit()

        result = runner.invoke(args=["inventory", "verify-ledger"])
        assert result.exit_code != 0
        assert f"FAIL product {bad.id}" in result.output

    def test_expire_warranties(self, runner, db_session):
        result = runner.invoke(args=["warranties", "expire"])
        assert result.exit_code == 0
        assert "PASS Marked 0 warranty(ies) EXPIRED" in result.output
