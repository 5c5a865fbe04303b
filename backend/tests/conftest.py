"""
Pytest fixtures for the repairpos backend tests.

Provides an in-memory application, a per-test clean database, seeded
roles and permissions, user/product factories and auth header helpers.
"""

from decimal import Decimal

import pytest

from repairpos import create_app
from repairpos.extensions import db
from repairpos.permissions import ADMIN, CASHIER, MANAGER, TECHNICIAN
from repairpos.services import auth_service, catalog_service, permission_service, stock_service


DEFAULT_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'BCRYPT_LOG_ROUNDS': 4,
        'CONCURRENCY_MAX_RETRIES': 1,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty every table before each test."""
    with app.app_context():
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def setup_roles(db_session):
    """Default roles and permissions."""
    auth_service.create_default_roles()
    permission_service.initialize_permissions()
    permission_service.assign_default_role_permissions()
    db_session.commit()


@pytest.fixture(scope='function')
def seed(setup_roles):
    return setup_roles


@pytest.fixture
def make_user(setup_roles):
    def _make(username, roles=(CASHIER,), *, password=DEFAULT_PASSWORD, is_super_admin=False):
        return auth_service.create_user(
            username=username,
            password=password,
            role_names=list(roles),
            is_super_admin=is_super_admin,
        )
    return _make


@pytest.fixture
def admin_user(make_user):
    return make_user("admin", roles=(ADMIN,))


@pytest.fixture
def manager_user(make_user):
    return make_user("manager", roles=(MANAGER,))


@pytest.fixture
def cashier_user(make_user):
    return make_user("cashier", roles=(CASHIER,))


@pytest.fixture
def technician_user(make_user):
    return make_user("tech", roles=(TECHNICIAN,))


@pytest.fixture
def make_product(db_session):
    """
    Product factory. Defaults match the reference scenario: cost 100.00,
    selling price 150.00, tax 10%.
    """
    counter = {"n": 0}

    def _make(*, stock=0, sku=None, name=None, **fields):
        counter["n"] += 1
        values = {
            "sku": sku or f"SKU-{counter['n']:03d}",
            "name": name or f"Product {counter['n']}",
            "selling_price_cents": 15000,
            "cost_price_cents": 10000,
            "tax_rate": Decimal("10"),
            "warranty_months": 0,
        }
        values.update(fields)
        product = catalog_service.create_product(**values)
        if stock:
            stock_service.adjust_stock(
                product_id=product.id,
                adjustment_type="PURCHASE",
                quantity=stock,
                reason="Opening stock",
            )
        return product
    return _make


def get_auth_token(client, username: str, password: str = DEFAULT_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, "admin"))


@pytest.fixture
def manager_headers(client, manager_user):
    return auth_headers(get_auth_token(client, "manager"))


@pytest.fixture
def cashier_headers(client, cashier_user):
    return auth_headers(get_auth_token(client, "cashier"))


@pytest.fixture
def technician_headers(client, technician_user):
    return auth_headers(get_auth_token(client, "tech"))


@pytest.fixture
def login(client):
    """Log a user in and return their Authorization headers (None token on failure)."""
    def _login(username, password=DEFAULT_PASSWORD):
        return auth_headers(get_auth_token(client, username, password))
    return _login
