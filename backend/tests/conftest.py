"""
Pytest fixtures for back-office backend tests.

Provides an in-memory database, users with session tokens, and catalog
factories. Every fixture commits before a test runs: orchestrators open their
own write transaction and must start from a clean session.
"""

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Category
from backoffice.services import auth_service, session_service, products_service

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Fresh data for each test; schema is kept."""
    with app.app_context():
        db.session.rollback()
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def admin_user(db_session):
    return auth_service.create_user("admin", PASSWORD, role="admin", name="Admin")


@pytest.fixture(scope='function')
def staff_user(db_session):
    return auth_service.create_user("staff", PASSWORD, role="staff", name="Counter Staff")


@pytest.fixture(scope='function')
def other_staff_user(db_session):
    return auth_service.create_user("staff2", PASSWORD, role="staff", name="Second Counter")


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    _, token = session_service.create_session(admin_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def staff_headers(staff_user):
    _, token = session_service.create_session(staff_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def category(db_session):
    cat = Category(name="Sarees", code="SAREE")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def other_category(db_session):
    cat = Category(name="Kurtis", code="KURTI")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def make_product(admin_user, category):
    """Factory: create a product through the registry so opening stock is on the ledger."""
    def _make(**overrides):
        data = {
            "name": "Banarasi Silk Saree",
            "category_id": category.id,
            "cost_price_cents": 60_000,
            "selling_price_cents": 100_000,
            "mrp_cents": 120_000,
            "gst_rate_bps": 500,
            "stock_quantity": 10,
        }
        data.update(overrides)
        return products_service.create_product(data=data, actor=admin_user)
    return _make


@pytest.fixture(scope='function')
def saree(make_product):
    return make_product()


@pytest.fixture(scope='function')
def dupatta(make_product):
    return make_product(
        name="Chiffon Dupatta",
        cost_price_cents=20_000,
        selling_price_cents=50_000,
        mrp_cents=None,
        gst_rate_bps=1200,
        stock_quantity=5,
    )
