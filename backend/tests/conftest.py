"""
Pytest fixtures for the bookstore backend tests.

Provides an in-memory database, a test client, and admin/customer accounts
with ready-made Authorization headers.
"""

import pytest
from bookstore import create_app
from bookstore.extensions import db
from bookstore.services import auth_service, catalog_service


ADMIN_PASSWORD = "AdminPass123!"
CUSTOMER_PASSWORD = "Customer123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'ORDER_WORKFLOW': 'fulfillment',
        'ORDERS_REQUIRE_AUTH': False,
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
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def admin_user(db_session):
    return auth_service.create_user("admin", ADMIN_PASSWORD, is_admin=True)


@pytest.fixture(scope='function')
def customer_user(db_session):
    return auth_service.create_user("reader", CUSTOMER_PASSWORD)


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    assert response.status_code == 200, response.json
    return response.json['token']


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.username, ADMIN_PASSWORD))


@pytest.fixture(scope='function')
def customer_headers(client, customer_user):
    return auth_headers(get_auth_token(client, customer_user.username, CUSTOMER_PASSWORD))


@pytest.fixture(scope='function')
def make_book(db_session):
    """Factory creating books through the catalog service (ledger included)."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        patch = {
            "title": f"Book {counter['n']}",
            "author": "Test Author",
            "price_cents": 500,
            "stock": 10,
        }
        patch.update(overrides)
        return catalog_service.create_book(patch=patch)

    return _make


@pytest.fixture(scope='function')
def category(db_session):
    return catalog_service.create_category(patch={"name": "Fiction", "description": "Novels"})
