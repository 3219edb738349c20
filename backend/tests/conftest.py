"""
Pytest fixtures for billing backend tests.

Provides test database setup, business/user/catalog fixtures, an in-memory
SaleStore and the test client.
"""

import pytest
from billing import create_app
from billing.extensions import db
from billing.models import Business, User, Product, Party
from billing.services import auth_service
from billing.services.auth_service import hash_password
from billing.services.ledger_service import Actor

from fakes import InMemorySaleStore


PASSWORD = "Password123!"

# bcrypt at full cost makes every user fixture take ~0.3s
auth_service.BCRYPT_ROUNDS = 4


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SALE_RATE_LIMIT_WINDOW_SECONDS': 60,
        'SALE_RATE_LIMIT_MAX_REQUESTS': 10,
        'SALE_COMMIT_ATTEMPTS': 5,
        'DEFAULT_TAX_RATE': '18',
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
def business(db_session):
    biz = Business(name="Sharma Traders", gstin="27ABCDE1234F1Z5", is_active=True)
    db_session.add(biz)
    db_session.commit()
    return biz


@pytest.fixture(scope='function')
def other_business(db_session):
    biz = Business(name="Other Traders", is_active=True)
    db_session.add(biz)
    db_session.commit()
    return biz


@pytest.fixture(scope='function')
def user(db_session, business):
    user = User(
        business_id=business.id,
        username="owner",
        email="owner@sharma.test",
        display_name="Asha Owner",
        password_hash=hash_password(PASSWORD),
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def other_user(db_session, other_business):
    user = User(
        business_id=other_business.id,
        username="other",
        email="other@other.test",
        password_hash=hash_password(PASSWORD),
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def actor(user):
    return Actor(user_id=user.id, business_id=user.business_id, user_name=user.display_name)


@pytest.fixture(scope='function')
def widget(db_session, business):
    """Catalog product: 100.00 each, 10 in stock."""
    product = Product(
        business_id=business.id,
        id="p1",
        name="Widget",
        unit="pcs",
        price_cents=10000,
        stock=10,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def gadget(db_session, business):
    """Catalog product: 25.00 each, 3 in stock."""
    product = Product(
        business_id=business.id,
        id="p2",
        name="Gadget",
        unit="box",
        price_cents=2500,
        stock=3,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def customer(db_session, business):
    party = Party(business_id=business.id, id="c1", name="Ravi Kumar", type="Customer", balance_cents=0)
    db_session.add(party)
    db_session.commit()
    return party


@pytest.fixture(scope='function')
def supplier(db_session, business):
    party = Party(business_id=business.id, id="s1", name="Metro Wholesale", type="Supplier", balance_cents=0)
    db_session.add(party)
    db_session.commit()
    return party


@pytest.fixture(scope='function')
def memory_store():
    return InMemorySaleStore()


@pytest.fixture(scope='function')
def auth_token(client, user):
    return get_auth_token(client, user.username, PASSWORD)


def get_auth_token(client, username: str, password: str) -> str:
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


@pytest.fixture(scope='function')
def owner_headers(auth_token):
    return auth_headers(auth_token)


@pytest.fixture(scope='function')
def other_headers(client, other_user):
    return auth_headers(get_auth_token(client, other_user.username, PASSWORD))
