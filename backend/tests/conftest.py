"""
Pytest fixtures for loyalty backend tests.

Provides test database setup, users with sessions, customers, and test client.
"""

from decimal import Decimal

import pytest
from loyalty import create_app
from loyalty.extensions import db
from loyalty.models import Store, Customer
from loyalty.services.auth_service import create_default_roles, create_user, assign_role
from loyalty.services import session_service


CRON_SECRET = "test-cron-secret"
TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CRON_SECRET': CRON_SECRET,
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
def setup_roles(db_session):
    """Setup default roles."""
    create_default_roles()
    db_session.commit()


@pytest.fixture(scope='function')
def store(db_session):
    """Store with an explicit point program (2.5%, 6 months, min 200)."""
    store = Store(
        name="Store A1",
        code="A1",
        point_earn_rate=Decimal("2.50"),
        point_expiration_months=6,
        point_min_usage=200,
    )
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def customer(db_session, store):
    """Customer with an empty point balance."""
    customer = Customer(store_id=store.id, name="Hanako Tanaka", email="hanako@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def other_customer(db_session, store):
    customer = Customer(store_id=store.id, name="Taro Suzuki", email="taro@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


def _user_with_role(username, role, customer_id=None):
    user = create_user(
        username=username,
        email=f"{username}@loyalty.test",
        password=TEST_PASSWORD,
        customer_id=customer_id,
    )
    assign_role(user.id, role)
    return user


def _bearer(user):
    _, token = session_service.create_session(user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope='function')
def admin_user(db_session, setup_roles):
    """User holding the admin role."""
    return _user_with_role("admin_a", "admin")


@pytest.fixture(scope='function')
def staff_user(db_session, setup_roles):
    """Authenticated user without the admin role."""
    return _user_with_role("staff_a", "staff")


@pytest.fixture(scope='function')
def customer_user(db_session, setup_roles, customer):
    """Self-service account linked to `customer`."""
    return _user_with_role("hanako", "customer", customer_id=customer.id)


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return _bearer(admin_user)


@pytest.fixture(scope='function')
def staff_headers(staff_user):
    return _bearer(staff_user)


@pytest.fixture(scope='function')
def customer_headers(customer_user):
    return _bearer(customer_user)


@pytest.fixture(scope='function')
def cron_headers():
    return {"Authorization": f"Bearer {CRON_SECRET}"}
