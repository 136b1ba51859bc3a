# Overview: Pytest fixtures and helpers for backend tests.

"""
Pytest configuration and fixtures for Eastgate backend tests.
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from eastgate import create_app
from eastgate.extensions import db
from eastgate.models import Branch, MenuItem, StaffUser
from eastgate.services import notification_service
from eastgate.services.auth_service import hash_password
from eastgate.services.session_service import create_session
from eastgate.services.stock_service import add_stock


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'BCRYPT_ROUNDS': 4,
        'DB_RETRY_BACKOFF_SECONDS': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Provide an empty database for each test."""
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function')
def branch(db_session):
    branch = Branch(name="Eastgate Kampala", code="KLA")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def other_branch(db_session):
    branch = Branch(name="Eastgate Entebbe", code="EBB")
    db_session.add(branch)
    db_session.commit()
    return branch


def make_user(username: str, role: str, branch_id=None) -> StaffUser:
    user = StaffUser(
        username=username,
        email=f"{username}@eastgate.test",
        password_hash=hash_password(PASSWORD),
        role=role,
        branch_id=branch_id,
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return make_user("admin", "admin")


@pytest.fixture(scope='function')
def waiter(db_session, branch):
    return make_user("waiter", "waiter", branch.id)


@pytest.fixture(scope='function')
def chef(db_session, branch):
    return make_user("chef", "kitchen", branch.id)


@pytest.fixture(scope='function')
def storekeeper(db_session, branch):
    return make_user("storekeeper", "stock_manager", branch.id)


@pytest.fixture(scope='function')
def manager(db_session, branch):
    return make_user("manager", "manager", branch.id)


@pytest.fixture(scope='function')
def other_waiter(db_session, other_branch):
    return make_user("waiter_ebb", "waiter", other_branch.id)


@pytest.fixture(scope='function')
def menu(db_session, branch):
    """Burger 50.00, Fries 30.00 and an unavailable Lobster."""
    items = {
        "burger": MenuItem(branch_id=branch.id, name="Burger", category="Main Course", price_cents=5000),
        "fries": MenuItem(branch_id=branch.id, name="Fries", category="Sides", price_cents=3000),
        "lobster": MenuItem(
            branch_id=branch.id, name="Lobster", category="Main Course", price_cents=90000, available=False
        ),
    }
    db_session.add_all(items.values())
    db_session.commit()
    return items


@pytest.fixture(scope='function')
def beef(db_session, branch):
    """10 kg of beef with a reorder level of 5."""
    item, _ = add_stock(
        branch_id=branch.id,
        quantity="10",
        unit_cost_cents=1200,
        name="Beef",
        category="PROTEINS",
        unit="kg",
        reorder_level="5",
    )
    return item


def get_auth_token(user: StaffUser) -> str:
    """Helper to mint a session token without going through the login route."""
    _, token = create_session(user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return auth_headers(get_auth_token(admin_user))


@pytest.fixture(scope='function')
def waiter_headers(waiter):
    return auth_headers(get_auth_token(waiter))


@pytest.fixture(scope='function')
def chef_headers(chef):
    return auth_headers(get_auth_token(chef))


@pytest.fixture(scope='function')
def storekeeper_headers(storekeeper):
    return auth_headers(get_auth_token(storekeeper))


@pytest.fixture(scope='function')
def manager_headers(manager):
    return auth_headers(get_auth_token(manager))


@pytest.fixture(scope='function')
def other_waiter_headers(other_waiter):
    return auth_headers(get_auth_token(other_waiter))


@pytest.fixture(scope='function')
def failing_notifications(monkeypatch):
    """Every notification write raises as if the notifications table were unavailable."""
    def _unwritable(**kwargs):
        raise SQLAlchemyError("notifications table is unavailable")

    monkeypatch.setattr(notification_service, "Notification", _unwritable)
