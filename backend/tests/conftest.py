"""
Pytest fixtures for Pawpal backend tests.

Provides test database setup, role-specific users, catalog/boarding
fixtures, and the test client.
"""

from datetime import date, timedelta

import pytest

from pawpal import create_app
from pawpal.extensions import db
from pawpal.models import Cage, Category, Pet, Product, Service, User
from pawpal.models.auth import ROLE_ADMIN, ROLE_CLIENT, ROLE_EMPLOYEE
from pawpal.services import session_service
from pawpal.services.auth_service import hash_password


TEST_PASSWORD = "Password123"

# bcrypt at cost 12 is slow; hash once for every fixture user
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    upload_dir = tmp_path_factory.mktemp("uploads")
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'UPLOAD_FOLDER': str(upload_dir),
        'SMTP_HOST': None,
        'EMAIL_ASYNC': False,
        'APP_URL': 'http://localhost:3000',
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


def make_user(db_session, email: str, role: str = ROLE_CLIENT, **kwargs) -> User:
    user = User(
        first_name=kwargs.pop("first_name", "Test"),
        last_name=kwargs.pop("last_name", role.title()),
        email=email,
        password_hash=TEST_PASSWORD_HASH,
        role=role,
        is_active=kwargs.pop("is_active", True),
        **kwargs,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    """Clinic administrator."""
    return make_user(db_session, "admin@pawpal.test", ROLE_ADMIN)


@pytest.fixture(scope='function')
def employee_user(db_session):
    """Front-desk employee (staff, not admin)."""
    return make_user(db_session, "employee@pawpal.test", ROLE_EMPLOYEE)


@pytest.fixture(scope='function')
def client_user(db_session):
    """Pet owner."""
    return make_user(
        db_session,
        "owner@pawpal.test",
        ROLE_CLIENT,
        first_name="Ana",
        last_name="Cruz",
        phone="09171234567",
        address="12 Mabini St",
    )


@pytest.fixture(scope='function')
def other_client(db_session):
    """A second pet owner, for ownership checks."""
    return make_user(db_session, "other@pawpal.test", ROLE_CLIENT, first_name="Ben", last_name="Reyes")


def session_headers(user: User) -> dict:
    """Issue a session directly, skipping the bcrypt check of /login."""
    _, token = session_service.create_session(user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return session_headers(admin_user)


@pytest.fixture(scope='function')
def employee_headers(employee_user):
    return session_headers(employee_user)


@pytest.fixture(scope='function')
def client_headers(client_user):
    return session_headers(client_user)


@pytest.fixture(scope='function')
def other_headers(other_client):
    return session_headers(other_client)


@pytest.fixture(scope='function')
def pet(db_session, client_user):
    pet = Pet(
        user_id=client_user.id,
        name="Mochi",
        species="dog",
        breed="Shih Tzu",
        birth_date=date(2021, 5, 1),
        gender="female",
    )
    db_session.add(pet)
    db_session.commit()
    return pet


@pytest.fixture(scope='function')
def boarding_service(db_session):
    """A service in a boarding category (cage + stay dates required)."""
    category = Category(name="Pet Boarding", color="#8b5cf6", icon="home")
    db_session.add(category)
    db_session.flush()
    service = Service(category_id=category.id, name="Overnight Boarding", price=200, duration_minutes=60)
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture(scope='function')
def grooming_service(db_session):
    category = Category(name="Grooming", color="#10b981", icon="scissors")
    db_session.add(category)
    db_session.flush()
    service = Service(category_id=category.id, name="Full Groom", price=500, duration_minutes=90)
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture(scope='function')
def cage(db_session):
    cage = Cage(cage_number="7", cage_type="medium", capacity=1, daily_rate=350, status="available")
    db_session.add(cage)
    db_session.commit()
    return cage


@pytest.fixture(scope='function')
def product(db_session):
    product = Product(
        name="Premium Kibble 2kg",
        category="food",
        price=450,
        stock_quantity=10,
        low_stock_threshold=3,
        sku="KIB-002",
        status="active",
    )
    db_session.add(product)
    db_session.commit()
    return product


def future_date(days: int = 7) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


def get_auth_token(client, email: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
