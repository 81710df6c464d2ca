"""
Pytest fixtures for CondoStock backend tests.

Provides an in-memory database, the Flask test client, data factories and
authenticated headers for an ADMIN and a unit OWNER.
"""

from datetime import date
from decimal import Decimal

import pytest
from condostock import create_app
from condostock.extensions import db
from condostock.models import Product, Resident, ResidentAccount
from condostock.models.residents import (
    ACCOUNT_ACTIVE,
    ROLE_ADMIN,
    ROLE_RESIDENT,
    STATUS_ACTIVE,
    UNIT_ROLE_MEMBER,
    UNIT_ROLE_OWNER,
)
from condostock.services.auth_service import hash_password
from condostock.services.inventory_service import add_batch


ADMIN_CPF = "00000000000"
ADMIN_PASSWORD = "admin123"
OWNER_CPF = "11122233344"
OWNER_PASSWORD = "1112"


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


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# FACTORIES
# =============================================================================


def make_product(session, *, name="Leite Integral", barcode="7891000100103", price="5.00", min_stock=5):
    product = Product(name=name, barcode=barcode, price=Decimal(price), min_stock=min_stock)
    session.add(product)
    session.commit()
    return product


def add_lot(session, product, *, code, expiry, quantity):
    """Receive a lot; expiry may be a date or an ISO string."""
    if isinstance(expiry, str):
        expiry = date.fromisoformat(expiry)
    stock = add_batch(product, code=code, expiry_date=expiry, quantity=quantity)
    session.commit()
    return stock


def make_resident(
    session,
    *,
    cpf,
    name="Morador",
    password=None,
    role=ROLE_RESIDENT,
    unit_role=UNIT_ROLE_OWNER,
    owner=None,
    status=STATUS_ACTIVE,
    apartment="302",
    block="A",
    balance="0.00",
    credit_limit="500.00",
    account_status=ACCOUNT_ACTIVE,
):
    """Resident plus account. Password defaults to the first 4 CPF digits."""
    resident = Resident(
        cpf=cpf,
        name=name,
        password_hash=hash_password(password or cpf[:4]),
        role=role,
        unit_role=unit_role,
        owner_id=owner.id if owner is not None else None,
        status=status,
        apartment=apartment,
        block=block,
    )
    session.add(resident)
    session.flush()
    session.add(ResidentAccount(
        resident_id=resident.id,
        balance=Decimal(balance),
        credit_limit=Decimal(credit_limit),
        status=account_status,
    ))
    session.commit()
    return resident


def get_auth_token(client, cpf: str, password: str) -> str:
    """Helper to get auth token for a resident."""
    response = client.post('/api/auth/login', json={
        'cpf': cpf,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


# =============================================================================
# COMMON ACTORS
# =============================================================================


@pytest.fixture(scope='function')
def admin(db_session):
    return make_resident(
        db_session,
        cpf=ADMIN_CPF,
        name="Síndico",
        password=ADMIN_PASSWORD,
        role=ROLE_ADMIN,
        apartment="100",
    )


@pytest.fixture(scope='function')
def owner(db_session):
    return make_resident(db_session, cpf=OWNER_CPF, name="Ana Souza", password=OWNER_PASSWORD)


@pytest.fixture(scope='function')
def member(db_session, owner):
    return make_resident(
        db_session,
        cpf="55566677788",
        name="Bruno Souza",
        unit_role=UNIT_ROLE_MEMBER,
        owner=owner,
    )


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, ADMIN_CPF, ADMIN_PASSWORD))


@pytest.fixture(scope='function')
def owner_headers(client, owner):
    return auth_headers(get_auth_token(client, OWNER_CPF, OWNER_PASSWORD))


@pytest.fixture(scope='function')
def milk(db_session):
    """Product with two lots: 3 units expiring first, 5 units expiring later."""
    product = make_product(db_session, price="4.50")
    add_lot(db_session, product, code="LOTE-A", expiry="2025-01-01", quantity=3)
    add_lot(db_session, product, code="LOTE-B", expiry="2025-06-01", quantity=5)
    return product
