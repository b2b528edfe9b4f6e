"""
Pytest fixtures for storefront backend tests.

Provides test database setup, demo users/products/cart, slip storage and
authenticated test client helpers.
"""

import io
from decimal import Decimal

import pytest
from werkzeug.datastructures import FileStorage

from storefront import create_app
from storefront.extensions import db
from storefront.models import Cart, CartItem, Product, User
from storefront.repositories import SqlAlchemySlipRepository
from storefront.services.auth_service import issue_token
from storefront.services.storage_service import LocalSlipStorage

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture(scope='session')
def upload_root(tmp_path_factory):
    return str(tmp_path_factory.mktemp("slips"))


@pytest.fixture(scope='session')
def app(upload_root):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SLIP_UPLOAD_DIR': upload_root,
        'DB_RETRY_BACKOFF': 0,
        'SECRET_KEY': 'test-secret',
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
def repo(db_session):
    return SqlAlchemySlipRepository(db_session)


@pytest.fixture(scope='function')
def storage(app):
    return LocalSlipStorage(app.config['SLIP_UPLOAD_DIR'], max_bytes=app.config['SLIP_MAX_BYTES'])


@pytest.fixture(scope='function')
def customer(db_session):
    user = User(name="Somchai", email="somchai@example.com", role="user")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def other_customer(db_session):
    user = User(name="Malee", email="malee@example.com", role="user")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session):
    user = User(name="Admin", email="admin@example.com", role="admin")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def products(db_session):
    """Three products: plenty in stock, a little in stock, sold out."""
    items = [
        Product(title="Rice 5kg", price=Decimal("100.00"), quantity=10, sold=0),
        Product(title="Fish Sauce", price=Decimal("50.00"), quantity=1, sold=4),
        Product(title="Coconut Milk", price=Decimal("25.00"), quantity=0, sold=7),
    ]
    db_session.add_all(items)
    db_session.commit()
    return items


@pytest.fixture(scope='function')
def cart(db_session, customer, products):
    """Customer cart: 2 x Rice, 3 x Fish Sauce; total 350.00."""
    rice, fish_sauce, _ = products
    cart = Cart(ordered_by_id=customer.id, cart_total=Decimal("350.00"))
    db_session.add(cart)
    db_session.flush()
    db_session.add_all([
        CartItem(cart_id=cart.id, product_id=rice.id, count=2, price=Decimal("100.00")),
        CartItem(cart_id=cart.id, product_id=fish_sauce.id, count=3, price=Decimal("50.00")),
    ])
    db_session.commit()
    return cart


def make_upload(data: bytes = PNG_BYTES, filename: str = "slip.png", content_type: str = "image/png") -> FileStorage:
    return FileStorage(stream=io.BytesIO(data), filename=filename, content_type=content_type)


@pytest.fixture
def upload():
    return make_upload()


@pytest.fixture
def auth_headers(app):
    """Build an Authorization header for a user row."""
    def _headers(user):
        with app.app_context():
            token = issue_token(user.id, user.role)
        return {"Authorization": f"Bearer {token}"}
    return _headers


def reload_product(session, product_id):
    """Fresh product row; stock is changed by Core UPDATEs the identity map does not see."""
    session.expire_all()
    return session.get(Product, product_id)
