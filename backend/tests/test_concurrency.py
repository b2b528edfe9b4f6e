"""Concurrent approvals against a file-backed database deduct stock exactly once."""

import threading
from decimal import Decimal

import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.models import Cart, CartItem, PaymentSlip, Product, User
from storefront.repositories import SqlAlchemySlipRepository
from storefront.services.slip_status_service import set_slip_status
from storefront.services.snapshot_service import capture_snapshot


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.sqlite3'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30}},
        'SLIP_UPLOAD_DIR': str(tmp_path / 'slips'),
        'DB_RETRY_ATTEMPTS': 5,
        'DB_RETRY_BACKOFF': 0.01,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def _seed(app):
    with app.app_context():
        user = User(name="Racer", email="racer@example.com", role="user")
        product = Product(title="Limited Sneakers", price=Decimal("2500.00"), quantity=5, sold=0)
        db.session.add_all([user, product])
        db.session.flush()
        cart = Cart(ordered_by_id=user.id, cart_total=Decimal("5000.00"))
        db.session.add(cart)
        db.session.flush()
        db.session.add(CartItem(cart_id=cart.id, product_id=product.id, count=2, price=Decimal("2500.00")))

        repo = SqlAlchemySlipRepository(db.session)
        slip = repo.insert_slip(
            cart_id=cart.id,
            user_id=user.id,
            amount=Decimal("5000.00"),
            slip_path="/uploads/slips/race.png",
            shipping_address=None,
        )
        capture_snapshot(repo, slip.id, cart.id)
        repo.commit()
        return slip.id, product.id


@pytest.mark.parametrize("approvers", [2, 6])
def test_concurrent_approvals_deduct_once(file_app, approvers):
    slip_id, product_id = _seed(file_app)
    barrier = threading.Barrier(approvers)
    changes, errors = [], []

    def approve():
        with file_app.app_context():
            barrier.wait()
            try:
                changes.append(set_slip_status(SqlAlchemySlipRepository(db.session), slip_id, "APPROVED"))
            except Exception as exc:  # surfaced through the assertion below
                errors.append(exc)

    threads = [threading.Thread(target=approve) for _ in range(approvers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert errors == []
    claimed = [c for c in changes if c.deduction is not None and c.deduction.claimed]
    assert len(claimed) == 1

    with file_app.app_context():
        product = db.session.get(Product, product_id)
        assert (product.quantity, product.sold) == (3, 2)
        assert db.session.get(PaymentSlip, slip_id).stock_deducted is True
