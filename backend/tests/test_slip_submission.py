"""Slip submission: validation, atomic recording and file compensation."""

import os
from decimal import Decimal

import pytest

from conftest import make_upload
from storefront.errors import DatabaseError, StorageError, ValidationError
from storefront.models import CartAddress, Order, PaymentSlip, PaymentSlipItem
from storefront.services import slip_service


def _stored_files(storage):
    return set(os.listdir(storage.root_dir)) if os.path.isdir(storage.root_dir) else set()


def test_submit_records_slip_snapshot_and_order(db_session, repo, storage, customer, products, cart, upload):
    receipt = slip_service.submit_slip(
        repo, storage, user_id=customer.id, cart_id=str(cart.id), amount="350", upload=upload,
    )

    slip = db_session.get(PaymentSlip, receipt.slip_id)
    assert slip.status == "PENDING"
    assert slip.stock_deducted is False
    assert slip.amount == Decimal("350.00")
    assert slip.cart_id == cart.id
    assert slip.slip_path == receipt.slip_path
    assert receipt.slip_path.startswith("/uploads/slips/")
    assert receipt.snapshot_items == 2
    assert db_session.query(PaymentSlipItem).filter_by(slip_id=slip.id).count() == 2
    assert db_session.get(Order, receipt.order_id).cart_id == cart.id
    assert os.path.exists(storage.resolve(receipt.slip_path))


def test_submit_uses_cart_address_when_none_given(db_session, repo, storage, customer, cart, upload):
    db_session.add(CartAddress(cart_id=cart.id, address="99 Sukhumvit Rd, Bangkok"))
    db_session.commit()

    receipt = slip_service.submit_slip(
        repo, storage, user_id=customer.id, cart_id=cart.id, amount="350.00", upload=upload,
    )

    assert receipt.shipping_address == "99 Sukhumvit Rd, Bangkok"


def test_explicit_address_wins(db_session, repo, storage, customer, cart, upload):
    db_session.add(CartAddress(cart_id=cart.id, address="old address"))
    db_session.commit()

    receipt = slip_service.submit_slip(
        repo, storage, user_id=customer.id, cart_id=cart.id, amount="350.00", upload=upload,
        shipping_address="  12 Silom Rd  ",
    )

    assert receipt.shipping_address == "12 Silom Rd"


def test_submission_for_empty_cart_still_records_slip(db_session, repo, storage, customer, upload):
    receipt = slip_service.submit_slip(
        repo, storage, user_id=customer.id, cart_id=5555, amount="10.00", upload=upload,
    )

    assert receipt.snapshot_items == 0
    assert db_session.get(PaymentSlip, receipt.slip_id) is not None


@pytest.mark.parametrize("cart_id, amount", [
    ("abc", "10"),
    ("0", "10"),
    ("12.5", "10"),
    ("1", "0"),
    ("1", "-5"),
    ("1", "NaN"),
    ("1", "ten"),
    (None, "10"),
    ("\u00b2", "10"),
    ("1", "9e999999"),
    ("1", "100000000"),
    ("1", "99999999.995"),
])
def test_invalid_input_is_rejected_before_storing(db_session, repo, storage, customer, upload, cart_id, amount):
    before = _stored_files(storage)

    with pytest.raises(ValidationError):
        slip_service.submit_slip(repo, storage, user_id=customer.id, cart_id=cart_id, amount=amount, upload=upload)

    assert _stored_files(storage) == before
    assert db_session.query(PaymentSlip).count() == 0


def test_missing_file_is_rejected(db_session, repo, storage, customer, cart):
    with pytest.raises(ValidationError, match="Slip file is required"):
        slip_service.submit_slip(repo, storage, user_id=customer.id, cart_id=cart.id, amount="350", upload=None)


def test_database_failure_removes_file_and_slip(db_session, repo, storage, customer, products, cart, upload, monkeypatch):
    before = _stored_files(storage)

    def broken_reconcile(*args, **kwargs):
        raise RuntimeError("orders table is gone")

    monkeypatch.setattr(slip_service, "reconcile_order", broken_reconcile)

    with pytest.raises(DatabaseError):
        slip_service.submit_slip(repo, storage, user_id=customer.id, cart_id=cart.id, amount="350", upload=upload)

    assert _stored_files(storage) == before
    assert db_session.query(PaymentSlip).count() == 0
    assert db_session.query(PaymentSlipItem).count() == 0


def test_storage_failure_records_nothing(db_session, repo, storage, customer, cart, upload, monkeypatch):
    def broken_save(upload):
        raise StorageError("read-only file system")

    monkeypatch.setattr(storage, "save", broken_save)

    with pytest.raises(StorageError):
        slip_service.submit_slip(repo, storage, user_id=customer.id, cart_id=cart.id, amount="350", upload=upload)

    assert db_session.query(PaymentSlip).count() == 0


def test_unsupported_file_type(db_session, repo, storage, customer, cart):
    upload = make_upload(b"MZ\x90\x00", filename="invoice.exe", content_type="application/octet-stream")

    with pytest.raises(ValidationError):
        slip_service.submit_slip(repo, storage, user_id=customer.id, cart_id=cart.id, amount="350", upload=upload)
