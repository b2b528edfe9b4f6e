"""Slip deletion: hard (row + file) and soft (tombstone) modes."""

import logging
import os

import pytest

from conftest import reload_product
from storefront.errors import NotFoundError, StorageError, ValidationError
from storefront.models import PaymentSlip, PaymentSlipItem
from storefront.services import slip_service
from storefront.services.slip_status_service import set_slip_status


@pytest.fixture
def receipt(db_session, repo, storage, customer, products, cart, upload):
    return slip_service.submit_slip(repo, storage, user_id=customer.id, cart_id=cart.id, amount="350", upload=upload)


def test_hard_delete_removes_row_items_and_file(db_session, repo, storage, receipt):
    path = storage.resolve(receipt.slip_path)
    assert os.path.exists(path)

    result = slip_service.delete_slip(repo, storage, receipt.slip_id, "hard")

    assert result == {"id": receipt.slip_id, "mode": "hard"}
    assert db_session.get(PaymentSlip, receipt.slip_id) is None
    assert db_session.query(PaymentSlipItem).filter_by(slip_id=receipt.slip_id).count() == 0
    assert not os.path.exists(path)


def test_hard_delete_with_missing_file_still_deletes_row(db_session, repo, storage, receipt):
    os.remove(storage.resolve(receipt.slip_path))

    slip_service.delete_slip(repo, storage, receipt.slip_id, "hard")

    assert db_session.get(PaymentSlip, receipt.slip_id) is None


def test_file_removal_failure_still_deletes_row(db_session, repo, storage, receipt, monkeypatch, caplog):
    def broken_delete(reference):
        # The row must already be committed away when the file goes
        assert repo.find_slip(receipt.slip_id, include_deleted=True) is None
        raise StorageError("permission denied")

    monkeypatch.setattr(storage, "delete", broken_delete)

    with caplog.at_level(logging.ERROR, logger="storefront"):
        result = slip_service.delete_slip(repo, storage, receipt.slip_id, "hard")

    assert result == {"id": receipt.slip_id, "mode": "hard"}
    assert db_session.get(PaymentSlip, receipt.slip_id) is None
    assert os.path.exists(storage.resolve(receipt.slip_path))
    assert "could not be removed" in caplog.text


def test_soft_delete_hides_slip_and_keeps_file(db_session, repo, storage, receipt):
    slip_service.delete_slip(repo, storage, receipt.slip_id, "soft")

    assert slip_service.list_slips(repo) == []
    assert repo.find_slip(receipt.slip_id) is None
    assert repo.find_slip(receipt.slip_id, include_deleted=True).deleted_at is not None
    assert os.path.exists(storage.resolve(receipt.slip_path))


def test_soft_delete_twice_is_not_found(db_session, repo, storage, receipt):
    slip_service.delete_slip(repo, storage, receipt.slip_id, "soft")

    with pytest.raises(NotFoundError):
        slip_service.delete_slip(repo, storage, receipt.slip_id, "soft")


def test_hard_delete_purges_soft_deleted_slip(db_session, repo, storage, receipt):
    slip_service.delete_slip(repo, storage, receipt.slip_id, "soft")
    slip_service.delete_slip(repo, storage, receipt.slip_id, "hard")

    assert db_session.get(PaymentSlip, receipt.slip_id) is None


def test_default_mode_comes_from_config(app, db_session, repo, storage, receipt, monkeypatch):
    monkeypatch.setitem(app.config, "SLIP_DELETE_MODE", "soft")

    result = slip_service.delete_slip(repo, storage, receipt.slip_id)

    assert result["mode"] == "soft"
    assert repo.find_slip(receipt.slip_id, include_deleted=True) is not None


def test_unknown_mode(db_session, repo, storage, receipt):
    with pytest.raises(ValidationError):
        slip_service.delete_slip(repo, storage, receipt.slip_id, "shred")


def test_missing_slip(db_session, repo, storage):
    with pytest.raises(NotFoundError):
        slip_service.delete_slip(repo, storage, 404, "hard")


def test_deleting_approved_slip_does_not_restore_stock(db_session, repo, storage, products, receipt):
    rice = products[0]
    set_slip_status(repo, receipt.slip_id, "APPROVED")

    slip_service.delete_slip(repo, storage, receipt.slip_id, "hard")

    assert reload_product(db_session, rice.id).quantity == 8
