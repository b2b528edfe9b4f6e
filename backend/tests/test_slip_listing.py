"""Slip listings: resolved products, owner details and filters."""

from decimal import Decimal

from storefront.models import Cart, CartAddress, CartItem, Order, PaymentSlipItem
from storefront.services import slip_service
from storefront.services.slip_status_service import set_slip_status


def _submit(repo, storage, user, cart_id, amount, upload):
    return slip_service.submit_slip(repo, storage, user_id=user.id, cart_id=cart_id, amount=amount, upload=upload)


def test_listing_resolves_products_from_cart(db_session, repo, storage, customer, products, cart, upload):
    receipt = _submit(repo, storage, customer, cart.id, "350", upload)

    [view] = slip_service.list_slips(repo)

    assert view["id"] == receipt.slip_id
    assert view["user_name"] == "Somchai"
    assert view["user_email"] == "somchai@example.com"
    assert view["products_source"] == "cart"
    assert {(p["title"], p["qty"]) for p in view["products"]} == {("Rice 5kg", 2), ("Fish Sauce", 3)}
    assert view["slip_url"] == receipt.slip_path


def test_listing_falls_back_to_snapshot(db_session, repo, storage, customer, products, cart, upload):
    _submit(repo, storage, customer, cart.id, "350", upload)
    db_session.delete(db_session.get(Cart, cart.id))
    db_session.query(Order).delete()
    db_session.commit()

    [view] = slip_service.list_slips(repo)

    assert view["products_source"] == "snapshot"
    assert {(p["title"], p["price"], p["qty"]) for p in view["products"]} == {
        ("Rice 5kg", 100.0, 2),
        ("Fish Sauce", 50.0, 3),
    }


def test_snapshot_row_keeps_title_after_product_is_gone(db_session, repo, storage, customer, products, cart, upload):
    receipt = _submit(repo, storage, customer, cart.id, "350", upload)
    rice = products[0]
    db_session.delete(db_session.get(Cart, cart.id))
    db_session.query(Order).delete()
    db_session.query(PaymentSlipItem).filter_by(slip_id=receipt.slip_id, product_id=rice.id).update({"product_id": None})
    db_session.commit()

    [view] = slip_service.list_slips(repo)

    assert view["products_source"] == "snapshot"
    assert {(p["product_id"], p["title"], p["qty"]) for p in view["products"]} == {
        (None, "Rice 5kg", 2),
        (products[1].id, "Fish Sauce", 3),
    }


def test_cart_lines_without_product_are_not_snapshotted(db_session, repo, storage, customer, products, cart, upload):
    db_session.add(CartItem(cart_id=cart.id, product_id=None, count=4, price=Decimal("9.00")))
    db_session.commit()

    receipt = _submit(repo, storage, customer, cart.id, "350", upload)

    assert receipt.snapshot_items == 2
    assert db_session.query(PaymentSlipItem).filter_by(slip_id=receipt.slip_id, product_id=None).count() == 0


def test_listing_address_falls_back_to_cart_address(db_session, repo, storage, customer, products, cart, upload):
    _submit(repo, storage, customer, cart.id, "350", upload)
    db_session.add(CartAddress(cart_id=cart.id, address="1 Rama IV Rd"))
    db_session.commit()

    [view] = slip_service.list_slips(repo)

    assert view["shipping_address"] == "1 Rama IV Rd"


def test_status_filter_and_ordering(db_session, repo, storage, customer, products, cart):
    from conftest import make_upload

    first = _submit(repo, storage, customer, cart.id, "350", make_upload())
    second = _submit(repo, storage, customer, cart.id, "350", make_upload())
    set_slip_status(repo, first.slip_id, "APPROVED")

    assert [s["id"] for s in slip_service.list_slips(repo)] == [second.slip_id, first.slip_id]
    assert [s["id"] for s in slip_service.list_slips(repo, status="APPROVED")] == [first.slip_id]
    assert [s["id"] for s in slip_service.list_slips(repo, status="PENDING")] == [second.slip_id]


def test_user_history_only_shows_own_slips(db_session, repo, storage, customer, other_customer, products, cart):
    from conftest import make_upload

    mine = _submit(repo, storage, customer, cart.id, "350", make_upload())
    _submit(repo, storage, other_customer, cart.id, "120", make_upload())

    history = slip_service.list_user_slips(repo, customer.id)

    assert [s["id"] for s in history] == [mine.slip_id]


def test_url_builder_is_applied(db_session, repo, storage, customer, products, cart, upload):
    receipt = _submit(repo, storage, customer, cart.id, "350", upload)

    [view] = slip_service.list_slips(repo, url_builder=lambda path: "https://shop.example" + path)

    assert view["slip_url"] == "https://shop.example" + receipt.slip_path


def test_audit_reports_unrecoverable_approved_slips(db_session, repo, customer):
    slip = repo.insert_slip(
        cart_id=31337,
        user_id=customer.id,
        amount=Decimal("42.00"),
        slip_path="/uploads/slips/lost.png",
        shipping_address=None,
    )
    repo.commit()
    set_slip_status(repo, slip.id, "APPROVED")

    report = slip_service.find_unrecoverable_slips(repo)

    assert [row["id"] for row in report] == [slip.id]


def test_audit_ignores_recoverable_slips(db_session, repo, storage, customer, products, cart, upload):
    receipt = _submit(repo, storage, customer, cart.id, "350", upload)
    set_slip_status(repo, receipt.slip_id, "APPROVED")

    assert slip_service.find_unrecoverable_slips(repo) == []
