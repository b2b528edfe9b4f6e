"""Snapshot capture: the frozen copy of a cart taken when a slip is submitted."""

from decimal import Decimal

from storefront.models import CartItem, PaymentSlipItem, Product
from storefront.services.snapshot_service import capture_snapshot, snapshot_lines


def _slip(repo, customer, cart_id, amount="350.00"):
    slip = repo.insert_slip(
        cart_id=cart_id,
        user_id=customer.id,
        amount=Decimal(amount),
        slip_path="/uploads/slips/test.png",
        shipping_address=None,
    )
    return slip


def test_snapshot_copies_cart_lines(db_session, repo, customer, products, cart):
    rice, fish_sauce, _ = products
    slip = _slip(repo, customer, cart.id)

    written = capture_snapshot(repo, slip.id, cart.id)
    repo.commit()

    assert written == 2
    items = {item.product_id: item for item in repo.list_snapshot_items(slip.id)}
    assert items[rice.id].qty == 2
    assert items[rice.id].title == "Rice 5kg"
    assert items[rice.id].price == Decimal("100.00")
    assert items[fish_sauce.id].qty == 3


def test_snapshot_groups_duplicate_products(db_session, repo, customer, products, cart):
    rice = products[0]
    db_session.add(CartItem(cart_id=cart.id, product_id=rice.id, count=4, price=Decimal("100.00")))
    db_session.commit()

    lines = {line.product_id: line.qty for line in snapshot_lines(repo, cart.id)}

    assert lines[rice.id] == 6


def test_snapshot_price_falls_back_to_product_price(db_session, repo, customer, products, cart):
    coconut = products[2]
    db_session.add(CartItem(cart_id=cart.id, product_id=coconut.id, count=1, price=None))
    db_session.commit()

    lines = {line.product_id: line for line in snapshot_lines(repo, cart.id)}

    assert lines[coconut.id].price == Decimal("25.00")


def test_snapshot_treats_missing_count_as_one(db_session, repo, customer, products, cart):
    coconut = products[2]
    db_session.add(CartItem(cart_id=cart.id, product_id=coconut.id, count=None, price=Decimal("25.00")))
    db_session.commit()

    lines = {line.product_id: line.qty for line in snapshot_lines(repo, cart.id)}

    assert lines[coconut.id] == 1


def test_snapshot_of_empty_cart_writes_nothing(db_session, repo, customer):
    slip = _slip(repo, customer, cart_id=999)

    assert capture_snapshot(repo, slip.id, 999) == 0
    repo.commit()

    assert repo.list_snapshot_items(slip.id) == []


def test_snapshot_failure_keeps_slip(db_session, repo, customer, products, cart, monkeypatch):
    slip = _slip(repo, customer, cart.id)
    slip_id = slip.id

    def broken_insert(slip_id, lines):
        raise RuntimeError("disk full")

    monkeypatch.setattr(repo, "insert_snapshot_items", broken_insert)

    assert capture_snapshot(repo, slip_id, cart.id) == 0
    repo.commit()

    assert repo.find_slip(slip_id) is not None
    assert db_session.query(PaymentSlipItem).count() == 0


def test_snapshot_survives_cart_and_product_changes(db_session, repo, customer, products, cart):
    rice = products[0]
    slip = _slip(repo, customer, cart.id)
    capture_snapshot(repo, slip.id, cart.id)
    repo.commit()

    db_session.delete(cart)
    db_session.get(Product, rice.id).title = "Rice 5kg (new label)"
    db_session.commit()

    items = {item.product_id: item for item in repo.list_snapshot_items(slip.id)}
    assert items[rice.id].title == "Rice 5kg"
    assert items[rice.id].qty == 2
