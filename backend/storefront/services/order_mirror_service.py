# Overview: Idempotent projection of a cart into a durable order for a submitted slip.

"""
Order Mirror

The order table has no slip foreign key in older rows, so an order is
found by its owner and a total within 0.005 of the slip amount (most recent
first, then highest id). The mirror then REPLACES the order's line items
with the cart's current contents, so running it again for the same
(user, cart, amount) yields the same order id and the same line items.

KNOWN APPROXIMATION:
Two orders by one user with the same total are indistinguishable by that
match; the most recent wins. New orders record cart_id so later lookups can
prefer the explicit link.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app, has_app_context

from ..repositories import LineItem, SlipRepository

DEFAULT_CURRENCY = "THB"


def _currency() -> str:
    if has_app_context():
        return current_app.config.get("ORDER_CURRENCY", DEFAULT_CURRENCY)
    return DEFAULT_CURRENCY


def order_lines_from_cart(repo: SlipRepository, cart_id: int) -> list[LineItem]:
    """Cart lines grouped by product; null products and non-positive quantities are dropped."""
    return [
        line
        for line in repo.cart_lines(cart_id)
        if line.product_id and line.qty > 0
    ]


def reconcile_order(repo: SlipRepository, user_id: int, cart_id: int, amount: Decimal) -> int:
    """
    Find-or-create the order for (user_id, amount) and re-project the cart into it.

    Does not commit; runs inside the caller's transaction.

    Returns:
        The resolved or newly created order id
    """
    order = repo.upsert_order(user_id=user_id, cart_id=cart_id, amount=amount, currency=_currency())
    repo.replace_order_items(order.id, order_lines_from_cart(repo, cart_id))
    return order.id
