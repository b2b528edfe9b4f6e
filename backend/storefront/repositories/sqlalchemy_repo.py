# Overview: SQLAlchemy adapter for SlipRepository (Postgres, MySQL and SQLite).

"""
SQLAlchemy-backed slip repository.

One statement set serves every dialect: SQLAlchemy compiles the SQL and
reports affected rows through rowcount, so the reconciliation core never
branches on the database in use.

CONCURRENCY:
- The deduction gate and the stock decrement are single conditional UPDATEs;
  the database's row lock during that statement is the only ordering the
  core relies on.
- savepoint() maps to SAVEPOINT; the core wraps each product decrement in
  one so a failing row rolls back alone and the transaction stays usable.
"""

from __future__ import annotations

import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import case, false, func, update
from sqlalchemy.orm import Session

from ..models import (
    CartAddress,
    CartItem,
    Order,
    OrderItem,
    PaymentSlip,
    PaymentSlipItem,
    Product,
)
from ..time_utils import epoch_millis, utcnow
from .base import LineItem, SlipRepository

# Orders are matched to slips on (owner, total) within this tolerance
AMOUNT_EPSILON = Decimal("0.005")

_CENT = Decimal("0.01")


def _money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


class SqlAlchemySlipRepository(SlipRepository):
    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # Transaction
    # ------------------------------------------------------------------
    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    def savepoint(self):
        return self.session.begin_nested()

    # ------------------------------------------------------------------
    # Slips
    # ------------------------------------------------------------------
    def find_slip(self, slip_id: int, include_deleted: bool = False) -> Optional[PaymentSlip]:
        query = self.session.query(PaymentSlip).filter(PaymentSlip.id == slip_id)
        if not include_deleted:
            query = query.filter(PaymentSlip.deleted_at.is_(None))
        # Concurrent requests may have changed the row since it was last loaded
        return query.populate_existing().first()

    def insert_slip(
        self,
        *,
        cart_id: int,
        user_id: int,
        amount: Decimal,
        slip_path: str,
        shipping_address: Optional[str],
    ) -> PaymentSlip:
        now = utcnow()
        slip = PaymentSlip(
            cart_id=cart_id,
            user_id=user_id,
            amount=amount,
            slip_path=slip_path,
            status="PENDING",
            stock_deducted=False,
            shipping_address=shipping_address,
            created_at=now,
            updated_at=now,
        )
        self.session.add(slip)
        self.session.flush()  # Get slip ID
        return slip

    def atomic_claim_deduction_flag(self, slip_id: int) -> bool:
        slips = PaymentSlip.__table__
        result = self.session.execute(
            update(slips)
            .where(
                slips.c.id == slip_id,
                # Rows predating the column may hold NULL
                func.coalesce(slips.c.stock_deducted, false()) == false(),
            )
            .values(stock_deducted=True, updated_at=utcnow())
        )
        return (result.rowcount or 0) > 0

    def update_slip_status(self, slip_id: int, status: str) -> None:
        slips = PaymentSlip.__table__
        self.session.execute(
            update(slips)
            .where(slips.c.id == slip_id)
            .values(status=status, updated_at=utcnow())
        )

    def delete_slip(self, slip_id: int) -> bool:
        # Explicit delete: SQLite only cascades with PRAGMA foreign_keys=ON
        self.session.query(PaymentSlipItem).filter(
            PaymentSlipItem.slip_id == slip_id
        ).delete(synchronize_session=False)
        deleted = self.session.query(PaymentSlip).filter(
            PaymentSlip.id == slip_id
        ).delete(synchronize_session=False)
        return deleted > 0

    def tombstone_slip(self, slip_id: int) -> bool:
        slips = PaymentSlip.__table__
        now = utcnow()
        result = self.session.execute(
            update(slips)
            .where(slips.c.id == slip_id, slips.c.deleted_at.is_(None))
            .values(deleted_at=now, updated_at=now)
        )
        return (result.rowcount or 0) > 0

    def list_slips(self, status: Optional[str] = None, user_id: Optional[int] = None) -> list[PaymentSlip]:
        query = self.session.query(PaymentSlip).filter(PaymentSlip.deleted_at.is_(None))
        if status:
            query = query.filter(PaymentSlip.status == status)
        if user_id is not None:
            query = query.filter(PaymentSlip.user_id == user_id)
        return query.order_by(PaymentSlip.created_at.desc(), PaymentSlip.id.desc()).all()

    # ------------------------------------------------------------------
    # Carts
    # ------------------------------------------------------------------
    def cart_lines(self, cart_id: int) -> list[LineItem]:
        rows = (
            self.session.query(
                CartItem.product_id,
                func.max(Product.title),
                func.coalesce(func.min(CartItem.price), func.min(Product.price), 0),
                func.sum(func.coalesce(CartItem.count, 1)),
            )
            .outerjoin(Product, Product.id == CartItem.product_id)
            # Lines whose product was deleted have nothing to snapshot or deduct
            .filter(CartItem.cart_id == cart_id, CartItem.product_id.isnot(None))
            .group_by(CartItem.product_id)
            .order_by(CartItem.product_id)
            .all()
        )
        return [
            LineItem(product_id=int(pid), title=title or "", price=_money(price), qty=int(qty or 0))
            for pid, title, price, qty in rows
        ]

    def cart_address(self, cart_id: int) -> Optional[str]:
        row = self.session.query(CartAddress.address).filter(CartAddress.cart_id == cart_id).first()
        return row[0] if row else None

    def save_cart_address(self, cart_id: int, address: str) -> None:
        row = self.session.query(CartAddress).filter(CartAddress.cart_id == cart_id).first()
        now = utcnow()
        if row:
            row.address = address
            row.updated_at = now
        else:
            self.session.add(CartAddress(cart_id=cart_id, address=address, created_at=now, updated_at=now))
        self.session.flush()

    def stamp_pending_slip_address(self, user_id: int, cart_id: int, address: str) -> int:
        slips = PaymentSlip.__table__
        result = self.session.execute(
            update(slips)
            .where(
                slips.c.cart_id == cart_id,
                slips.c.user_id == user_id,
                slips.c.status == "PENDING",
                slips.c.deleted_at.is_(None),
            )
            .values(shipping_address=address, updated_at=utcnow())
        )
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------
    def insert_snapshot_items(self, slip_id: int, lines: list[LineItem]) -> int:
        if not lines:
            return 0
        now = utcnow()
        self.session.add_all([
            PaymentSlipItem(
                slip_id=slip_id,
                product_id=line.product_id,
                title=line.title or "",
                price=line.price,
                qty=line.qty,
                created_at=now,
            )
            for line in lines
        ])
        self.session.flush()
        return len(lines)

    def list_snapshot_items(self, slip_id: int) -> list[PaymentSlipItem]:
        return (
            self.session.query(PaymentSlipItem)
            .filter(PaymentSlipItem.slip_id == slip_id)
            .order_by(PaymentSlipItem.id)
            .all()
        )

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def find_order_for_cart(self, cart_id: int) -> Optional[Order]:
        if cart_id is None:
            return None
        return (
            self.session.query(Order)
            .filter(Order.cart_id == cart_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .first()
        )

    def find_order_by_amount(self, user_id: int, amount: Decimal) -> Optional[Order]:
        if user_id is None or amount is None:
            return None
        return (
            self.session.query(Order)
            .filter(
                Order.ordered_by_id == user_id,
                func.abs(Order.cart_total - _money(amount)) < AMOUNT_EPSILON,
            )
            .order_by(Order.created_at.desc(), Order.id.desc())
            .first()
        )

    def upsert_order(self, *, user_id: int, cart_id: int, amount: Decimal, currency: str) -> Order:
        order = self.find_order_by_amount(user_id, amount)
        if order is None:
            now = utcnow()
            order = Order(
                ordered_by_id=user_id,
                cart_id=cart_id,
                cart_total=_money(amount),
                status="processing",
                provenance_id=f"manual-{epoch_millis()}-{uuid.uuid4().hex[:8]}",
                currency=currency,
                created_at=now,
                updated_at=now,
            )
            self.session.add(order)
        elif order.cart_id is None:
            order.cart_id = cart_id
        self.session.flush()
        return order

    def replace_order_items(self, order_id: int, lines: list[LineItem]) -> int:
        self.session.query(OrderItem).filter(OrderItem.order_id == order_id).delete(synchronize_session=False)
        self.session.add_all([
            OrderItem(order_id=order_id, product_id=line.product_id, count=line.qty, price=line.price)
            for line in lines
        ])
        self.session.flush()
        return len(lines)

    def order_lines(self, order_id: int) -> list[LineItem]:
        rows = (
            self.session.query(
                OrderItem.product_id,
                func.max(Product.title),
                func.coalesce(func.min(OrderItem.price), func.min(Product.price), 0),
                func.sum(OrderItem.count),
            )
            .outerjoin(Product, Product.id == OrderItem.product_id)
            .filter(OrderItem.order_id == order_id, OrderItem.product_id.isnot(None))
            .group_by(OrderItem.product_id)
            .order_by(OrderItem.product_id)
            .all()
        )
        return [
            LineItem(product_id=int(pid), title=title or "", price=_money(price), qty=int(qty or 0))
            for pid, title, price, qty in rows
        ]

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------
    def deduct_product_stock(self, product_id: int, qty: int) -> bool:
        products = Product.__table__
        # sold is assigned first: MySQL evaluates SET clauses left to right,
        # so it must still see the pre-update quantity.
        stmt = (
            update(products)
            .where(products.c.id == product_id)
            .ordered_values(
                (
                    products.c.sold,
                    products.c.sold + case((products.c.quantity < qty, products.c.quantity), else_=qty),
                ),
                (
                    products.c.quantity,
                    case((products.c.quantity > qty, products.c.quantity - qty), else_=0),
                ),
            )
        )
        result = self.session.execute(stmt)
        return (result.rowcount or 0) > 0
