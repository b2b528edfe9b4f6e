# Overview: Storage-agnostic interface the slip reconciliation core is written against.

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import ContextManager, Optional

from ..models import Order, PaymentSlip, PaymentSlipItem


@dataclass(frozen=True)
class LineItem:
    """One product's aggregated line, from a cart, an order or a snapshot."""
    product_id: Optional[int]
    title: str
    price: Decimal
    qty: int

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "title": self.title or "-",
            "price": float(self.price),
            "qty": self.qty,
        }


class SlipRepository(ABC):
    """
    Data access for payment slips, their snapshots, mirrored orders and
    product stock.

    Implementations own the SQL; callers own the transaction boundary and
    end it with commit() or rollback().
    """

    # -- transaction -----------------------------------------------------

    @abstractmethod
    def commit(self) -> None: ...

    @abstractmethod
    def rollback(self) -> None: ...

    @abstractmethod
    def savepoint(self) -> ContextManager:
        """Nested transaction; an exception inside rolls back only this block."""

    # -- slips -----------------------------------------------------------

    @abstractmethod
    def find_slip(self, slip_id: int, include_deleted: bool = False) -> Optional[PaymentSlip]: ...

    @abstractmethod
    def insert_slip(
        self,
        *,
        cart_id: int,
        user_id: int,
        amount: Decimal,
        slip_path: str,
        shipping_address: Optional[str],
    ) -> PaymentSlip: ...

    @abstractmethod
    def atomic_claim_deduction_flag(self, slip_id: int) -> bool:
        """Flip stock_deducted false -> true. True only for the caller that flipped it."""

    @abstractmethod
    def update_slip_status(self, slip_id: int, status: str) -> None: ...

    @abstractmethod
    def delete_slip(self, slip_id: int) -> bool: ...

    @abstractmethod
    def tombstone_slip(self, slip_id: int) -> bool: ...

    @abstractmethod
    def list_slips(self, status: Optional[str] = None, user_id: Optional[int] = None) -> list[PaymentSlip]: ...

    # -- carts -----------------------------------------------------------

    @abstractmethod
    def cart_lines(self, cart_id: int) -> list[LineItem]:
        """Live cart lines grouped by product; null products are skipped."""

    @abstractmethod
    def cart_address(self, cart_id: int) -> Optional[str]: ...

    @abstractmethod
    def save_cart_address(self, cart_id: int, address: str) -> None: ...

    @abstractmethod
    def stamp_pending_slip_address(self, user_id: int, cart_id: int, address: str) -> int: ...

    # -- snapshot --------------------------------------------------------

    @abstractmethod
    def insert_snapshot_items(self, slip_id: int, lines: list[LineItem]) -> int: ...

    @abstractmethod
    def list_snapshot_items(self, slip_id: int) -> list[PaymentSlipItem]: ...

    # -- orders ----------------------------------------------------------

    @abstractmethod
    def find_order_for_cart(self, cart_id: int) -> Optional[Order]: ...

    @abstractmethod
    def find_order_by_amount(self, user_id: int, amount: Decimal) -> Optional[Order]:
        """Most recent order of user_id whose total is within 0.005 of amount."""

    @abstractmethod
    def upsert_order(self, *, user_id: int, cart_id: int, amount: Decimal, currency: str) -> Order: ...

    @abstractmethod
    def replace_order_items(self, order_id: int, lines: list[LineItem]) -> int: ...

    @abstractmethod
    def order_lines(self, order_id: int) -> list[LineItem]: ...

    # -- stock -----------------------------------------------------------

    @abstractmethod
    def deduct_product_stock(self, product_id: int, qty: int) -> bool:
        """
        quantity = max(quantity - qty, 0); sold += min(qty, quantity_before),
        as one atomic statement. False when the product row does not exist.
        """
