# Overview: Exactly-once stock deduction for approved payment slips.

"""
Stock Deduction Engine

WHY: Approving a payment slip is the moment goods are considered sold. Stock
must come off exactly once per slip, even when two admins approve at the
same time, the cart is gone, or the order was never linked to the slip.

PROTOCOL:
1. Gate: one conditional UPDATE flips payment_slips.stock_deducted from
   false to true. Only the caller whose UPDATE hit a row continues; everyone
   else returns without touching stock.
2. Resolve what was bought, first non-empty source wins:
   a. the live cart (grouped by product)
   b. the mirrored order, by cart link, else by (owner, amount within 0.005)
   c. the slip's frozen snapshot
3. Per product: quantity = max(quantity - qty, 0) and
   sold += min(qty, quantity_before), as one UPDATE statement.

FAILURE POLICY:
- The gate stays claimed even if individual products fail: at most one
  deduction attempt per slip beats all-or-nothing across its lines.
- Each product update runs in its own SAVEPOINT; a failure is logged and the
  remaining products are still deducted.
- A claimed slip with nothing to deduct is logged at ERROR level: it needs
  manual stock correction (see slip_service.find_unrecoverable_slips).

Nothing here commits; the status change that triggered the deduction owns
the transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..errors import NotFoundError
from ..models import PaymentSlip
from ..repositories import LineItem, SlipRepository

logger = logging.getLogger(__name__)

SOURCE_CART = "cart"
SOURCE_ORDER = "order"
SOURCE_SNAPSHOT = "snapshot"
SOURCE_NONE = "none"


@dataclass
class DeductionResult:
    slip_id: int
    claimed: bool
    source: Optional[str] = None
    quantities: dict[int, int] = field(default_factory=dict)
    applied: list[int] = field(default_factory=list)
    missing: list[int] = field(default_factory=list)  # product rows that no longer exist
    failed: list[int] = field(default_factory=list)

    @property
    def unrecoverable(self) -> bool:
        return self.claimed and not self.quantities

    def to_dict(self) -> dict:
        return {
            "slip_id": self.slip_id,
            "claimed": self.claimed,
            "source": self.source,
            "quantities": {str(pid): qty for pid, qty in self.quantities.items()},
            "applied": self.applied,
            "missing": self.missing,
            "failed": self.failed,
            "unrecoverable": self.unrecoverable,
        }


# =============================================================================
# LINE ITEM RESOLUTION
# =============================================================================

def group_quantities(lines: Iterable[LineItem]) -> dict[int, int]:
    """Sum quantities per product, dropping lines without a product or with qty <= 0."""
    totals: dict[int, int] = {}
    for line in lines:
        if not line.product_id or line.qty <= 0:
            continue
        totals[line.product_id] = totals.get(line.product_id, 0) + line.qty
    return totals


def snapshot_line_items(repo: SlipRepository, slip_id: int) -> list[LineItem]:
    return [
        LineItem(product_id=item.product_id, title=item.title, price=item.price, qty=item.qty or 0)
        for item in repo.list_snapshot_items(slip_id)
    ]


def resolve_order_id(repo: SlipRepository, slip: PaymentSlip) -> Optional[int]:
    order = None
    if slip.cart_id is not None:
        order = repo.find_order_for_cart(slip.cart_id)
    if order is None:
        order = repo.find_order_by_amount(slip.user_id, slip.amount)
    return order.id if order else None


def resolve_line_items(repo: SlipRepository, slip: PaymentSlip) -> tuple[str, list[LineItem]]:
    """
    Find the line items a slip paid for.

    Used both for deduction and for display, so the two never disagree on
    which source a slip's items came from.

    Returns:
        (source, lines) where source is cart / order / snapshot / none
    """
    if slip.cart_id is not None:
        lines = repo.cart_lines(slip.cart_id)
        if group_quantities(lines):
            return SOURCE_CART, lines

    order_id = resolve_order_id(repo, slip)
    if order_id is not None:
        lines = repo.order_lines(order_id)
        if group_quantities(lines):
            return SOURCE_ORDER, lines

    lines = snapshot_line_items(repo, slip.id)
    if lines:
        return SOURCE_SNAPSHOT, lines

    return SOURCE_NONE, []


# =============================================================================
# DEDUCTION
# =============================================================================

def deduct_on_approval(repo: SlipRepository, slip: Optional[PaymentSlip]) -> DeductionResult:
    """
    Deduct stock for a slip entering APPROVED, at most once over its lifetime.

    Raises:
        NotFoundError: If the slip does not exist (the gate is not touched)
    """
    if slip is None:
        raise NotFoundError("Slip not found")

    if not repo.atomic_claim_deduction_flag(slip.id):
        logger.info("Stock for slip %s already deducted; skipping", slip.id)
        return DeductionResult(slip_id=slip.id, claimed=False)

    source, lines = resolve_line_items(repo, slip)
    result = DeductionResult(slip_id=slip.id, claimed=True, source=source, quantities=group_quantities(lines))

    if not result.quantities:
        logger.error(
            "Slip %s approved with no recoverable line items (cart %s, user %s, amount %s); "
            "stock was NOT deducted and needs manual correction",
            slip.id, slip.cart_id, slip.user_id, slip.amount,
        )
        return result

    # Fixed product order keeps concurrent deductions from deadlocking
    for product_id in sorted(result.quantities):
        qty = result.quantities[product_id]
        try:
            with repo.savepoint():
                found = repo.deduct_product_stock(product_id, qty)
        except Exception:
            logger.exception("Stock deduction failed for product %s (slip %s, qty %s)", product_id, slip.id, qty)
            result.failed.append(product_id)
            continue

        if found:
            result.applied.append(product_id)
        else:
            logger.warning("Product %s no longer exists; slip %s could not deduct %s units", product_id, slip.id, qty)
            result.missing.append(product_id)

    logger.info(
        "Deducted stock for slip %s from %s: %d product(s) applied, %d missing, %d failed",
        slip.id, source, len(result.applied), len(result.missing), len(result.failed),
    )
    return result
